"""Build and export per-point time series tables from GEE image collections."""
import logging
import time

import ee

LOGGER = logging.getLogger(__name__)

ROW_ID_FIELD = 'id'
COLUMN_ID_FIELD = 'imageId'
MATCHES_FIELD = 'matches'
MISSING_VALUE = -9999
VALUE_FORMAT = '%.2f'
TIME_PROPERTIES = ['system:time_start', 'system:time_end']

ACTIVE_TASK_STATES = [
    'UNSUBMITTED',
    'READY',
    'PENDING',
    'RUNNING',
    'CANCEL_REQUESTED',
    'CANCELLING',
]
FAILED_TASK_STATES = [
    'FAILED',
    'CANCELLED',
]


def initialize_gee(authenticate_flag, project=None):
    if authenticate_flag:
        ee.Authenticate()
    if project is not None:
        ee.Initialize(project=project)
    else:
        ee.Initialize()


def filter_collection(image_collection_id, start_date, end_date, band):
    """Return `band` of `image_collection_id` in [start_date, end_date)."""
    return ee.ImageCollection(image_collection_id).filterDate(
        start_date, end_date).select(band)


def scale_collection(image_collection, multiplier):
    """Multiply every image by `multiplier` keeping its time properties."""
    return image_collection.map(
        lambda image: image.multiply(multiplier).copyProperties(
            image, TIME_PROPERTIES))


def sample_collection(image_collection, feature_collection, band_alias, scale):
    """Sample each image at every point.

    Args:
        image_collection (ee.ImageCollection): single band collection.
        feature_collection (ee.FeatureCollection): points to sample, each
            carrying its own row identifier.
        band_alias (str): property name the mean value is stored under.
        scale (float): nominal scale in meters to reduce at.

    Returns:
        ee.FeatureCollection of one feature per (point, image) pair with
        the point's properties, `band_alias` and `imageId` set.
    """
    reducer = ee.Reducer.mean().setOutputs([band_alias])

    def _reduce_image(image):
        image_id = image.id()
        samples = image.reduceRegions(
            collection=feature_collection,
            reducer=reducer,
            scale=scale)
        return samples.map(
            lambda feature: feature.set(COLUMN_ID_FIELD, image_id))

    return image_collection.map(_reduce_image).flatten()


def format_table(table, row_id, col_id, band_alias):
    """Pivot long `table` into one feature per `row_id`.

    Every distinct `col_id` value becomes a property holding the
    `band_alias` value formatted with VALUE_FORMAT, or MISSING_VALUE when
    that value is null.
    """
    rows = table.distinct(row_id)
    joined = ee.Join.saveAll(MATCHES_FIELD).apply(
        primary=rows,
        secondary=table,
        condition=ee.Filter.equals(leftField=row_id, rightField=row_id))

    def _match_to_pair(feature):
        feature = ee.Feature(feature)
        value = ee.List([feature.get(band_alias), MISSING_VALUE]).reduce(
            ee.Reducer.firstNonNull())
        return ee.List([
            feature.get(col_id), ee.Number(value).format(VALUE_FORMAT)])

    def _format_row(row):
        values = ee.List(row.get(MATCHES_FIELD)).map(_match_to_pair)
        return row.select([row_id]).set(ee.Dictionary(values.flatten()))

    return joined.map(_format_row)


def build_triplets(
        image_collection_id, feature_collection, start_date, end_date, band,
        band_alias, scale, multiplier):
    """Filter, scale and sample, returning long format samples."""
    filtered = filter_collection(
        image_collection_id, start_date, end_date, band)
    scaled = scale_collection(filtered, multiplier)
    return sample_collection(scaled, feature_collection, band_alias, scale)


def build_time_series(
        image_collection_id, feature_collection, start_date, end_date, band,
        band_alias, scale, multiplier, row_id=ROW_ID_FIELD):
    """Return the wide time series table as an ee.FeatureCollection."""
    triplets = build_triplets(
        image_collection_id, feature_collection, start_date, end_date, band,
        band_alias, scale, multiplier)
    return format_table(triplets, row_id, COLUMN_ID_FIELD, band_alias)


def export_table(collection, output_folder, file_name_prefix):
    """Start a CSV export of `collection` to Drive and return the task."""
    task = ee.batch.Export.table.toDrive(
        collection=collection,
        description=file_name_prefix,
        folder=output_folder,
        fileNamePrefix=file_name_prefix,
        fileFormat='CSV')
    task.start()
    LOGGER.info(
        f'started export {file_name_prefix} to Drive folder {output_folder}')
    return task


def export_time_series(
        image_collection_id, feature_collection_id, start_date, end_date,
        band, band_alias, scale, multiplier, output_folder, file_name_prefix,
        row_id=ROW_ID_FIELD, preview=True):
    """Build the time series for every point and export it as one CSV."""
    feature_collection = ee.FeatureCollection(feature_collection_id)
    time_series = build_time_series(
        image_collection_id, feature_collection, start_date, end_date, band,
        band_alias, scale, multiplier, row_id=row_id)
    if preview:
        LOGGER.info(f'first row: {time_series.first().getInfo()}')
    return export_table(time_series, output_folder, file_name_prefix)


def chunk_feature_collection(feature_collection, chunk_size):
    """Yield successive (index, chunk) pairs from feature_collection."""
    if chunk_size <= 0:
        raise ValueError(f'chunk_size must be positive, got {chunk_size}')
    feature_count = feature_collection.size().getInfo()
    LOGGER.debug(
        f'splitting {feature_count} features into chunks of {chunk_size}')
    for index, offset in enumerate(range(0, feature_count, chunk_size)):
        yield index, ee.FeatureCollection(
            feature_collection.toList(chunk_size, offset))


def wait_for_task(task, poll_seconds):
    """Block until `task` is no longer active.

    Raises:
        RuntimeError if the task failed or was cancelled.
    """
    while True:
        status = task.status()
        state = status['state']
        if state not in ACTIVE_TASK_STATES:
            break
        LOGGER.debug(f'{status.get("description")} is {state}')
        time.sleep(poll_seconds)
    if state in FAILED_TASK_STATES:
        raise RuntimeError(
            f'export {status.get("description")} ended {state}: '
            f'{status.get("error_message", "no error message")}')
    LOGGER.info(f'{status.get("description")} finished as {state}')
    return status


def export_time_series_in_chunks(
        image_collection_id, feature_collection_id, start_date, end_date,
        band, band_alias, scale, multiplier, output_folder, file_name_prefix,
        chunk_size, row_id=ROW_ID_FIELD, wait=False, poll_seconds=30):
    """Export the time series as one CSV per chunk of `chunk_size` points.

    Chunks are submitted one after the other, named
    `{file_name_prefix}_{index}`. When `wait` is set each export must
    finish before the next one is submitted.
    """
    feature_collection = ee.FeatureCollection(feature_collection_id)
    task_list = []
    for index, points_chunk in chunk_feature_collection(
            feature_collection, chunk_size):
        time_series = build_time_series(
            image_collection_id, points_chunk, start_date, end_date, band,
            band_alias, scale, multiplier, row_id=row_id)
        task = export_table(
            time_series, output_folder, f'{file_name_prefix}_{index}')
        task_list.append(task)
        if wait:
            wait_for_task(task, poll_seconds)
    LOGGER.info(f'submitted {len(task_list)} chunked exports')
    return task_list
