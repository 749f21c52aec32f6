"""Download sampled time series from GEE and pivot them into a local table."""
import logging
import os

import ee
import numpy
import pandas

from ee_time_series import build_triplets
from ee_time_series import chunk_feature_collection
from ee_time_series import COLUMN_ID_FIELD
from ee_time_series import MISSING_VALUE
from ee_time_series import ROW_ID_FIELD
from ee_time_series import VALUE_FORMAT

LOGGER = logging.getLogger(__name__)

# getInfo returns at most 5000 features, a chunk yields points x images
DEFAULT_CHUNK_SIZE = 100


def features_to_frame(feature_list, row_id, col_id, band_alias):
    """Convert GeoJSON feature dicts into a long (row, column, value) table."""
    record_list = []
    for feature in feature_list:
        properties = feature.get('properties', {})
        if properties.get(row_id) is None:
            raise ValueError(
                f'feature {feature.get("id")} has no "{row_id}" property, '
                f'found {list(properties)}')
        record_list.append({
            row_id: properties[row_id],
            col_id: properties.get(col_id),
            band_alias: (
                numpy.nan if properties.get(band_alias) is None
                else properties[band_alias]),
        })
    return pandas.DataFrame(record_list, columns=[row_id, col_id, band_alias])


def pivot_samples(sample_table, row_id, col_id, band_alias):
    """Pivot long samples into one row per `row_id` and one column per `col_id`.

    Null values and (row, column) pairs that were never sampled are filled
    with MISSING_VALUE. Every cell is formatted with VALUE_FORMAT. If a
    pair appears more than once the last sample is kept.
    """
    missing_columns = set(
        [row_id, col_id, band_alias]).difference(set(sample_table.columns))
    if missing_columns:
        raise ValueError(
            'expected the following columns in the sample table that were '
            'missing:\n\t' + '\n\t'.join(sorted(missing_columns)) +
            '\nexisting columns:\n\t' + '\n\t'.join(
                str(column) for column in sample_table.columns))
    if sample_table.empty:
        return pandas.DataFrame(columns=[row_id])

    sample_table = sample_table.copy()
    sample_table[col_id] = sample_table[col_id].astype(str)
    sample_table[band_alias] = pandas.to_numeric(
        sample_table[band_alias], errors='coerce')
    sample_table = sample_table.drop_duplicates(
        subset=[row_id, col_id], keep='last')

    wide_table = sample_table.pivot(
        index=row_id, columns=col_id, values=band_alias)
    wide_table = wide_table.reindex(columns=sorted(wide_table.columns))
    try:
        wide_table = wide_table.sort_index()
    except TypeError:
        # mixed id types (ex. 1 and 'b') are ordered by their text form
        wide_table = wide_table.sort_index(key=lambda index: index.astype(str))
    wide_table = wide_table.fillna(MISSING_VALUE).apply(
        lambda column: column.map(lambda value: VALUE_FORMAT % value))
    wide_table.columns.name = None
    return wide_table.reset_index()


def download_time_series(
        image_collection_id, feature_collection_id, start_date, end_date,
        band, band_alias, scale, multiplier, row_id=ROW_ID_FIELD,
        chunk_size=DEFAULT_CHUNK_SIZE):
    """Sample on GEE chunk by chunk and return the wide table locally."""
    feature_collection = ee.FeatureCollection(feature_collection_id)
    frame_list = []
    for index, points_chunk in chunk_feature_collection(
            feature_collection, chunk_size):
        triplets = build_triplets(
            image_collection_id, points_chunk, start_date, end_date, band,
            band_alias, scale, multiplier)
        try:
            feature_list = triplets.getInfo()['features']
        except ee.ee_exception.EEException:
            LOGGER.exception(
                f'could not fetch chunk {index} of {feature_collection_id}')
            raise
        LOGGER.debug(f'fetched {len(feature_list)} samples in chunk {index}')
        frame_list.append(features_to_frame(
            feature_list, row_id, COLUMN_ID_FIELD, band_alias))

    if not frame_list:
        LOGGER.warning(f'no points found in {feature_collection_id}')
        return pandas.DataFrame(columns=[row_id])
    sample_table = pandas.concat(frame_list, ignore_index=True)
    return pivot_samples(sample_table, row_id, COLUMN_ID_FIELD, band_alias)


def write_csv(table, csv_path):
    target_dir = os.path.dirname(csv_path)
    if target_dir:
        os.makedirs(target_dir, exist_ok=True)
    table.to_csv(csv_path, index=False)
    LOGGER.info(f'wrote {len(table)} rows to {csv_path}')
