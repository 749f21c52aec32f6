"""Parse and validate time series export job definitions stored as .ini."""
from datetime import datetime
import configparser
import logging
import os

from ee_time_series import ROW_ID_FIELD

LOGGER = logging.getLogger(__name__)

DATE_FORMAT = '%Y-%m-%d'

EXPECTED_INI_ELEMENTS = [
    'image_collection_id',
    'feature_collection_id',
    'start_date',
    'end_date',
    'band',
    'band_alias',
    'scale',
    'multiplier',
    'output_folder',
    'file_name_prefix',
]

OPTIONAL_INI_ELEMENTS = [
    'row_id',
    'chunk_size',
    'project',
]

TEMPLATE_VALUES = {
    'image_collection_id': 'MODIS/061/MOD13Q1',
    'feature_collection_id': 'users/your_user/points',
    'start_date': '2010-01-01',
    'end_date': '2011-01-01',
    'band': 'NDVI',
    'band_alias': 'ndvi',
    'scale': '250',
    'multiplier': '0.0001',
    'output_folder': 'earthengine',
    'file_name_prefix': 'modis_ndvi_series',
    'row_id': ROW_ID_FIELD,
}


def _parse_date(date_str, element_id):
    try:
        return datetime.strptime(date_str, DATE_FORMAT)
    except ValueError:
        raise ValueError(
            f'{element_id} "{date_str}" is not a {DATE_FORMAT} date')


def validate_job(job):
    """Coerce numeric fields in `job` in place and check their ranges."""
    start_date = _parse_date(job['start_date'], 'start_date')
    end_date = _parse_date(job['end_date'], 'end_date')
    if start_date >= end_date:
        raise ValueError(
            f'start_date {job["start_date"]} must be before end_date '
            f'{job["end_date"]}')

    for element_id, cast_fn in [
            ('scale', float), ('multiplier', float), ('chunk_size', int)]:
        if job.get(element_id) is None:
            continue
        try:
            job[element_id] = cast_fn(job[element_id])
        except ValueError:
            raise ValueError(
                f'{element_id} must be a number, got "{job[element_id]}"')
    for element_id in ['scale', 'chunk_size']:
        if job.get(element_id) is not None and job[element_id] <= 0:
            raise ValueError(
                f'{element_id} must be positive, got {job[element_id]}')
    job.setdefault('row_id', ROW_ID_FIELD)
    return job


def parse_job_ini(ini_path):
    """Parse ini and return a validated job, or None if it is disabled."""
    basename = os.path.splitext(os.path.basename(ini_path))[0]
    job_config = configparser.ConfigParser(allow_no_value=True)
    if not job_config.read(ini_path):
        raise ValueError(f'could not read {ini_path}')
    if basename not in job_config:
        raise ValueError(
            f'expected a section called {basename} but only found '
            f'{job_config.sections()}')
    section = job_config[basename]
    # a bare `disabled` line has no value and still disables the job
    disabled = section.get('disabled', 'false')
    if disabled is None or disabled.lower() == 'true':
        LOGGER.info(f'skipping {ini_path} because disabled')
        return None

    job = {}
    for element_id in EXPECTED_INI_ELEMENTS:
        if not section.get(element_id):
            raise ValueError(
                f'expected an entry called {element_id} in {ini_path} but '
                f'only found {list(section.keys())}')
        job[element_id] = section[element_id]
    for element_id in OPTIONAL_INI_ELEMENTS:
        if section.get(element_id):
            job[element_id] = section[element_id]
    return validate_job(job)


def generate_template(template_path):
    """Write an example job ini to `template_path` unless it exists."""
    if os.path.exists(template_path):
        LOGGER.warning(f'{template_path} already exists, not overwriting')
        return False
    basename = os.path.splitext(os.path.basename(template_path))[0]
    job_config = configparser.ConfigParser()
    job_config[basename] = TEMPLATE_VALUES
    with open(template_path, 'w') as template_file:
        job_config.write(template_file)
    LOGGER.info(f'wrote template to {template_path}')
    return True
