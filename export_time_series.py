"""Export per-point GEE time series tables to CSV."""
import argparse
import logging

from ee_time_series import export_time_series
from ee_time_series import export_time_series_in_chunks
from ee_time_series import initialize_gee
from ee_time_series import wait_for_task
from job_config import EXPECTED_INI_ELEMENTS
from job_config import generate_template
from job_config import OPTIONAL_INI_ELEMENTS
from job_config import parse_job_ini
from job_config import validate_job
from local_table import DEFAULT_CHUNK_SIZE
from local_table import download_time_series
from local_table import write_csv

logging.basicConfig(
    level=logging.DEBUG,
    format=(
        '%(asctime)s (%(relativeCreated)d) %(levelname)s %(name)s'
        ' [%(funcName)s:%(lineno)d] %(message)s'))
LOGGER = logging.getLogger(__name__)

LIBS_TO_SILENCE = ['urllib3.connectionpool', 'googleapiclient.discovery', 'google_auth_httplib2']
for lib_name in LIBS_TO_SILENCE:
    logging.getLogger(lib_name).setLevel(logging.WARN)

JOB_ARG_HELP = {
    'image_collection_id': 'GEE image collection to sample, ex. MODIS/061/MOD13Q1',
    'feature_collection_id': 'GEE feature collection of the points to sample',
    'start_date': 'first day of the time series (inclusive), YYYY-MM-DD',
    'end_date': 'last day of the time series (exclusive), YYYY-MM-DD',
    'band': 'band to sample from each image',
    'band_alias': 'name the sampled band value is stored under',
    'scale': 'scale in meters to sample at',
    'multiplier': 'factor to multiply the band values by',
    'output_folder': 'Google Drive folder the CSV is exported to',
    'file_name_prefix': 'export task description and CSV file prefix',
    'row_id': 'point property that uniquely identifies a row, default `id`',
    'chunk_size': 'split the points into exports of this many points each',
    'project': 'Google Cloud project to initialize GEE with',
}


def build_job(args):
    """Merge the job ini (if any) with command line overrides."""
    job = {}
    if args.job_ini is not None:
        job = parse_job_ini(args.job_ini)
        if job is None:
            return None
    for element_id in EXPECTED_INI_ELEMENTS + OPTIONAL_INI_ELEMENTS:
        value = getattr(args, element_id)
        if value is not None:
            job[element_id] = value
    missing_elements = [
        element_id for element_id in EXPECTED_INI_ELEMENTS
        if job.get(element_id) is None]
    if missing_elements:
        raise ValueError(
            f'missing {missing_elements}, pass them with --job_ini or as '
            'arguments')
    return validate_job(job)


def main(argv=None):
    """Entry point."""
    parser = argparse.ArgumentParser(
        description='export a per point time series of a GEE dataset')
    parser.add_argument(
        '--generate_template', help=(
            'write an example job ini to this path and then quit no matter '
            'what other arguments are passed'))
    parser.add_argument('--job_ini', help='path to a job definition ini')
    for element_id in EXPECTED_INI_ELEMENTS + OPTIONAL_INI_ELEMENTS:
        parser.add_argument(
            f'--{element_id}', help=JOB_ARG_HELP[element_id])
    parser.add_argument(
        '--authenticate', action='store_true',
        help='Pass this flag if you need to reauthenticate with GEE')
    parser.add_argument(
        '--local_csv', help=(
            'download the table and write it to this local CSV path '
            'instead of exporting to Drive'))
    parser.add_argument(
        '--wait', action='store_true',
        help='wait for each export to finish before submitting the next')
    parser.add_argument(
        '--poll_seconds', type=float, default=30,
        help='seconds between export status checks with --wait, default 30')

    args = parser.parse_args(argv)
    if args.generate_template:
        generate_template(args.generate_template)
        return

    job = build_job(args)
    if job is None:
        LOGGER.info(f'{args.job_ini} is disabled, nothing to do')
        return
    LOGGER.debug(f'running job {job}')
    initialize_gee(args.authenticate, job.get('project'))

    sample_args = [
        job['image_collection_id'],
        job['feature_collection_id'],
        job['start_date'],
        job['end_date'],
        job['band'],
        job['band_alias'],
        job['scale'],
        job['multiplier'],
    ]
    if args.local_csv:
        table = download_time_series(
            *sample_args, row_id=job['row_id'],
            chunk_size=job.get('chunk_size', DEFAULT_CHUNK_SIZE))
        write_csv(table, args.local_csv)
    elif job.get('chunk_size') is not None:
        export_time_series_in_chunks(
            *sample_args, job['output_folder'], job['file_name_prefix'],
            job['chunk_size'], row_id=job['row_id'], wait=args.wait,
            poll_seconds=args.poll_seconds)
    else:
        task = export_time_series(
            *sample_args, job['output_folder'], job['file_name_prefix'],
            row_id=job['row_id'])
        if args.wait:
            wait_for_task(task, args.poll_seconds)
    LOGGER.info('all done')


if __name__ == '__main__':
    main()
