import os
from unittest.mock import patch

import pytest

import export_time_series as cli

JOB_ARGS = [
    '--image_collection_id', 'MODIS/061/MOD13Q1',
    '--feature_collection_id', 'users/me/points',
    '--start_date', '2010-01-01',
    '--end_date', '2011-01-01',
    '--band', 'NDVI',
    '--band_alias', 'ndvi',
    '--scale', '250',
    '--multiplier', '0.0001',
    '--output_folder', 'earthengine',
    '--file_name_prefix', 'modis_ndvi_series',
]
SAMPLE_ARGS = (
    'MODIS/061/MOD13Q1', 'users/me/points', '2010-01-01', '2011-01-01',
    'NDVI', 'ndvi', 250.0, 0.0001)


@pytest.fixture
def mock_gee():
    with patch.object(cli, 'initialize_gee') as mock_init, \
            patch.object(cli, 'export_time_series') as mock_export, \
            patch.object(cli, 'export_time_series_in_chunks') as mock_chunks, \
            patch.object(cli, 'wait_for_task') as mock_wait, \
            patch.object(cli, 'download_time_series') as mock_download, \
            patch.object(cli, 'write_csv') as mock_write:
        yield {
            'init': mock_init,
            'export': mock_export,
            'chunks': mock_chunks,
            'wait': mock_wait,
            'download': mock_download,
            'write': mock_write,
        }


def test_single_export(mock_gee):
    cli.main(JOB_ARGS)

    mock_gee['init'].assert_called_once_with(False, None)
    mock_gee['export'].assert_called_once_with(
        *SAMPLE_ARGS, 'earthengine', 'modis_ndvi_series', row_id='id')
    mock_gee['wait'].assert_not_called()
    mock_gee['chunks'].assert_not_called()


def test_single_export_wait(mock_gee):
    cli.main(JOB_ARGS + ['--wait', '--poll_seconds', '2'])
    mock_gee['wait'].assert_called_once_with(mock_gee['export'].return_value, 2.0)


def test_chunked_export(mock_gee):
    cli.main(JOB_ARGS + ['--chunk_size', '500', '--row_id', 'site', '--wait'])

    mock_gee['export'].assert_not_called()
    mock_gee['chunks'].assert_called_once_with(
        *SAMPLE_ARGS, 'earthengine', 'modis_ndvi_series', 500,
        row_id='site', wait=True, poll_seconds=30)


def test_local_csv(mock_gee, tmp_path):
    csv_path = os.path.join(tmp_path, 'series.csv')
    cli.main(JOB_ARGS + ['--local_csv', csv_path, '--project', 'my-project'])

    mock_gee['init'].assert_called_once_with(False, 'my-project')
    mock_gee['download'].assert_called_once_with(
        *SAMPLE_ARGS, row_id='id', chunk_size=100)
    mock_gee['write'].assert_called_once_with(
        mock_gee['download'].return_value, csv_path)
    mock_gee['export'].assert_not_called()


def test_job_ini_with_override(mock_gee, tmp_path):
    ini_path = os.path.join(tmp_path, 'job.ini')
    cli.main(['--generate_template', ini_path])
    assert os.path.exists(ini_path)
    mock_gee['init'].assert_not_called()

    cli.main(['--job_ini', ini_path, '--band_alias', 'vi'])

    args, kwargs = mock_gee['export'].call_args
    assert args[0] == 'MODIS/061/MOD13Q1'
    assert args[5] == 'vi'
    assert args[-1] == 'modis_ndvi_series'


def test_disabled_job_does_nothing(mock_gee, tmp_path):
    ini_path = os.path.join(tmp_path, 'job.ini')
    with open(ini_path, 'w') as ini_file:
        ini_file.write('[job]\ndisabled = true\n')

    cli.main(['--job_ini', ini_path])
    mock_gee['init'].assert_not_called()


def test_missing_arguments(mock_gee):
    with pytest.raises(ValueError, match='band_alias'):
        cli.main(JOB_ARGS[:10])
    mock_gee['init'].assert_not_called()
