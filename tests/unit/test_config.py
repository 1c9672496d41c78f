#!/usr/bin/env python3
"""
Tests for Config Manager
"""

import tempfile
from datetime import timedelta
from pathlib import Path
from unittest.mock import Mock

import pytest
import yaml

from s3_log_shipper.config_manager import ConfigManager, ConfigValidationError
from s3_log_shipper.sink import S3Sink


@pytest.fixture
def temp_config_file():
    """Create config with known values for testing"""
    config_content = """
log_file_folder: /var/log/myapp
s3:
  bucket: my-log-bucket
  access_key: AKIAEXAMPLE
  secret_key: secret
  region: eu-west-1
  path: "archive/%timestamp%"
  file_prefix: "%hostname%"
upload:
  period_seconds: 600
  log_suffix: .txt
  channel_capacity: 50
watch:
  enabled: false
"""

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write(config_content)
        temp_path = f.name

    yield temp_path
    Path(temp_path).unlink()


@pytest.fixture
def write_config():
    """Write a config dict to a temp YAML file"""
    paths = []

    def _write(config):
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump(config, f)
            paths.append(f.name)
            return f.name

    yield _write

    for path in paths:
        Path(path).unlink(missing_ok=True)


def base_config(**overrides):
    config = {
        'log_file_folder': '/var/log/myapp',
        's3': {
            'bucket': 'bucket',
            'access_key': 'AKIA',
            'secret_key': 'secret',
            'region': 'eu-west-1',
        },
    }
    config.update(overrides)
    return config


def test_load_valid_config(temp_config_file):
    """Test loading a valid configuration file"""
    cm = ConfigManager(temp_config_file)

    assert cm.get('log_file_folder') == '/var/log/myapp'
    assert cm.get('s3.bucket') == 'my-log-bucket'
    assert cm.get('s3.path') == 'archive/%timestamp%'
    assert cm.get('upload.period_seconds') == 600
    assert cm.get('watch.enabled') is False


def test_get_default_for_missing_key(temp_config_file):
    cm = ConfigManager(temp_config_file)

    assert cm.get('missing.key', 'default') == 'default'
    assert cm.get('s3.bucket.deeper') is None


def test_load_nonexistent_file():
    """Test loading a file that doesn't exist"""
    with pytest.raises(FileNotFoundError):
        ConfigManager('/nonexistent/path/config.yaml')


def test_empty_file(write_config):
    path = write_config(None)
    Path(path).write_text("")

    with pytest.raises(ConfigValidationError, match="empty"):
        ConfigManager(path)


def test_top_level_must_be_mapping(write_config):
    path = write_config(['a', 'b'])

    with pytest.raises(ConfigValidationError, match="mapping"):
        ConfigManager(path)


@pytest.mark.parametrize("missing", ['log_file_folder', 's3'])
def test_missing_required_key(write_config, missing):
    """Test validation fails when required key is missing"""
    config = base_config()
    del config[missing]

    with pytest.raises(ConfigValidationError, match="Missing required key"):
        ConfigManager(write_config(config))


def test_blank_credentials_are_valid(write_config):
    """Test blank values pass validation (they only disable the sink)"""
    config = base_config()
    config['s3']['access_key'] = ''
    config['s3']['secret_key'] = None

    cm = ConfigManager(write_config(config))

    assert cm.get('s3.access_key') == ''


@pytest.mark.parametrize("section, key, value, message", [
    ('s3', 'bucket', 123, "s3.bucket must be a string"),
    ('upload', 'period_seconds', 0, "period_seconds"),
    ('upload', 'period_seconds', -5, "period_seconds"),
    ('upload', 'period_seconds', "1h", "period_seconds"),
    ('upload', 'period_seconds', True, "period_seconds"),
    ('upload', 'channel_capacity', 0, "channel_capacity"),
    ('upload', 'channel_capacity', 2.5, "channel_capacity"),
    ('upload', 'log_suffix', "", "log_suffix"),
    ('upload', 'upload_on_start', "yes", "upload_on_start"),
    ('watch', 'enabled', "no", "watch.enabled"),
])
def test_invalid_values(write_config, section, key, value, message):
    """Test type and range validation"""
    config = base_config()
    config.setdefault(section, {})[key] = value

    with pytest.raises(ConfigValidationError, match=message):
        ConfigManager(write_config(config))


def test_s3_must_be_mapping(write_config):
    with pytest.raises(ConfigValidationError, match="s3 must be a mapping"):
        ConfigManager(write_config(base_config(s3="bucket")))


def test_env_var_expansion(write_config, monkeypatch):
    """Test ${VAR} expansion for credentials"""
    monkeypatch.setenv('TEST_SHIPPER_KEY', 'AKIAFROMENV')
    config = base_config()
    config['s3']['access_key'] = '${TEST_SHIPPER_KEY}'

    cm = ConfigManager(write_config(config))

    assert cm.get('s3.access_key') == 'AKIAFROMENV'


def test_unset_env_var_becomes_blank(write_config, monkeypatch):
    """Test an unresolved ${VAR} is blanked instead of used literally"""
    monkeypatch.delenv('TEST_SHIPPER_UNSET', raising=False)
    config = base_config()
    config['s3']['secret_key'] = '${TEST_SHIPPER_UNSET}'

    cm = ConfigManager(write_config(config))

    assert cm.get('s3.secret_key') == ''


def test_tilde_expansion(write_config):
    cm = ConfigManager(write_config(base_config(log_file_folder='~/logs')))

    assert cm.get('log_file_folder') == str(Path.home() / 'logs')


def test_reload_keeps_old_config_on_error(write_config):
    """Test a broken file on reload keeps the previous config"""
    path = write_config(base_config())
    cm = ConfigManager(path)

    Path(path).write_text("log_file_folder: /x\n")  # s3 missing
    result = cm.reload_config()

    assert result['s3']['bucket'] == 'bucket'
    assert cm.get('s3.bucket') == 'bucket'


def test_reload_reports_changes(write_config, caplog):
    path = write_config(base_config())
    cm = ConfigManager(path)

    Path(path).write_text(yaml.dump(base_config(log_file_folder='/other')))
    cm.reload_config()

    assert cm.get('log_file_folder') == '/other'
    assert "CONFIG CHANGES DETECTED: log_file_folder" in caplog.text


def test_handle_reload_signal(write_config, mocker):
    cm = ConfigManager(write_config(base_config()))
    reload = mocker.patch.object(cm, 'reload_config')

    cm.handle_reload_signal(1, None)

    reload.assert_called_once_with()


def test_sink_from_config(temp_config_file, temp_dir):
    """Test S3Sink picks up every setting from the config"""
    cm = ConfigManager(temp_config_file)
    cm.config['log_file_folder'] = str(temp_dir)

    sink = S3Sink.from_config(cm, s3_client=Mock())
    try:
        assert sink.enabled
        assert sink.log_file_folder == str(temp_dir)
        assert sink.bucket_name == 'my-log-bucket'
        assert sink.period == timedelta(seconds=600)
        assert sink.selector.log_suffix == '.txt'
        assert sink.channel.capacity == 50
        assert sink.key_builder.path_template == 'archive/%timestamp%'
        assert sink.key_builder.prefix_template == '%hostname%'
    finally:
        sink.close()


def test_sink_from_config_defaults(write_config, temp_dir):
    cm = ConfigManager(write_config(base_config(log_file_folder=str(temp_dir))))

    sink = S3Sink.from_config(cm, s3_client=Mock())
    try:
        assert sink.period == timedelta(hours=1)
        assert sink.selector.log_suffix == '.log'
        assert sink.channel.capacity == 100
    finally:
        sink.close()


def test_sink_from_config_blank_credentials_disabled(write_config):
    config = base_config()
    config['s3']['access_key'] = ''

    sink = S3Sink.from_config(ConfigManager(write_config(config)))

    assert sink.enabled is False
