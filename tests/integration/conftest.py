# tests/integration/conftest.py
"""
Fixtures for integration tests (mocked AWS)
These tests verify components work together with a fake transfer manager
"""

import pytest


@pytest.fixture
def temp_config_file(temp_dir):
    """Create config file pointing at a temporary log folder"""
    log_dir = temp_dir / "logs"
    log_dir.mkdir()

    config_content = f"""
log_file_folder: {log_dir}

s3:
  bucket: test-bucket
  access_key: AKIATEST
  secret_key: secret
  region: eu-west-1
  path: "archive/%timestamp%"

upload:
  period_seconds: 3600
  upload_on_start: true

watch:
  enabled: true
"""

    config_file = temp_dir / "config.yaml"
    config_file.write_text(config_content)

    yield str(config_file)
