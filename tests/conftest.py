# tests/conftest.py
"""
Common fixtures for all test types
These are shared across unit and integration tests
"""

import os
import sys
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add project root to Python path so 's3_log_shipper' can be imported
# This allows tests to run without installing the package
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


# Fixed "now" used by most tests: 2024-03-16 12:00 UTC
FIXED_NOW = datetime(2024, 3, 16, 12, 0, 0, tzinfo=timezone.utc)
YESTERDAY = datetime(2024, 3, 15, 10, 30, 0, tzinfo=timezone.utc)


def wait_until(condition, timeout=5, interval=0.05, description="condition"):
    """
    Poll until condition is true or timeout expires

    Returns:
        bool: True if condition met, False if timeout
    """
    start = time.time()
    while time.time() - start < timeout:
        if condition():
            return True
        time.sleep(interval)

    print(f"Timeout after {timeout}s waiting for: {description}")
    return False


def write_log(directory: Path, name: str, mtime: datetime, content: str = "line\n" * 10) -> Path:
    """Create a file with a given modification time."""
    path = directory / name
    path.write_text(content)
    ts = mtime.timestamp()
    os.utime(path, (ts, ts))
    return path


class FakeTransfer:
    """
    Stand-in for boto3's TransferManager.

    Records every upload and fails the calls whose 1-based index is in
    ``fail_on_calls``.
    """

    def __init__(self, fail_on_calls=(), error=None):
        self.fail_on_calls = set(fail_on_calls)
        self.error = error or RuntimeError("upload failed")
        self.uploads = []
        self.calls = 0
        self.entered = 0
        self.exited = 0

    def __call__(self, client, config):
        # Used directly as transfer_factory
        return self

    def __enter__(self):
        self.entered += 1
        return self

    def __exit__(self, exc_type, exc, tb):
        self.exited += 1
        return False

    def upload(self, fileobj, bucket, key):
        self.calls += 1
        future = Mock()
        if self.calls in self.fail_on_calls:
            future.result.side_effect = self.error
        else:
            self.uploads.append((bucket, key, fileobj.read()))
            future.result.return_value = None
        return future

    @property
    def keys(self):
        return [key for _, key, _ in self.uploads]


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_transfer():
    return FakeTransfer()


@pytest.fixture
def failing_transfer():
    """Factory for a FakeTransfer failing on the given call numbers"""
    return FakeTransfer


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def yesterday():
    return YESTERDAY


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def make_log():
    return write_log


@pytest.fixture
def wait_for():
    return wait_until
