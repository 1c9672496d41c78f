#!/usr/bin/env python3
"""
S3 Sink for S3 Log Shipper
Logging-side entry point that ships closed log files to S3

Every emitted log record calls ``notify()``, which drops a timestamp
into the trigger channel and returns immediately. A background
scheduler turns those signals into at most one upload pass per period.

If any of folder, bucket, access key, secret key or region is blank the
sink is disabled for its whole lifetime: nothing is started and
``notify()`` does nothing.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from s3_log_shipper.file_selector import DEFAULT_LOG_SUFFIX, FileSelector
from s3_log_shipper.key_builder import KeyBuilder
from s3_log_shipper.scheduler import DEFAULT_CHANNEL_CAPACITY, DebounceScheduler, TriggerChannel
from s3_log_shipper.upload_manager import UploadExecutor, UploadOutcome, create_s3_client
from s3_log_shipper.utils import is_blank, utc_now

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = timedelta(hours=1)
DEFAULT_CLOSE_TIMEOUT = 5.0

PACKAGE_LOGGER = __name__.split('.')[0]


def _as_period(period) -> timedelta:
    if period is None:
        return DEFAULT_PERIOD
    if isinstance(period, timedelta):
        return period
    return timedelta(seconds=period)


class S3Sink:
    """
    Debounced shipper of closed log files to S3.

    Example:
        >>> sink = S3Sink('/var/log/myapp', 'my-logs', key, secret, 'eu-west-1',
        ...               s3_path='archive/%timestamp%', file_prefix='%hostname%')
        >>> sink.notify()  # from any thread, never blocks
        >>> sink.close()

    Attributes:
        enabled (bool): False if required settings were blank
        log_file_folder (str): Folder scanned for closed log files
        bucket_name (str): Target bucket
        period (timedelta): Minimum signal-time gap between passes
        channel (TriggerChannel): Signal queue (None when disabled)
        scheduler (DebounceScheduler): Background consumer (None when disabled)
    """

    def __init__(self, log_file_folder: str, bucket_name: str, access_key: str,
                 secret_key: str, region: str, s3_path: Optional[str] = None,
                 file_prefix: Optional[str] = None, period=DEFAULT_PERIOD,
                 log_suffix: str = DEFAULT_LOG_SUFFIX,
                 channel_capacity: int = DEFAULT_CHANNEL_CAPACITY,
                 endpoint_url: Optional[str] = None,
                 s3_client=None, transfer_factory: Optional[Callable] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.log_file_folder = log_file_folder
        self.bucket_name = bucket_name
        self.period = _as_period(period)
        self.clock = clock

        self.s3_client = None
        self.selector: Optional[FileSelector] = None
        self.executor: Optional[UploadExecutor] = None
        self.channel: Optional[TriggerChannel] = None
        self.scheduler: Optional[DebounceScheduler] = None
        self._cancel = threading.Event()
        self._closed = False

        self.enabled = not any(
            is_blank(value)
            for value in (log_file_folder, bucket_name, access_key, secret_key, region)
        )

        if not self.enabled:
            logger.warning(
                "S3Sink is disabled as one of required parameters are not specified: "
                "[log_file_folder, bucket_name, access_key, secret_key, region]"
            )
            return

        self.s3_client = s3_client or create_s3_client(
            access_key, secret_key, region, endpoint_url=endpoint_url
        )
        self.selector = FileSelector(log_suffix, clock=clock)
        self.key_builder = KeyBuilder(file_prefix, s3_path, clock=clock)
        self.executor = UploadExecutor(
            self.s3_client, bucket_name, self.key_builder, transfer_factory=transfer_factory
        )

        self.channel = TriggerChannel(channel_capacity)
        self.scheduler = DebounceScheduler(self.channel, self.period, self.check_files_to_upload)
        self.scheduler.start()

        logger.info(f"S3Sink enabled: {log_file_folder} -> s3://{bucket_name} (period: {self.period})")

    @classmethod
    def from_config(cls, config, **overrides) -> 'S3Sink':
        """
        Build a sink from a ConfigManager.

        Args:
            config: Loaded ConfigManager
            **overrides: Extra constructor arguments (e.g. s3_client)
        """
        kwargs = dict(
            log_file_folder=config.get('log_file_folder'),
            bucket_name=config.get('s3.bucket'),
            access_key=config.get('s3.access_key'),
            secret_key=config.get('s3.secret_key'),
            region=config.get('s3.region'),
            s3_path=config.get('s3.path'),
            file_prefix=config.get('s3.file_prefix'),
            endpoint_url=config.get('s3.endpoint_url'),
            period=config.get('upload.period_seconds'),
            log_suffix=config.get('upload.log_suffix', DEFAULT_LOG_SUFFIX),
            channel_capacity=config.get('upload.channel_capacity', DEFAULT_CHANNEL_CAPACITY),
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    def notify(self):
        """Record activity. Never blocks; dropped if the channel is full."""
        if self.enabled:
            self.channel.try_write(self.clock())

    def check_files_to_upload(self) -> List[UploadOutcome]:
        """Run one upload pass over the log folder."""
        candidates = self.selector.scan(self.log_file_folder)
        if not candidates:
            return []

        logger.info(f"Found {len(candidates)} closed log files to upload")
        return self.executor.upload_batch(candidates, cancel_event=self._cancel)

    def close(self, timeout: float = DEFAULT_CLOSE_TIMEOUT):
        """
        Stop accepting signals, drain the queue and stop the scheduler.

        If draining takes longer than ``timeout`` the running batch is
        cancelled after its current file.

        Note:
            Safe to call multiple times
        """
        if not self.enabled or self._closed:
            return
        self._closed = True

        if not self.channel.close(timeout=timeout):
            self._cancel.set()
            self.channel.close(timeout=timeout)

        if not self.scheduler.join(timeout):
            logger.warning("Upload pass still running at shutdown, cancelling remaining files")
            self._cancel.set()
            if not self.scheduler.join(timeout):
                logger.warning("Scheduler did not stop, an upload call is still in progress")

        logger.info("S3Sink closed")


class _ExcludeOwnRecords(logging.Filter):
    """Drops records logged by the shipper itself."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not record.name.startswith(PACKAGE_LOGGER)


class S3UploadHandler(logging.Handler):
    """
    Logging handler that triggers the sink on every record.

    The record itself is not shipped: the files written by the regular
    file handler are. This handler only signals activity.

    ``handle()`` does not take the handler lock. ``logging.shutdown()``
    holds that lock while calling ``close()``, and the drain in
    ``close()`` waits on a scheduler thread that may log through this
    same handler.
    """

    def __init__(self, sink: S3Sink, level=logging.NOTSET):
        super().__init__(level)
        self.sink = sink
        self.addFilter(_ExcludeOwnRecords())

    def handle(self, record: logging.LogRecord):
        rv = self.filter(record)
        if rv:
            # notify() is thread-safe on its own
            self.emit(record)
        return rv

    def emit(self, record: logging.LogRecord):
        self.sink.notify()

    def close(self):
        try:
            self.sink.close()
        finally:
            super().close()


def add_s3_handler(logger_: Optional[logging.Logger] = None, level=logging.NOTSET,
                   **sink_kwargs) -> S3UploadHandler:
    """
    Create an S3Sink and attach its handler to a logger.

    Args:
        logger_: Logger to attach to (default: root logger)
        level: Handler level
        **sink_kwargs: S3Sink constructor arguments; ``period`` defaults
            to one hour

    Returns:
        S3UploadHandler: The attached handler

    Example:
        >>> add_s3_handler(log_file_folder='/var/log/myapp', bucket_name='my-logs',
        ...                access_key=key, secret_key=secret, region='eu-west-1')
    """
    sink_kwargs.setdefault('period', DEFAULT_PERIOD)
    handler = S3UploadHandler(S3Sink(**sink_kwargs), level=level)
    (logger_ or logging.getLogger()).addHandler(handler)
    return handler
