#!/usr/bin/env python3
"""
Debounce Scheduler for S3 Log Shipper
Turns a high-rate stream of trigger signals into rare upload passes

Producers push timestamps into a bounded TriggerChannel without ever
blocking. A single background thread consumes them and runs an upload
pass only when more than ``period`` has elapsed (in signal time) since
the previous pass. The scheduler has no timer of its own: with no
signals, no pass runs.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterator, List, Optional

from s3_log_shipper.upload_manager import UploadOutcome

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_CAPACITY = 100

# Wakes the consumer when the channel is closed
_COMPLETE = object()


class TriggerChannel:
    """
    Bounded multi-producer, single-consumer signal queue.

    Writes never block: when the queue is full the signal is dropped,
    which only means a pass is already pending.

    Attributes:
        capacity (int): Maximum queued signals
    """

    def __init__(self, capacity: int = DEFAULT_CHANNEL_CAPACITY):
        # queue.Queue treats maxsize <= 0 as unbounded
        if capacity <= 0:
            raise ValueError(f"channel capacity must be > 0, got {capacity}")
        self.capacity = capacity
        self._queue = queue.Queue(maxsize=capacity)
        self._complete = threading.Event()
        self._close_delivered = False

    @property
    def is_complete(self) -> bool:
        return self._complete.is_set()

    def __len__(self) -> int:
        return self._queue.qsize()

    def try_write(self, timestamp: datetime) -> bool:
        """
        Queue a signal without blocking.

        Returns:
            bool: False if the channel is full or closed
        """
        if self._complete.is_set():
            return False
        try:
            self._queue.put_nowait(timestamp)
        except queue.Full:
            return False
        return True

    def mark_complete(self):
        """Refuse further writes. Does not wake the consumer."""
        self._complete.set()

    def close(self, timeout: Optional[float] = None) -> bool:
        """
        Close the write side and wake the consumer.

        Signals already queued are still delivered before ``read()`` ends.

        Args:
            timeout: Seconds to wait for room in a saturated queue

        Returns:
            bool: True once the consumer has been woken, False if the
            queue stayed full for ``timeout`` seconds (call again to retry)
        """
        self._complete.set()
        if self._close_delivered:
            return True
        try:
            self._queue.put(_COMPLETE, timeout=timeout)
        except queue.Full:
            logger.warning("Trigger channel still saturated, could not deliver close")
            return False
        self._close_delivered = True
        return True

    def read(self) -> Iterator[datetime]:
        """Yield signals in FIFO order until the channel is closed."""
        while True:
            item = self._queue.get()
            if item is _COMPLETE:
                return
            yield item


@dataclass
class PassResult:
    """
    What the scheduler did with one signal.

    Attributes:
        timestamp (datetime): Signal time
        ran (bool): False if the signal was debounced
        outcomes (list): Per-file outcomes of the pass
        error (Exception): Pass-level failure, if any
    """
    timestamp: datetime
    ran: bool
    outcomes: List[UploadOutcome] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class DebounceScheduler:
    """
    Runs ``check_files`` at most once per ``period`` of signal time.

    Example:
        >>> channel = TriggerChannel()
        >>> scheduler = DebounceScheduler(channel, timedelta(hours=1), sink.check_files_to_upload)
        >>> scheduler.start()
        >>> channel.try_write(utc_now())

    Attributes:
        channel (TriggerChannel): Signal source
        period (timedelta): Minimum gap between passes
        check_files: Callable running one upload pass
        last_check_time (datetime): Signal time of the last pass, None if never
        passes_run (int): Number of passes executed
    """

    def __init__(self, channel: TriggerChannel, period: timedelta,
                 check_files: Callable[[], List[UploadOutcome]]):
        self.channel = channel
        self.period = period
        self.check_files = check_files
        self.last_check_time: Optional[datetime] = None
        self.passes_run = 0
        self._thread: Optional[threading.Thread] = None

    def is_due(self, timestamp: datetime) -> bool:
        return self.last_check_time is None or timestamp - self.last_check_time > self.period

    def handle_signal(self, timestamp: datetime) -> PassResult:
        """
        Consume one signal, running a pass if the period has elapsed.

        Never raises: a failing pass is logged and recorded on the result,
        and ``last_check_time`` still advances so a broken folder cannot
        cause a retry storm.
        """
        if not self.is_due(timestamp):
            return PassResult(timestamp, ran=False)

        result = PassResult(timestamp, ran=True)
        try:
            result.outcomes = self.check_files() or []
        except Exception as e:
            logger.error(f"Upload pass failed: {type(e).__name__}: {e}", exc_info=True)
            result.error = e
        finally:
            self.last_check_time = timestamp
            self.passes_run += 1

        return result

    def run(self):
        """Consume signals until the channel is closed."""
        logger.info(f"Scheduler loop started (period: {self.period})")
        try:
            for timestamp in self.channel.read():
                self.handle_signal(timestamp)
        finally:
            self.channel.mark_complete()
        logger.info(f"Scheduler loop stopped after {self.passes_run} passes")

    def start(self):
        """
        Start the consumer thread.

        Note:
            Safe to call multiple times - will not start if already running
        """
        if self._thread is not None:
            logger.warning("Already running")
            return

        self._thread = threading.Thread(target=self.run, name='s3-log-shipper', daemon=True)
        self._thread.start()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the consumer thread to exit.

        Returns:
            bool: True if the thread has stopped (or never started)
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()
