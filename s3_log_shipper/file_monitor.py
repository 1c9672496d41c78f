#!/usr/bin/env python3
"""
File Monitor for S3 Log Shipper
Turns filesystem activity in the log folder into trigger signals

Used when the logs are written by another process: every create, modify
or move of a log file calls the callback (normally ``S3Sink.notify``).
"""

import logging
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from s3_log_shipper.file_selector import DEFAULT_LOG_SUFFIX

logger = logging.getLogger(__name__)

OBSERVER_JOIN_TIMEOUT = 5


class FolderWatcher:
    """
    Watches one folder (non-recursive) for log file activity.

    Example:
        >>> watcher = FolderWatcher('/var/log/myapp', sink.notify)
        >>> watcher.start()
        >>> watcher.stop()

    Attributes:
        folder (Path): Watched directory
        callback: Called with no arguments on each matching event
        log_suffix (str): Only files with this suffix trigger the callback
    """

    def __init__(self, folder: str, callback: Callable[[], None],
                 log_suffix: str = DEFAULT_LOG_SUFFIX):
        self.folder = Path(folder)
        self.callback = callback
        self.log_suffix = log_suffix

        self.observer = None
        self.handler = LogFileHandler(callback, log_suffix)
        self._running = False

    def start(self):
        """
        Start watching the folder.

        Creates the folder if it doesn't exist.

        Note:
            Safe to call multiple times - will not start if already running
        """
        if self._running:
            logger.warning("Already running")
            return

        if not self.folder.exists():
            logger.warning(f"Directory does not exist: {self.folder}")
            logger.info(f"Creating directory: {self.folder}")
            self.folder.mkdir(parents=True, exist_ok=True)

        self.observer = Observer()
        self.observer.schedule(self.handler, str(self.folder), recursive=False)
        self.observer.start()
        self._running = True

        logger.info(f"Watching {self.folder} for *{self.log_suffix} activity")

    def stop(self):
        """
        Stop watching.

        Note:
            Safe to call multiple times
        """
        if not self._running:
            return

        self._running = False
        self.observer.stop()
        self.observer.join(timeout=OBSERVER_JOIN_TIMEOUT)

        logger.info("Stopped watching")


class LogFileHandler(FileSystemEventHandler):
    """
    Watchdog event handler for log files.

    Forwards file create, modify and move events to a callback.
    Ignores directory events and files without the log suffix.
    """

    def __init__(self, callback: Callable[[], None], log_suffix: str = DEFAULT_LOG_SUFFIX):
        self.callback = callback
        self.log_suffix = log_suffix.lower()

    def _matches(self, path) -> bool:
        if isinstance(path, bytes):
            path = path.decode(errors='replace')
        return str(path).lower().endswith(self.log_suffix)

    def on_created(self, event):
        if not event.is_directory and self._matches(event.src_path):
            self.callback()

    def on_modified(self, event):
        if not event.is_directory and self._matches(event.src_path):
            self.callback()

    def on_moved(self, event):
        """Rotation renames the active file; the new name is what matters."""
        if not event.is_directory and self._matches(event.dest_path):
            self.callback()
