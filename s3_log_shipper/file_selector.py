#!/usr/bin/env python3
"""
File Selector for S3 Log Shipper
Finds closed log files that are safe to upload

A file is "closed" when its name carries the log suffix and it was last
written before today's 00:00 UTC. Today's file is still being appended to
by the logger and is never selected.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List

from s3_log_shipper.utils import is_blank, utc_now

logger = logging.getLogger(__name__)

DEFAULT_LOG_SUFFIX = '.log'


@dataclass(frozen=True)
class CandidateFile:
    """
    Local log file eligible for upload.

    Attributes:
        path (Path): Full path to the file
        name (str): File name without directory
        last_write_time (datetime): Last modification time (UTC, tz-aware)
        size (int): File size in bytes at scan time
    """
    path: Path
    name: str
    last_write_time: datetime
    size: int = 0

    @classmethod
    def from_path(cls, path: Path) -> 'CandidateFile':
        """
        Build a candidate from a file on disk.

        Raises:
            OSError: If the file cannot be stat'ed (e.g. deleted meanwhile)
        """
        stat = path.stat()
        return cls(
            path=path,
            name=path.name,
            last_write_time=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            size=stat.st_size,
        )


def start_of_utc_day(moment: datetime) -> datetime:
    """Midnight UTC of the day containing ``moment``."""
    return moment.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


class FileSelector:
    """
    Scans a folder for log files ready to ship.

    Example:
        >>> selector = FileSelector('.log')
        >>> for candidate in selector.scan('/var/log/myapp'):
        ...     print(candidate.name, candidate.last_write_time)

    Attributes:
        log_suffix (str): File name suffix to match (case-insensitive)
        clock: Callable returning the current UTC time
    """

    def __init__(self, log_suffix: str = DEFAULT_LOG_SUFFIX,
                 clock: Callable[[], datetime] = utc_now):
        self.log_suffix = log_suffix
        self.clock = clock

    def matches_suffix(self, name: str) -> bool:
        return name.lower().endswith(self.log_suffix.lower())

    def is_eligible(self, candidate: CandidateFile, today: datetime) -> bool:
        """Check suffix and that the file was last written before ``today``."""
        return self.matches_suffix(candidate.name) and candidate.last_write_time < today

    def scan(self, folder) -> List[CandidateFile]:
        """
        List closed log files in ``folder`` (non-recursive).

        Args:
            folder: Directory to scan

        Returns:
            list: Eligible files sorted by path. Empty if the folder is
            missing.

        Raises:
            OSError: If the directory exists but cannot be listed
        """
        if is_blank(folder):
            return []

        directory = Path(folder)
        if not directory.exists():
            logger.debug(f"Log folder does not exist, nothing to upload: {directory}")
            return []

        # Recomputed per scan so a file becomes eligible once midnight has passed
        today = start_of_utc_day(self.clock())

        candidates = []
        skipped_active = 0

        for entry in sorted(directory.iterdir()):
            if not self.matches_suffix(entry.name) or not entry.is_file():
                continue

            try:
                candidate = CandidateFile.from_path(entry)
            except OSError as e:
                logger.debug(f"Skipping {entry.name}, cannot stat: {e}")
                continue

            if not self.is_eligible(candidate, today):
                skipped_active += 1
                continue

            candidates.append(candidate)

        logger.debug(
            f"Scan of {directory}: {len(candidates)} files to upload, "
            f"{skipped_active} still active"
        )
        return candidates
