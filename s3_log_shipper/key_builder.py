#!/usr/bin/env python3
"""
Key Builder for S3 Log Shipper
Maps a closed log file to its S3 object key

Key layout:
    {YYYYMM}/{filename}                  default
    {YYYYMM}/{prefix}-{filename}         with file_prefix
    {path}/{prefix}-{filename}           with s3 path template

Placeholders:
    %timestamp%  in file_prefix -> upload time (YYYYMMDDhhmmss, UTC)
    %timestamp%  in s3 path     -> file month partition (YYYYMM)
    %hostname%   in file_prefix -> host name of this machine
"""

import socket
from datetime import datetime, timezone
from typing import Callable, Optional

from s3_log_shipper.file_selector import CandidateFile
from s3_log_shipper.utils import is_blank, utc_now

TIMESTAMP_TOKEN = '%timestamp%'
HOSTNAME_TOKEN = '%hostname%'

PARTITION_FORMAT = '%Y%m'
PREFIX_TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'

# Resolved once per process
HOSTNAME = socket.gethostname()


def build_key(candidate: CandidateFile, prefix_template: Optional[str] = None,
              path_template: Optional[str] = None, now: Optional[datetime] = None,
              hostname: Optional[str] = None) -> str:
    """
    Build the S3 key for a file.

    Args:
        candidate: File to upload
        prefix_template: Optional file name prefix, may contain placeholders
        path_template: Optional remote path, may contain %timestamp%
        now: Upload time used for %timestamp% in the prefix (default: now)
        hostname: Value for %hostname% (default: this host)

    Returns:
        str: S3 object key

    Examples:
        app.log written 2024-03-15, prefix "svc-%hostname%":
            202403/svc-web01-app.log
        same file, path "archive/%timestamp%":
            archive/202403/svc-web01-app.log
        same file, path "archive":
            202403/archive/svc-web01-app.log
    """
    time_partition = candidate.last_write_time.astimezone(timezone.utc).strftime(PARTITION_FORMAT)

    file_name = candidate.name
    if file_name and not is_blank(prefix_template):
        prefix = prefix_template
        if TIMESTAMP_TOKEN in prefix:
            moment = now or utc_now()
            prefix = prefix.replace(
                TIMESTAMP_TOKEN, moment.astimezone(timezone.utc).strftime(PREFIX_TIMESTAMP_FORMAT)
            )
        if HOSTNAME_TOKEN in prefix:
            prefix = prefix.replace(HOSTNAME_TOKEN, hostname or HOSTNAME)

        file_name = f"{prefix}-{candidate.name}"

    key = f"{time_partition}/{file_name}"

    if not is_blank(path_template):
        if TIMESTAMP_TOKEN in path_template:
            path = path_template.replace(TIMESTAMP_TOKEN, time_partition)
        else:
            path = f"{time_partition}/{path_template}"

        key = f"{path}/{file_name}"

    return key


class KeyBuilder:
    """
    Binds the configured templates for repeated key building.

    Attributes:
        prefix_template (str): File name prefix template or None
        path_template (str): Remote path template or None
        hostname (str): Value substituted for %hostname%
    """

    def __init__(self, prefix_template: Optional[str] = None,
                 path_template: Optional[str] = None,
                 hostname: Optional[str] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.prefix_template = prefix_template
        self.path_template = path_template
        self.hostname = hostname or HOSTNAME
        self.clock = clock

    def build_key(self, candidate: CandidateFile) -> str:
        return build_key(
            candidate,
            prefix_template=self.prefix_template,
            path_template=self.path_template,
            now=self.clock(),
            hostname=self.hostname,
        )
