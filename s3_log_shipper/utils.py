#!/usr/bin/env python3
"""
Utility functions for S3 Log Shipper
Common helpers for time, blank checks and byte formatting
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def is_blank(value) -> bool:
    """True for None, empty or whitespace-only values."""
    return value is None or not str(value).strip()


def format_bytes(bytes_value: int, precision: int = 2) -> str:
    """Format bytes as human-readable string with auto-scaling (KB/MB/GB/TB)."""
    if bytes_value < 1024**2:
        return f"{bytes_value / 1024:.{precision}f} KB"
    elif bytes_value < 1024**3:
        return f"{bytes_value / 1024**2:.{precision}f} MB"
    elif bytes_value < 1024**4:
        return f"{bytes_value / 1024**3:.{precision}f} GB"
    else:
        return f"{bytes_value / 1024**4:.{precision}f} TB"
