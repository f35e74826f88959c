"""
Helper functions for formatting data into human-readable strings.
"""

from typing import Union

KIB = 1024
MIB = 1024 * 1024
GIB = 1024 * 1024 * 1024


def _to_int(value: Union[int, str, None]) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def format_size(bytes_size: Union[int, str, None]) -> str:
    """Formats a byte count into a size string (e.g., '145.30 MB')."""
    size = _to_int(bytes_size)
    if size is None:
        return "N/A"
    if size < MIB:
        return f"{size / KIB:.2f} KB"
    if size < GIB:
        return f"{size / MIB:.2f} MB"
    return f"{size / GIB:.2f} GB"


def format_speed(bytes_per_sec: Union[int, str, None]) -> str:
    """Formats a transfer rate in bytes per second (e.g., '1.50 MB/s')."""
    rate = _to_int(bytes_per_sec)
    if rate is None:
        return "N/A"
    if rate < KIB:
        return f"{rate} B/s"
    if rate < MIB:
        return f"{rate / KIB:.2f} KB/s"
    return f"{rate / MIB:.2f} MB/s"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def short_id(content_id: str, length: int = 8) -> str:
    """Returns the abbreviated form of an info-hash used in listings."""
    return content_id[:length].lower()
