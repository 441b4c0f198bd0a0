"""
Helper functions for formatting data into human-readable strings.
"""

import math


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_space(bytes_size: int) -> str:
    """
    Formats a disk space figure for warnings: whole megabytes (rounded up)
    below one gigabyte, gigabytes with two decimals above.
    """
    mb = bytes_size / 1024 / 1024
    if mb < 1024:
        return f"{math.ceil(mb)}MB"
    return f"{mb / 1024:.2f}GB"


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


def format_time_delta(seconds: float) -> str:
    """
    Formats a signed offset as an ffmpeg time string (e.g., '-0:00:00.340').
    """
    millis_total = round(abs(seconds) * 1000)
    sign = "-" if seconds < 0 and millis_total else ""
    hours, remainder = divmod(millis_total, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{sign}{hours}:{minutes:02}:{secs:02}.{millis:03}"


def parse_time(value: str) -> float:
    """Parses an 'H:MM:SS.fff' timestamp into seconds."""
    hours, minutes, seconds = value.split(":")
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def format_offset_ms(seconds: float) -> str:
    """Formats an offset in seconds as a signed millisecond string."""
    return f"{round(seconds * 1000):+d} ms"
