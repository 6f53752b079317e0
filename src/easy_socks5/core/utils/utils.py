"""Common utility functions."""

from typing import Final

BYTES_PER_KB: Final = 1024

SIZE_UNITS: Final = ("B", "KB", "MB", "GB", "TB")


def format_bytes(bytes_: float) -> str:
    """Format a byte count with a binary unit, e.g. ``1.5 KB``."""
    for unit in SIZE_UNITS[:-1]:
        if bytes_ < BYTES_PER_KB:
            return f"{bytes_:.1f} {unit}"
        bytes_ /= BYTES_PER_KB
    return f"{bytes_:.1f} {SIZE_UNITS[-1]}"
