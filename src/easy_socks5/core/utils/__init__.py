"""Utility functions and helpers."""

from easy_socks5.core.utils.log_config import LOG_DIR, setup_logging
from easy_socks5.core.utils.utils import format_bytes

__all__ = ["format_bytes", "LOG_DIR", "setup_logging"]
