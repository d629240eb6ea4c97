"""
Utility modules for procspawn.

This package contains helpers for logging setup and host platform details.
"""

from .logging_config import setup_logging
from .platform import bin_sh, is_windows, null_device

__all__ = [
    "setup_logging",
    "bin_sh",
    "is_windows",
    "null_device",
]
