"""
Host platform helpers.
"""

import sys


def is_windows() -> bool:
    return sys.platform.startswith(("win", "cygwin", "msys"))


def bin_sh() -> str:
    """Shell used for single-string commands containing metacharacters."""
    return "sh" if is_windows() else "/bin/sh"


def null_device() -> str:
    return "NUL" if is_windows() else "/dev/null"
