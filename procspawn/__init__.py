"""
procspawn - fast child process spawning with bounded, deadlock-free I/O.

    from procspawn import Child, spawn, waitpid

    child = Child("git", "log", "-n1", timeout=5, max=1 << 20)
    pid = spawn({"LANG": "C"}, "make", "-j4", chdir="build")
    waitpid(pid)
"""

__version__ = "1.0.0"

from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all
from .utils import setup_logging

__all__ = [*_core_all, "setup_logging"]
