"""
Core process-execution pieces: argument normalization, redirection,
dispatch, I/O pumping, reaping and the Child runner.
"""

from .child import Child, ChildHandle, backtick, popen4, system
from .configuration import SpawnSettings, get_settings, load_settings, reset_settings
from .dispatcher import Strategy, available_strategies, fspawn, pspawn, select_strategy, spawn, vspawn
from .errors import (
    CapabilityUnavailable,
    ErrorCategory,
    InvalidArgument,
    MaximumOutputExceeded,
    SpawnError,
    SpawnFailure,
    TimeoutExceeded,
)
from .models import ExitStatus, RunResult, SpawnRequest
from .redirection import CLOSE
from .waiter import waitpid

__all__ = [
    "CLOSE",
    "CapabilityUnavailable",
    "Child",
    "ChildHandle",
    "ErrorCategory",
    "ExitStatus",
    "InvalidArgument",
    "MaximumOutputExceeded",
    "RunResult",
    "SpawnError",
    "SpawnFailure",
    "SpawnRequest",
    "SpawnSettings",
    "Strategy",
    "TimeoutExceeded",
    "available_strategies",
    "backtick",
    "fspawn",
    "get_settings",
    "load_settings",
    "popen4",
    "pspawn",
    "reset_settings",
    "select_strategy",
    "spawn",
    "system",
    "vspawn",
    "waitpid",
]
