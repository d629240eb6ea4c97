"""
Exception taxonomy for process spawning and execution.

Every error raised by procspawn derives from SpawnError and carries an
ErrorCategory so callers can branch on the kind of failure without
matching on class names.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Categories of errors in the system."""
    CAPABILITY_UNAVAILABLE = "capability_unavailable"
    INVALID_ARGUMENT = "invalid_argument"
    SPAWN_FAILURE = "spawn_failure"
    TIMEOUT = "timeout"
    MAXIMUM_OUTPUT = "maximum_output"


class SpawnError(Exception):
    """Base class for all procspawn errors."""
    category: ErrorCategory = ErrorCategory.SPAWN_FAILURE


class CapabilityUnavailable(SpawnError, NotImplementedError):
    """The requested spawn strategy is not supported on this host or for this request."""
    category = ErrorCategory.CAPABILITY_UNAVAILABLE

    def __init__(self, strategy: str, reason: str = "not supported on this platform"):
        super().__init__(f"{strategy}: {reason}")
        self.strategy = strategy
        self.reason = reason


class InvalidArgument(SpawnError, ValueError):
    """Unsupported option key, bad descriptor or conflicting redirection."""
    category = ErrorCategory.INVALID_ARGUMENT


class SpawnFailure(SpawnError, OSError):
    """The underlying process-creation call failed.

    The originating errno and filename are preserved so callers can still
    distinguish ENOENT from EACCES.
    """
    category = ErrorCategory.SPAWN_FAILURE

    def __init__(self, errno: int, strerror: str, filename: Optional[str] = None):
        if filename is None:
            OSError.__init__(self, errno, strerror)
        else:
            OSError.__init__(self, errno, strerror, filename)

    @classmethod
    def from_os_error(cls, ex: OSError, filename: Optional[str] = None) -> "SpawnFailure":
        return cls(ex.errno or 0, ex.strerror or str(ex), filename or ex.filename)


class _BoundExceeded(SpawnError):
    """A resource bound tripped while the child was running.

    Whatever output was collected before the abort is retained on the
    exception.
    """

    def __init__(self, message: str, out: bytes = b"", err: bytes = b"", runtime: float = 0.0):
        super().__init__(message)
        self.out = out
        self.err = err
        self.runtime = runtime


class TimeoutExceeded(_BoundExceeded):
    """Wall-clock budget exhausted before the child finished its I/O."""
    category = ErrorCategory.TIMEOUT


class MaximumOutputExceeded(_BoundExceeded):
    """Combined stdout and stderr size went over the configured maximum."""
    category = ErrorCategory.MAXIMUM_OUTPUT
