"""
Logging configuration for procspawn.

The library itself only creates module loggers; applications (and the test
suite) call setup_logging() when they want output.
"""

import logging
import sys
import os
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class _FastFileHandler(logging.FileHandler):
    """File handler that can fsync on flush.

    Note: fsync improves visibility at the cost of I/O overhead. Use when
    tailing spawn logs of a long-running service.
    """

    def __init__(self, filename, mode="a", encoding=None, delay=False, *, fsync=False):
        super().__init__(filename, mode=mode, encoding=encoding, delay=delay)
        self._fsync = bool(fsync)

    def flush(self):
        try:
            super().flush()
            if self._fsync and self.stream and hasattr(self.stream, "fileno"):
                os.fsync(self.stream.fileno())
        except OSError:
            # Never let logging flush raise
            pass


def _env_flag(name: str) -> bool:
    v = os.environ.get(name)
    if v is None:
        return False
    return v not in ("0", "false", "False", "no", "NO", "")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
    console_level: Optional[str] = None,
) -> logging.Logger:
    """
    Setup logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path; no file handler when omitted
        format_string: Custom format string
        console_level: Console handler level (defaults to WARNING)

    Returns:
        The "procspawn" package logger
    """
    if format_string is None:
        format_string = DEFAULT_FORMAT

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    # Clear existing handlers
    for h in list(root.handlers):
        root.removeHandler(h)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = _FastFileHandler(log_path, fsync=_env_flag("PROCSPAWN_LOG_FSYNC"))
        fh.setFormatter(logging.Formatter(format_string))
        fh.setLevel(getattr(logging, level.upper()))
        root.addHandler(fh)

    # Console handler (quiet by default)
    ch = logging.StreamHandler(sys.stderr)
    ch_level = console_level or "WARNING"
    ch.setLevel(getattr(logging, ch_level.upper()))
    ch.setFormatter(logging.Formatter(format_string))
    root.addHandler(ch)

    return logging.getLogger("procspawn")
