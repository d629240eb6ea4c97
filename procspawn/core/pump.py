"""
I/O pump: feeds a child's stdin while draining its stdout and stderr.

A single readiness loop multiplexes the three pipes so that neither side
can block the other: large input and large output are exchanged without
deadlock. Timeout and output-size bounds are checked every cycle; when one
trips, the pump stops and reports which bound it was, keeping whatever was
collected so far. Killing and reaping the child is the caller's job.
"""

from __future__ import annotations

import logging
import os
import selectors
import time
from typing import BinaryIO, Dict, Optional

from .configuration import get_settings
from .models import PumpOutcome

logger = logging.getLogger(__name__)


def _bound(value: Optional[float]) -> Optional[float]:
    # zero and negative bounds mean unbounded
    if value is None or value <= 0:
        return None
    return value


def pump(
    input: Optional[bytes],
    stdin: Optional[BinaryIO],
    stdout: Optional[BinaryIO],
    stderr: Optional[BinaryIO],
    timeout: Optional[float] = None,
    max_output: Optional[int] = None,
    chunk_size: Optional[int] = None,
) -> PumpOutcome:
    """Exchange data with the child until both readers reach EOF.

    input      - Bytes written to ``stdin``; None or b"" closes it at once.
    timeout    - Wall-clock budget in seconds for the whole exchange.
    max_output - Limit on the combined size of stdout and stderr.

    Any of the three streams may be None when the child's stream was
    redirected elsewhere; a None reader contributes no output.

    ``stdin`` is closed when all input is written (or the child stops
    reading); readers are closed at EOF. Any stream still open when a bound
    trips is left for the caller to close.
    """
    timeout = _bound(timeout)
    max_output = _bound(max_output)
    chunk_size = chunk_size or get_settings().read_chunk_size

    start = time.monotonic()
    chunks: Dict[str, list] = {"out": [], "err": []}
    total = 0
    remaining = memoryview(input or b"")
    offset = 0

    def outcome(violation: Optional[str] = None) -> PumpOutcome:
        return PumpOutcome(
            out=b"".join(chunks["out"]),
            err=b"".join(chunks["err"]),
            runtime=time.monotonic() - start,
            violation=violation,
        )

    selector = selectors.DefaultSelector()
    try:
        for name, stream in (("out", stdout), ("err", stderr)):
            if stream is None:
                continue
            os.set_blocking(stream.fileno(), False)
            selector.register(stream, selectors.EVENT_READ, name)
        if stdin is None:
            if len(remaining):
                logger.warning(f"stdin is redirected; discarding {len(remaining)} bytes of input")
        elif len(remaining):
            os.set_blocking(stdin.fileno(), False)
            selector.register(stdin, selectors.EVENT_WRITE)
        else:
            stdin.close()

        while selector.get_map():
            wait = None
            if timeout is not None:
                wait = timeout - (time.monotonic() - start)
                if wait <= 0:
                    logger.debug(f"pump timed out after {timeout}s")
                    return outcome("timeout")

            ready = selector.select(wait)
            if not ready:
                logger.debug(f"pump timed out after {timeout}s")
                return outcome("timeout")

            got_output = False
            for key, _ in ready:
                stream = key.fileobj
                if stream is stdin:
                    try:
                        offset += os.write(stdin.fileno(), remaining[offset:offset + chunk_size])
                    except (BlockingIOError, InterruptedError):
                        continue
                    except BrokenPipeError:
                        # child stopped reading; discard the rest
                        logger.debug(f"stdin closed by child after {offset} bytes")
                        offset = len(remaining)
                    if offset >= len(remaining):
                        selector.unregister(stdin)
                        stdin.close()
                else:
                    try:
                        data = os.read(stream.fileno(), chunk_size)
                    except (BlockingIOError, InterruptedError):
                        continue
                    if not data:
                        selector.unregister(stream)
                        stream.close()
                        continue
                    chunks[key.data].append(data)
                    total += len(data)
                    got_output = True

            if got_output and max_output is not None and total > max_output:
                logger.debug(f"pump output {total} bytes exceeds maximum {max_output}")
                return outcome("max_output")

        return outcome()
    finally:
        selector.close()
