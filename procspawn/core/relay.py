"""
Relay backend: one thread per pipe instead of a readiness loop.

Used with the process builder, whose pipes are plain Popen streams. The
controller polls the relay threads, enforces timeout and output bounds,
and on a violation signals the child, tells the relays to stop and waits
a bounded grace period for them before returning what was collected.
"""

from __future__ import annotations

import logging
import os
import selectors
import subprocess
import threading
import time
from typing import BinaryIO, List, Optional

from .configuration import get_settings
from .models import PumpOutcome

logger = logging.getLogger(__name__)


class _Tally:
    """Output collected by the relays, shared with the controller."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.out: List[bytes] = []
        self.err: List[bytes] = []
        self.total = 0

    def add(self, name: str, data: bytes) -> None:
        with self.lock:
            getattr(self, name).append(data)
            self.total += len(data)

    def snapshot(self):
        with self.lock:
            return b"".join(self.out), b"".join(self.err), self.total


class InputRelay(threading.Thread):
    def __init__(
        self, stream: BinaryIO, data: bytes, stop_evt: threading.Event, chunk_size: int, poll_interval: float
    ):
        super().__init__(name="relay-stdin", daemon=True)
        self.stream = stream
        self.data = data
        self.stop_evt = stop_evt
        self.chunk_size = chunk_size
        self.poll_interval = poll_interval

    def run(self) -> None:
        view = memoryview(self.data)
        offset = 0
        selector = selectors.DefaultSelector()
        try:
            # non-blocking so a full pipe never hides the stop event
            os.set_blocking(self.stream.fileno(), False)
            selector.register(self.stream, selectors.EVENT_WRITE)
            while offset < len(view) and not self.stop_evt.is_set():
                if not selector.select(self.poll_interval):
                    continue
                offset += self.stream.write(view[offset:offset + self.chunk_size]) or 0
        except BrokenPipeError:
            logger.debug(f"stdin closed by child after {offset} bytes")
        except OSError as ex:
            if not self.stop_evt.is_set():
                logger.warning(f"stdin relay failed: {ex}")
        finally:
            selector.close()
            self.stream.close()


class OutputRelay(threading.Thread):
    def __init__(
        self,
        name: str,
        stream: BinaryIO,
        tally: _Tally,
        stop_evt: threading.Event,
        chunk_size: int,
        poll_interval: float,
    ):
        super().__init__(name=f"relay-{name}", daemon=True)
        self.stream_name = name
        self.stream = stream
        self.tally = tally
        self.stop_evt = stop_evt
        self.chunk_size = chunk_size
        self.poll_interval = poll_interval

    def run(self) -> None:
        selector = selectors.DefaultSelector()
        try:
            selector.register(self.stream, selectors.EVENT_READ)
            # a grandchild may hold the pipe open long after the child is
            # gone, so never block in read() past the stop event
            while not self.stop_evt.is_set():
                if not selector.select(self.poll_interval):
                    continue
                data = self.stream.read(self.chunk_size)
                if not data:
                    break
                self.tally.add(self.stream_name, data)
        except OSError as ex:
            if not self.stop_evt.is_set():
                logger.warning(f"{self.stream_name} relay failed: {ex}")
        finally:
            selector.close()
            self.stream.close()


class RelayPump:
    """Drives a Popen's pipes with relay threads until they finish or a bound trips."""

    def __init__(self, proc: subprocess.Popen, input: Optional[bytes] = None):
        settings = get_settings()
        self.proc = proc
        self.poll_interval = settings.relay_poll_interval
        self.grace_period = settings.relay_grace_period
        self.kill_signum = settings.kill_signum
        self.stop_evt = threading.Event()
        self.tally = _Tally()
        self.threads: List[threading.Thread] = []

        chunk = settings.read_chunk_size
        poll = self.poll_interval
        if proc.stdin is not None:
            if input:
                self.threads.append(InputRelay(proc.stdin, input, self.stop_evt, chunk, poll))
            else:
                proc.stdin.close()
        if proc.stdout is not None:
            self.threads.append(OutputRelay("out", proc.stdout, self.tally, self.stop_evt, chunk, poll))
        if proc.stderr is not None:
            self.threads.append(OutputRelay("err", proc.stderr, self.tally, self.stop_evt, chunk, poll))

    def run(self, timeout: Optional[float] = None, max_output: Optional[int] = None) -> PumpOutcome:
        timeout = timeout if timeout and timeout > 0 else None
        max_output = max_output if max_output and max_output > 0 else None
        start = time.monotonic()
        for t in self.threads:
            t.start()

        violation = None
        while True:
            alive = [t for t in self.threads if t.is_alive()]
            if max_output is not None and self.tally.total > max_output:
                violation = "max_output"
                break
            if not alive:
                break
            if timeout is not None and time.monotonic() - start >= timeout:
                violation = "timeout"
                break
            alive[0].join(self.poll_interval)

        if violation:
            logger.debug(f"relay {violation} for pid {self.proc.pid}")
            self.cancel()
            self.wait(self.grace_period)
        return self.snapshot(time.monotonic() - start, violation)

    def cancel(self) -> None:
        """Signal the child and ask the relays to stop. Safe to call twice."""
        self.stop_evt.set()
        try:
            # no-op once the child has been reaped
            self.proc.send_signal(self.kill_signum)
        except ProcessLookupError:
            logger.debug(f"pid {self.proc.pid} already gone")

    def wait(self, grace: float) -> None:
        deadline = time.monotonic() + grace
        for t in self.threads:
            t.join(max(0.0, deadline - time.monotonic()))
        stuck = [t.name for t in self.threads if t.is_alive()]
        if stuck:
            logger.debug(f"relays still running after grace period: {stuck}")

    def close(self) -> None:
        """Stop the relays and close every pipe of the child. Safe to call twice.

        Relays check the stop event once per poll interval, so this returns
        promptly even when a grandchild still holds the pipes open.
        """
        self.stop_evt.set()
        for t in self.threads:
            if t.is_alive():
                t.join()
        for stream in (self.proc.stdin, self.proc.stdout, self.proc.stderr):
            if stream is not None:
                stream.close()

    def snapshot(self, runtime: float, violation: Optional[str] = None) -> PumpOutcome:
        out, err, _ = self.tally.snapshot()
        return PumpOutcome(out=out, err=err, runtime=runtime, violation=violation)


def relay_pump(
    proc: subprocess.Popen,
    input: Optional[bytes] = None,
    timeout: Optional[float] = None,
    max_output: Optional[int] = None,
) -> PumpOutcome:
    """Relay ``input`` into ``proc`` and collect its output under the given bounds.

    The relay threads are finished and all of ``proc``'s pipes closed by
    the time this returns or raises.
    """
    relay = RelayPump(proc, input)
    try:
        return relay.run(timeout, max_output)
    finally:
        relay.close()
