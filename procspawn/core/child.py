"""
Runner: execute a command to completion, feeding input and collecting output.

    >>> child = Child("echo", "hello", "world")
    >>> child.out
    b'hello world\\n'
    >>> child.status.code
    0

Options beyond the spawn options:

    input   - bytes (or str, encoded as UTF-8) written to the child's stdin
    timeout - seconds the child may run before TimeoutExceeded is raised
    max     - bytes of combined stdout/stderr allowed before
              MaximumOutputExceeded is raised

Both bound errors carry whatever output was collected before the abort.

Redirections of the standard streams given in the spawn options are
honoured on both backends: only the streams left alone are piped, so a
redirected stream adds nothing to out or err. ``input`` cannot be combined
with a stdin redirection.
"""

from __future__ import annotations

import errno
import logging
import os
from typing import Any, BinaryIO, Dict, List, NamedTuple, Optional, Set, Tuple

from procspawn.spawners.process_builder import ProcessBuilderSpawner, check_options

from .arguments import extract_spawn_arguments
from .configuration import get_settings
from .dispatcher import NATIVE_STRATEGIES, available_strategies, spawn, spawn_request
from .errors import InvalidArgument, MaximumOutputExceeded, SpawnFailure, TimeoutExceeded
from .models import ExitStatus, PumpOutcome, RunResult
from .pump import pump
from .redirection import CLOSE, build_request, fd_to_fileno, is_fd
from .relay import relay_pump
from .waiter import terminate_and_reap, waitpid

logger = logging.getLogger(__name__)


class ChildHandle(NamedTuple):
    """A spawned child and the parent ends of its standard stream pipes.

    A stream the caller redirected elsewhere has no pipe and is None.
    """
    pid: int
    stdin: Optional[BinaryIO]
    stdout: Optional[BinaryIO]
    stderr: Optional[BinaryIO]

    def close(self) -> None:
        for stream in (self.stdin, self.stdout, self.stderr):
            if stream is not None:
                stream.close()


def redirected_std_fds(options: Dict[Any, Any]) -> Set[int]:
    """The standard descriptors (0, 1, 2) that ``options`` already redirects."""
    return {fd_to_fileno(key) for key in options if is_fd(key)} & {0, 1, 2}


def _popen4(env: Dict[str, Optional[str]], argv: List[Any], options: Dict[Any, Any]) -> ChildHandle:
    redirected = redirected_std_fds(options)
    # fd -> (parent end, child end)
    pipes: Dict[int, Tuple[int, int]] = {}
    try:
        for fd in (0, 1, 2):
            if fd in redirected:
                continue
            r, w = os.pipe()
            pipes[fd] = (w, r) if fd == 0 else (r, w)
    except BaseException:
        for ends in pipes.values():
            for end in ends:
                os.close(end)
        raise

    # the pipes go first so the caller's redirections can refer to them,
    # e.g. err => out after out is the pipe
    spawn_options: Dict[Any, Any] = {}
    for fd, (parent_end, child_end) in pipes.items():
        spawn_options[fd] = child_end
        spawn_options[parent_end] = CLOSE
    spawn_options.update(options)
    try:
        pid = spawn_request(build_request(env, argv, spawn_options))
    except BaseException:
        for parent_end, _ in pipes.values():
            os.close(parent_end)
        raise
    finally:
        # child ends belong to the child now
        for _, child_end in pipes.values():
            os.close(child_end)

    def parent_stream(fd: int, mode: str) -> Optional[BinaryIO]:
        if fd not in pipes:
            return None
        return os.fdopen(pipes[fd][0], mode, buffering=0)

    return ChildHandle(pid, parent_stream(0, "wb"), parent_stream(1, "rb"), parent_stream(2, "rb"))


def popen4(*args: Any, **kwargs: Any) -> ChildHandle:
    """Spawn a child with pipes on stdin, stdout and stderr.

    Takes the same arguments as spawn(). The caller owns the returned
    streams and must reap ``pid`` with waitpid().
    """
    env, argv, options = extract_spawn_arguments(*args, **kwargs)
    return _popen4(env, argv, options)


def system(*args: Any, **kwargs: Any) -> bool:
    """Run a command, wait for it, and report whether it exited zero.

    A missing executable is reported as False rather than raised.
    """
    try:
        pid = spawn(*args, **kwargs)
    except SpawnFailure as ex:
        if ex.errno == errno.ENOENT:
            logger.debug(f"system: {ex}")
            return False
        raise
    return waitpid(pid).success


def backtick(cmd: str) -> Tuple[bytes, ExitStatus]:
    """Run ``cmd`` through the shell and return its stdout and exit status."""
    shell = get_settings().shell
    r, w = os.pipe()
    try:
        pid = spawn((shell, shell), "-c", cmd, {"out": w, r: CLOSE})
    except BaseException:
        os.close(r)
        raise
    finally:
        os.close(w)
    with os.fdopen(r, "rb") as reader:
        out = reader.read()
    return out, waitpid(pid)


def default_backend() -> str:
    backend = get_settings().default_backend
    if backend:
        return backend
    if available_strategies() & frozenset(NATIVE_STRATEGIES):
        return "pump"
    return "relay"


class Child:
    """Run a command to completion on construction.

    Accepts the spawn() calling convention plus ``input``, ``timeout`` and
    ``max`` options. ``backend`` selects the "pump" (native spawn and a
    readiness loop) or "relay" (process builder and relay threads)
    implementation; by default the native one is used when available.

    After construction ``out``, ``err``, ``status`` and ``runtime`` are set.
    """

    def __init__(self, *args: Any, backend: Optional[str] = None, **kwargs: Any):
        self.env, self.argv, options = extract_spawn_arguments(*args, **kwargs)
        self.options = dict(options)
        self.input = self.options.pop("input", None)
        if isinstance(self.input, str):
            self.input = self.input.encode("utf-8")
        self.timeout = self.options.pop("timeout", None)
        self.max = self.options.pop("max", None)
        if "chdir" in self.options and self.options["chdir"] is None:
            del self.options["chdir"]
        if self.input and 0 in redirected_std_fds(self.options):
            raise InvalidArgument("input cannot be combined with a stdin redirection")
        self.backend = backend or default_backend()

        self.out = b""
        self.err = b""
        self.status: Optional[ExitStatus] = None
        self.runtime = 0.0

        if self.backend == "pump":
            self._exec_pump()
        elif self.backend == "relay":
            self._exec_relay()
        else:
            raise ValueError(f"Unknown backend: {self.backend}")

    def success(self) -> bool:
        """Determine if the process did exit with a zero exit status."""
        return self.status is not None and self.status.success

    @property
    def result(self) -> RunResult:
        return RunResult(out=self.out, err=self.err, status=self.status, runtime=self.runtime)

    def _finish(self, outcome: PumpOutcome) -> None:
        self.out, self.err, self.runtime = outcome.out, outcome.err, outcome.runtime
        if outcome.violation == "timeout":
            raise TimeoutExceeded(
                f"command timed out after {self.timeout}s", outcome.out, outcome.err, outcome.runtime
            )
        if outcome.violation == "max_output":
            raise MaximumOutputExceeded(
                f"command produced more than {self.max} bytes", outcome.out, outcome.err, outcome.runtime
            )

    def _exec_pump(self) -> None:
        # spawn the process and hook up the pipes
        handle = _popen4(self.env, self.argv, self.options)
        try:
            outcome = pump(
                self.input, handle.stdin, handle.stdout, handle.stderr, self.timeout, self.max
            )
            self._finish(outcome)
            self.status = waitpid(handle.pid)
        except BaseException:
            handle.close()
            if self.status is None:
                self.status = terminate_and_reap(handle.pid)
            raise
        finally:
            # let's be absolutely certain these are closed
            handle.close()

    def _exec_relay(self) -> None:
        check_options(self.options)
        request = build_request(self.env, self.argv, self.options)
        proc = ProcessBuilderSpawner().start(request)
        try:
            outcome = relay_pump(proc, self.input, self.timeout, self.max)
            if outcome.violation:
                # the relay controller has already signalled the child
                self.status = waitpid(proc.pid)
            self._finish(outcome)
            self.status = waitpid(proc.pid)
        except BaseException:
            if self.status is None:
                self.status = terminate_and_reap(proc.pid)
            raise
        finally:
            for stream in (proc.stdin, proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
