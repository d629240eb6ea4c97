"""
Process builder strategy: subprocess.Popen as a portable, higher-level
launcher.

Used by the relay backend on hosts without native descriptor-level
spawning. Standard streams without an explicit redirection become pipes
owned by the returned Popen; descriptors above 2 can only be closed.
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Any, Dict, Iterable, List, Optional

from procspawn.core.environment import build_child_environment
from procspawn.core.errors import InvalidArgument, SpawnFailure
from procspawn.core.models import CloseAction, DupAction, OpenAction, SpawnRequest
from procspawn.core.waiter import register_popen

from .base import Spawner

logger = logging.getLogger(__name__)

# Options a Popen-based launcher cannot honour
UNSUPPORTED_OPTIONS = frozenset({"pgroup", "new_pgroup", "umask", "close_others"})
UNSUPPORTED_PREFIXES = ("rlimit_",)


def check_options(options: Iterable[Any]) -> None:
    """Raise InvalidArgument naming every option key this launcher rejects."""
    bad = sorted(
        str(key)
        for key in options
        if isinstance(key, str)
        and (key in UNSUPPORTED_OPTIONS or key.startswith(UNSUPPORTED_PREFIXES))
    )
    if bad:
        raise InvalidArgument(f"spawn: unsupported options {', '.join(bad)}")


class ProcessBuilderSpawner(Spawner):
    name = "process_builder"

    def available(self) -> bool:
        return True

    def unsupported_reason(self, request: SpawnRequest) -> Optional[str]:
        for action in request.actions:
            if action.fd > 2 and not isinstance(action, CloseAction):
                return f"cannot redirect fd {action.fd}"
        return None

    def start(self, request: SpawnRequest) -> subprocess.Popen:
        """Launch the child and return the Popen that owns its stream pipes."""
        self.check(request)
        env = build_child_environment(request.env, request.unsetenv_others)
        streams: Dict[int, Any] = {}
        opened: List[int] = []
        try:
            for action in request.actions:
                if action.fd > 2:
                    # close_fds covers it
                    continue
                if isinstance(action, CloseAction):
                    streams[action.fd] = subprocess.DEVNULL
                elif isinstance(action, DupAction):
                    if action.source in streams:
                        streams[action.fd] = streams[action.source]
                    elif action.fd == 2 and action.source == 1:
                        streams[2] = subprocess.STDOUT
                    else:
                        streams[action.fd] = action.source
                elif isinstance(action, OpenAction):
                    fd = os.open(action.path, action.flags, action.mode)
                    opened.append(fd)
                    streams[action.fd] = fd
            proc = subprocess.Popen(
                request.argv,
                executable=request.executable,
                stdin=streams.get(0, subprocess.PIPE),
                stdout=streams.get(1, subprocess.PIPE),
                stderr=streams.get(2, subprocess.PIPE),
                env=env,
                cwd=request.chdir,
                close_fds=True,
                bufsize=0,
            )
        except OSError as ex:
            raise SpawnFailure.from_os_error(ex, request.executable) from ex
        finally:
            for fd in opened:
                os.close(fd)
        register_popen(proc)
        logger.debug(f"process_builder pid={proc.pid} argv={request.argv}")
        return proc

    def spawn(self, request: SpawnRequest) -> int:
        proc = self.start(request)
        # the pid-only interface has no use for the stream pipes
        for stream in (proc.stdin, proc.stdout, proc.stderr):
            if stream is not None:
                stream.close()
        return proc.pid
