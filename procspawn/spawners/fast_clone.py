"""
Fast clone strategy: the interpreter's own vfork-backed process creation.

CPython's subprocess suspends the parent until exec (vfork /
CLONE_VFORK) where the platform allows it; this strategy is only offered
there. Only the three standard streams can be redirected; every other
descriptor is closed in the child.
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Dict, List, Optional

from procspawn.core.environment import build_child_environment
from procspawn.core.errors import SpawnFailure
from procspawn.core.models import CloseAction, DupAction, OpenAction, SpawnRequest
from procspawn.core.waiter import register_popen

from .base import Spawner

logger = logging.getLogger(__name__)


class FastCloneSpawner(Spawner):
    name = "fast_clone"

    def available(self) -> bool:
        return os.name == "posix" and bool(getattr(subprocess, "_USE_VFORK", False))

    def unsupported_reason(self, request: SpawnRequest) -> Optional[str]:
        for action in request.actions:
            if action.fd <= 2 and isinstance(action, CloseAction):
                return f"cannot close standard stream {action.fd}"
            if action.fd > 2 and not isinstance(action, CloseAction):
                return f"cannot redirect fd {action.fd}"
        return None

    def spawn(self, request: SpawnRequest) -> int:
        self.check(request)
        env = build_child_environment(request.env, request.unsetenv_others)
        streams: Dict[int, Optional[int]] = {0: None, 1: None, 2: None}
        opened: List[int] = []
        try:
            for action in request.actions:
                if action.fd > 2:
                    # close_fds already keeps it out of the child
                    continue
                if isinstance(action, DupAction):
                    # actions apply in order: a std source may already be redirected
                    source = streams.get(action.source)
                    streams[action.fd] = action.source if source is None else source
                elif isinstance(action, OpenAction):
                    fd = os.open(action.path, action.flags, action.mode)
                    opened.append(fd)
                    streams[action.fd] = fd
            proc = subprocess.Popen(
                request.argv,
                executable=request.executable,
                stdin=streams[0],
                stdout=streams[1],
                stderr=streams[2],
                env=env,
                cwd=request.chdir,
                close_fds=True,
            )
        except OSError as ex:
            raise SpawnFailure.from_os_error(ex, request.executable) from ex
        finally:
            for fd in opened:
                os.close(fd)
        logger.debug(f"fast_clone pid={proc.pid} argv={request.argv}")
        return register_popen(proc)
