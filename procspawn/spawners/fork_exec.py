"""
fork + exec strategy.

Always available where os.fork exists. Redirections, environment and
working directory are applied inside the duplicated child; any failure
there ends the child with status 127 instead of returning into parent code.
"""

from __future__ import annotations

import logging
import os
import signal
from typing import Dict

from procspawn.core.environment import build_child_environment
from procspawn.core.errors import SpawnFailure
from procspawn.core.models import CloseAction, DupAction, FdAction, OpenAction, SpawnRequest

from .base import EXEC_FAILED, Spawner, default_signals

logger = logging.getLogger(__name__)


def _apply_action(action: FdAction) -> None:
    if isinstance(action, CloseAction):
        os.close(action.fd)
    elif isinstance(action, DupAction):
        if action.source == action.fd:
            os.set_inheritable(action.fd, True)
        else:
            os.dup2(action.source, action.fd)
    elif isinstance(action, OpenAction):
        fd = os.open(action.path, action.flags, action.mode)
        if fd == action.fd:
            os.set_inheritable(fd, True)
        else:
            os.dup2(fd, action.fd)
            os.close(fd)


def _exec_child(request: SpawnRequest, env: Dict[str, str]) -> None:
    # runs in the duplicated child only; never returns
    try:
        for sig in default_signals():
            signal.signal(sig, signal.SIG_DFL)
        for action in request.actions:
            _apply_action(action)
        if request.chdir:
            os.chdir(request.chdir)
        os.execvpe(request.executable, request.argv, env)
    finally:
        os._exit(EXEC_FAILED)


class ForkExecSpawner(Spawner):
    name = "fork_exec"

    def available(self) -> bool:
        return hasattr(os, "fork")

    def spawn(self, request: SpawnRequest) -> int:
        self.check(request)
        # computed before forking: the child must not allocate much
        env = build_child_environment(request.env, request.unsetenv_others)
        try:
            pid = os.fork()
        except OSError as ex:
            raise SpawnFailure.from_os_error(ex, request.executable) from ex
        if pid == 0:
            _exec_child(request, env)
        logger.debug(f"fork_exec pid={pid} argv={request.argv}")
        return pid
