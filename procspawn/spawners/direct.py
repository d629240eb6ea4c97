"""
Direct spawn strategy built on os.posix_spawnp.

Environment, argv and file actions are applied atomically at process
creation. posix_spawn has no portable working-directory action, so requests
with ``chdir`` are left to the other strategies.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Tuple

from procspawn.core.environment import build_child_environment
from procspawn.core.errors import SpawnFailure
from procspawn.core.models import CloseAction, DupAction, FdAction, OpenAction, SpawnRequest

from .base import Spawner, default_signals

logger = logging.getLogger(__name__)


def file_action(action: FdAction) -> Tuple:
    """Translate an FdAction into an os.posix_spawn file_actions entry."""
    if isinstance(action, CloseAction):
        return (os.POSIX_SPAWN_CLOSE, action.fd)
    if isinstance(action, DupAction):
        return (os.POSIX_SPAWN_DUP2, action.source, action.fd)
    if isinstance(action, OpenAction):
        return (os.POSIX_SPAWN_OPEN, action.fd, action.path, action.flags, action.mode)
    raise TypeError(f"unknown fd action: {action!r}")


class DirectSpawner(Spawner):
    name = "direct_spawn"

    def available(self) -> bool:
        return hasattr(os, "posix_spawnp")

    def unsupported_reason(self, request: SpawnRequest) -> Optional[str]:
        if request.chdir is not None:
            return "chdir is not supported by posix_spawn"
        return None

    def spawn(self, request: SpawnRequest) -> int:
        self.check(request)
        env = build_child_environment(request.env, request.unsetenv_others)
        actions: List[Tuple] = [file_action(a) for a in request.actions]
        try:
            pid = os.posix_spawnp(
                request.executable,
                request.argv,
                env,
                file_actions=actions,
                setsigdef=default_signals(),
            )
        except OSError as ex:
            raise SpawnFailure.from_os_error(ex, request.executable) from ex
        logger.debug(f"direct_spawn pid={pid} argv={request.argv}")
        return pid
