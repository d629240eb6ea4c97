"""
Spawn dispatcher: picks a process-creation strategy for a request.

Public entry points share one calling convention::

    spawn([env], command, [arg, ...], [options], **options) -> pid

``spawn`` uses the best strategy the host supports for the request;
``vspawn``, ``pspawn`` and ``fspawn`` force fast clone, direct spawn and
fork + exec respectively and raise CapabilityUnavailable if they cannot
honour the request.
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from typing import Any, FrozenSet, Iterable, List, Optional

from procspawn.spawners import get_spawner

from .arguments import extract_spawn_arguments
from .configuration import get_settings
from .errors import CapabilityUnavailable
from .models import SpawnRequest
from .redirection import build_request

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    FAST_CLONE = "fast_clone"
    DIRECT_SPAWN = "direct_spawn"
    FORK_EXEC = "fork_exec"
    PROCESS_BUILDER = "process_builder"


NATIVE_STRATEGIES = (Strategy.DIRECT_SPAWN, Strategy.FAST_CLONE, Strategy.FORK_EXEC)


@lru_cache(maxsize=None)
def available_strategies() -> FrozenSet[Strategy]:
    """Strategies this host can use at all, detected once."""
    found = frozenset(s for s in Strategy if get_spawner(s).available())
    logger.debug(f"available spawn strategies: {sorted(s.value for s in found)}")
    return found


def default_order() -> List[Strategy]:
    return [Strategy(name) for name in get_settings().strategy_order]


def select_strategy(
    request: SpawnRequest,
    available: Optional[Iterable[Strategy]] = None,
    order: Optional[Iterable[Strategy]] = None,
) -> Strategy:
    """Return the first strategy in ``order`` that is available and can honour ``request``.

    Raises CapabilityUnavailable listing why each candidate was skipped.
    """
    available = frozenset(available_strategies() if available is None else available)
    order = list(default_order() if order is None else order)
    reasons = []
    for strategy in order:
        if strategy not in available:
            reasons.append(f"{strategy.value}: not available")
            continue
        reason = get_spawner(strategy).unsupported_reason(request)
        if reason is None:
            return strategy
        reasons.append(f"{strategy.value}: {reason}")
    raise CapabilityUnavailable("spawn", "; ".join(reasons) or "no strategy configured")


def spawn_request(request: SpawnRequest, strategy: Optional[Strategy] = None) -> int:
    """Spawn ``request`` with ``strategy`` (or the best available one) and return the pid."""
    if strategy is None:
        strategy = select_strategy(request)
    spawner = get_spawner(strategy)
    logger.debug(f"spawning {request.argv} via {spawner.name}")
    return spawner.spawn(request)


def _spawn_with(strategy: Optional[Strategy], args: Any, kwargs: Any) -> int:
    env, argv, options = extract_spawn_arguments(*args, **kwargs)
    request = build_request(env, argv, options)
    return spawn_request(request, strategy)


def spawn(*args: Any, **kwargs: Any) -> int:
    """Spawn a child process with the best strategy available and return its pid.

    The caller must reap the child with procspawn.waitpid().
    """
    return _spawn_with(None, args, kwargs)


def vspawn(*args: Any, **kwargs: Any) -> int:
    """Spawn with the interpreter's vfork-backed fast clone."""
    return _spawn_with(Strategy.FAST_CLONE, args, kwargs)


def pspawn(*args: Any, **kwargs: Any) -> int:
    """Spawn with posix_spawn."""
    return _spawn_with(Strategy.DIRECT_SPAWN, args, kwargs)


def fspawn(*args: Any, **kwargs: Any) -> int:
    """Spawn with fork + exec."""
    return _spawn_with(Strategy.FORK_EXEC, args, kwargs)
