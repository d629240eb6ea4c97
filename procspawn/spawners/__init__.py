"""
Spawn strategies (fast clone, direct spawn, fork + exec, process builder).

Provides a factory to obtain the spawner for a strategy name.
Strategy selection is handled by procspawn.core.dispatcher.
"""

from .base import Spawner
from .direct import DirectSpawner
from .fast_clone import FastCloneSpawner
from .fork_exec import ForkExecSpawner
from .process_builder import ProcessBuilderSpawner

_SPAWNERS = {
    "fast_clone": FastCloneSpawner,
    "direct_spawn": DirectSpawner,
    "fork_exec": ForkExecSpawner,
    "process_builder": ProcessBuilderSpawner,
}


def get_spawner(strategy: str) -> Spawner:
    s = getattr(strategy, "value", strategy).lower()
    try:
        return _SPAWNERS[s]()
    except KeyError:
        raise ValueError(f"Unsupported spawn strategy: {strategy}") from None


__all__ = [
    "Spawner",
    "DirectSpawner",
    "FastCloneSpawner",
    "ForkExecSpawner",
    "ProcessBuilderSpawner",
    "get_spawner",
]
