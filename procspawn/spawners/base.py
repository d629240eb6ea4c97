"""
Base interface for spawn strategies.
"""

from __future__ import annotations

import signal
from abc import ABC, abstractmethod
from typing import List, Optional

from procspawn.core.errors import CapabilityUnavailable
from procspawn.core.models import SpawnRequest

# Exit status of a duplicated child whose setup or exec failed
EXEC_FAILED = 127


def default_signals() -> List[int]:
    """Signals the interpreter ignores that a fresh child should see at SIG_DFL."""
    names = ("SIGPIPE", "SIGXFZ", "SIGXFSZ")
    return [sig for sig in (getattr(signal, name, None) for name in names) if sig is not None]


class Spawner(ABC):
    """One way of creating a child process from a SpawnRequest."""

    name: str = "spawner"

    @abstractmethod
    def available(self) -> bool:
        """Whether this host can use the strategy at all."""
        raise NotImplementedError

    def unsupported_reason(self, request: SpawnRequest) -> Optional[str]:
        """Why this strategy cannot honour ``request``, or None if it can."""
        return None

    def supports(self, request: SpawnRequest) -> bool:
        return self.available() and self.unsupported_reason(request) is None

    def check(self, request: SpawnRequest) -> None:
        """Raise CapabilityUnavailable unless ``request`` can be spawned here."""
        if not self.available():
            raise CapabilityUnavailable(self.name)
        reason = self.unsupported_reason(request)
        if reason:
            raise CapabilityUnavailable(self.name, reason)

    @abstractmethod
    def spawn(self, request: SpawnRequest) -> int:
        """Create the child and return its pid."""
        raise NotImplementedError
