"""
Configuration management for procspawn.

Settings come from a YAML file (explicit path or the PROCSPAWN_CONFIG
environment variable) layered over built-in defaults. Example::

    shell: /bin/sh
    read_chunk_size: 32768
    kill_signal: TERM
    strategy_order: [direct_spawn, fast_clone, fork_exec]
    relay_poll_interval: 0.01
    relay_grace_period: 0.05
    default_backend: null      # "pump", "relay" or null for automatic
"""

import logging
import os
import signal
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..utils.platform import bin_sh

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PROCSPAWN_CONFIG"

_KNOWN_STRATEGIES = ("fast_clone", "direct_spawn", "fork_exec")
_KNOWN_BACKENDS = ("pump", "relay")


@dataclass
class SpawnSettings:
    """Tunables shared by the dispatcher, pump and relay backend."""
    shell: str = field(default_factory=bin_sh)
    read_chunk_size: int = 32 * 1024
    kill_signal: str = "TERM"
    strategy_order: List[str] = field(default_factory=lambda: ["direct_spawn", "fast_clone", "fork_exec"])
    relay_poll_interval: float = 0.01
    relay_grace_period: float = 0.05
    default_backend: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpawnSettings":
        """Create SpawnSettings from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        settings = cls(**data)
        settings.validate()
        return settings

    def validate(self) -> None:
        if int(self.read_chunk_size) <= 0:
            raise ValueError("read_chunk_size must be positive")
        for name in self.strategy_order:
            if name not in _KNOWN_STRATEGIES:
                raise ValueError(f"Unknown strategy in strategy_order: {name}")
        if self.default_backend is not None and self.default_backend not in _KNOWN_BACKENDS:
            raise ValueError(f"default_backend must be one of {_KNOWN_BACKENDS} or null")
        if self.relay_poll_interval <= 0 or self.relay_grace_period < 0:
            raise ValueError("relay_poll_interval must be > 0 and relay_grace_period >= 0")
        # raises ValueError for unknown names
        _ = self.kill_signum

    @property
    def kill_signum(self) -> int:
        name = self.kill_signal.upper()
        if not name.startswith("SIG"):
            name = "SIG" + name
        try:
            return int(getattr(signal, name))
        except AttributeError:
            raise ValueError(f"Unknown kill_signal: {self.kill_signal}") from None


def load_settings(config_path: Optional[Union[str, Path]] = None) -> SpawnSettings:
    """Load settings from YAML; fall back to defaults when no file is configured."""
    path = config_path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return SpawnSettings()

    path = Path(path)
    logger.info(f"Loading procspawn settings from {path}")
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: settings file must contain a mapping")
    return SpawnSettings.from_dict(raw)


_SETTINGS: Optional[SpawnSettings] = None


def get_settings() -> SpawnSettings:
    """Return process-wide settings, loading them on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = load_settings()
    return _SETTINGS


def reset_settings(settings: Optional[SpawnSettings] = None) -> None:
    """Replace (or clear) the cached settings."""
    global _SETTINGS
    _SETTINGS = settings
