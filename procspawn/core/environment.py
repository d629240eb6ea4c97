"""
Child environment overlay.
"""

from __future__ import annotations

import os
from typing import Dict, Mapping, Optional


def build_child_environment(
    env: Mapping[str, Optional[str]],
    unsetenv_others: bool = False,
    base: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Return the environment a child should see.

    Starts from ``base`` (the parent's os.environ by default, nothing when
    ``unsetenv_others``), applies ``env`` over it and drops keys whose
    value is None. The parent environment is never modified.
    """
    if unsetenv_others:
        merged: Dict[str, str] = {}
    else:
        merged = dict(os.environ if base is None else base)
    for key, value in env.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged
