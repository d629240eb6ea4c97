"""
Redirection resolver: turns raw fd options into typed FdAction lists.

Accepted forms for a redirection entry ``key => value``:

- key: an int >= 0, one of "in"/"out"/"err", a standard stream object, any
  object with a working fileno(), or a tuple/frozenset of those (applied to
  each member)
- value: CLOSE, another fd-like (the key becomes a duplicate of it), a bare
  path, or a (path[, mode[, perms]]) tuple

The strings "in", "out" and "err" always name standard streams; write
"./out" to redirect into a file literally called "out".
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from .errors import InvalidArgument
from .models import CloseAction, DupAction, FdAction, OpenAction, SpawnRequest

logger = logging.getLogger(__name__)


class _Close:
    """Sentinel value requesting that a descriptor be closed in the child."""
    __slots__ = ()

    def __repr__(self) -> str:
        return "CLOSE"


CLOSE = _Close()

STD_NAMES: Dict[str, int] = {"in": 0, "out": 1, "err": 2}

# Options understood by every spawner (fd keys aside)
SPAWN_OPTION_KEYS = frozenset({"chdir", "unsetenv_others"})

# Mapping of string open modes to os.open flag combinations.
OFLAGS: Dict[str, int] = {
    "r": os.O_RDONLY,
    "r+": os.O_RDWR | os.O_CREAT,
    "w": os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
    "w+": os.O_RDWR | os.O_CREAT | os.O_TRUNC,
    "a": os.O_WRONLY | os.O_APPEND | os.O_CREAT,
    "a+": os.O_RDWR | os.O_APPEND | os.O_CREAT,
}

DEFAULT_PERMS = 0o644


def _std_stream_fd(obj: Any) -> Optional[int]:
    # compared by identity: pytest and friends replace sys.stdout with objects
    # whose fileno() raises
    for fd, streams in (
        (0, (sys.stdin, sys.__stdin__)),
        (1, (sys.stdout, sys.__stdout__)),
        (2, (sys.stderr, sys.__stderr__)),
    ):
        if any(obj is s for s in streams if s is not None):
            return fd
    return None


def is_fd(obj: Any) -> bool:
    """Determine whether ``obj`` is fd-like."""
    if isinstance(obj, bool):
        return False
    if isinstance(obj, int):
        return obj >= 0
    if isinstance(obj, str):
        return obj in STD_NAMES
    if _std_stream_fd(obj) is not None:
        return True
    fileno = getattr(obj, "fileno", None)
    if not callable(fileno):
        return False
    try:
        return fileno() >= 0
    except (OSError, ValueError):
        # closed files raise ValueError, detached ones io.UnsupportedOperation
        return False


def fd_to_fileno(obj: Any) -> Optional[int]:
    """Convert an fd identifier to an integer descriptor, or None."""
    if isinstance(obj, bool):
        return None
    if isinstance(obj, int):
        return obj if obj >= 0 else None
    if isinstance(obj, str):
        return STD_NAMES.get(obj)
    std = _std_stream_fd(obj)
    if std is not None:
        return std
    try:
        return obj.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def flatten_spawn_options(options: Dict[Any, Any]) -> Dict[Any, Any]:
    """Convert ``{(fd1, fd2, ...): value}`` entries to one key per member.

    options - The options dict. This is modified in place.

    Returns the modified options dict.
    """
    for key, value in list(options.items()):
        if isinstance(key, (tuple, frozenset)):
            for fd in key:
                options[fd] = value
            del options[key]
    return options


def default_file_reopen_info(fd: Any, path: Any) -> Tuple[Any, str, int]:
    """The default (path, mode, perms) tuple for redirecting ``fd`` to ``path``.

    stdout and stderr default to write, while stdin and all other fds
    default to read.
    """
    if fd_to_fileno(fd) in (1, 2):
        return (path, "w", DEFAULT_PERMS)
    return (path, "r", DEFAULT_PERMS)


def _is_path(value: Any) -> bool:
    if isinstance(value, str):
        return value not in STD_NAMES
    return isinstance(value, os.PathLike)


def normalize_redirect_file_options(options: Dict[Any, Any]) -> Dict[Any, Any]:
    """Expand file redirect values to full (path, flags, perms) tuples.

    "out" => "/some/file"          => ("/some/file", O_WRONLY|O_CREAT|O_TRUNC, 0o644)
    0     => ("/some/file",)       => ("/some/file", O_RDONLY, 0o644)
    2     => ("/some/file", "a")   => ("/some/file", O_WRONLY|O_APPEND|O_CREAT, 0o644)

    Returns the modified options dict.
    """
    for key, value in list(options.items()):
        if not is_fd(key):
            continue

        if _is_path(value):
            info = list(default_file_reopen_info(key, value))
        elif isinstance(value, (tuple, list)):
            if not value:
                raise InvalidArgument(f"empty redirection for {key!r}")
            info = list(value)
            if len(info) < 3:
                info += list(default_file_reopen_info(key, info[0]))[len(info):]
        else:
            continue

        if isinstance(info[1], str):
            try:
                info[1] = OFLAGS[info[1]]
            except KeyError:
                raise InvalidArgument(f"unknown open mode {info[1]!r} for {key!r}") from None
        options[key] = tuple(info)
    return options


def validate_options(options: Dict[Any, Any], allowed: Iterable[str] = SPAWN_OPTION_KEYS) -> None:
    """Reject option keys that are neither fd-like nor in ``allowed``."""
    allowed = set(allowed)
    for key in options:
        if is_fd(key):
            continue
        if isinstance(key, str) and key in allowed:
            continue
        raise InvalidArgument(f"Invalid option: {key!r}")


def resolve_fd_actions(options: Dict[Any, Any]) -> List[FdAction]:
    """Produce one FdAction per fd-like key, in insertion order."""
    actions: List[FdAction] = []
    targets: Dict[int, Any] = {}
    for key, value in options.items():
        if not is_fd(key):
            continue
        fd = fd_to_fileno(key)
        if fd in targets:
            raise InvalidArgument(f"conflicting redirections for fd {fd}: {targets[fd]!r} and {key!r}")
        targets[fd] = key

        if value is CLOSE:
            actions.append(CloseAction(fd=fd))
        elif is_fd(value):
            actions.append(DupAction(fd=fd, source=fd_to_fileno(value)))
        elif isinstance(value, tuple) and len(value) == 3:
            path, flags, mode = value
            actions.append(OpenAction(fd=fd, path=os.fspath(path), flags=int(flags), mode=int(mode)))
        else:
            raise InvalidArgument(f"invalid redirection for fd {fd}: {value!r}")
    return actions


def check_descriptors(actions: Iterable[FdAction]) -> None:
    """Validate, before spawning, that closed and duplicated descriptors exist.

    Hosts disagree on whether a bad descriptor fails at spawn time or only
    when the child execs; checking here makes it fail the same way everywhere.
    """
    for action in actions:
        if isinstance(action, CloseAction):
            fd = action.fd
        elif isinstance(action, DupAction):
            fd = action.source
        else:
            continue
        try:
            os.fstat(fd)
        except OSError as ex:
            raise InvalidArgument(f"bad file descriptor {fd}: {ex.strerror}") from ex


def build_request(env: Dict[str, Optional[str]], argv: List[Any], options: Dict[Any, Any]) -> SpawnRequest:
    """Build the typed SpawnRequest from a normalized (env, argv, options) triple.

    ``options`` must already be reduced to spawn-level keys (chdir,
    unsetenv_others, fd redirections).
    """
    validate_options(options)
    actions = resolve_fd_actions(options)
    check_descriptors(actions)
    logger.debug(f"resolved fd actions: {[a.model_dump() for a in actions]}")

    chdir = options.get("chdir")
    try:
        exec_path, display = argv[0]
        command = (os.fspath(exec_path), os.fspath(display))
    except (TypeError, ValueError) as ex:
        raise InvalidArgument(f"invalid command {argv[0]!r}: expected a (path, argv0) pair of strings") from ex
    try:
        return SpawnRequest(
            env={str(k): (None if v is None else str(v)) for k, v in env.items()},
            command=command,
            args=[os.fspath(a) if isinstance(a, os.PathLike) else str(a) for a in argv[1:]],
            actions=actions,
            chdir=os.fspath(chdir) if chdir is not None else None,
            unsetenv_others=bool(options.get("unsetenv_others", False)),
        )
    except ValidationError as ex:
        raise InvalidArgument(str(ex)) from ex
