"""
Process waiter: reaps children exactly once and reports an ExitStatus.

Children started through subprocess.Popen (fast clone, process builder)
are registered here so they are reaped through their Popen object;
everything else goes through os.waitpid.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from typing import Dict, Optional

from .configuration import get_settings
from .models import ExitStatus

logger = logging.getLogger(__name__)

_POPEN_CHILDREN: Dict[int, subprocess.Popen] = {}
_POPEN_LOCK = threading.Lock()


def register_popen(proc: subprocess.Popen) -> int:
    """Track a Popen-launched child so waitpid() reaps it via Popen.wait().

    Registered children must be reaped with waitpid() or
    terminate_and_reap(), which drop the entry even when something else
    reaped the pid first. Entries whose Popen was waited on directly are
    pruned here.
    """
    with _POPEN_LOCK:
        for pid in [pid for pid, known in _POPEN_CHILDREN.items() if known.returncode is not None]:
            del _POPEN_CHILDREN[pid]
        _POPEN_CHILDREN[proc.pid] = proc
    return proc.pid


def waitpid(pid: int) -> ExitStatus:
    """Wait for the child process to exit.

    Returns the ExitStatus obtained by reaping the process.
    Raises ChildProcessError when ``pid`` is not an unreaped child.
    """
    with _POPEN_LOCK:
        proc = _POPEN_CHILDREN.pop(pid, None)
    if proc is not None:
        status = ExitStatus.from_returncode(pid, proc.wait())
    else:
        _, raw = os.waitpid(pid, 0)
        status = ExitStatus.from_wait_status(pid, raw)
    logger.debug(f"reaped {status}")
    return status


def terminate_and_reap(pid: int, sig: Optional[int] = None) -> Optional[ExitStatus]:
    """Signal ``pid`` and reap it, tolerating a child that is already gone.

    Used on abort paths, so failures are logged rather than raised: they
    must not mask the error being propagated.
    """
    if sig is None:
        sig = get_settings().kill_signum
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        logger.debug(f"pid {pid} already gone before signal {sig}")
    except OSError as ex:
        logger.warning(f"could not signal pid {pid}: {ex}")
    try:
        return waitpid(pid)
    except ChildProcessError:
        logger.debug(f"pid {pid} was already reaped")
    except OSError as ex:
        logger.warning(f"could not reap pid {pid}: {ex}")
    return None
