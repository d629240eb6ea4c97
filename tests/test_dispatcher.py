import os

import pytest

from procspawn import CLOSE, CapabilityUnavailable, InvalidArgument, Strategy, pspawn, spawn, waitpid
from procspawn.core.dispatcher import available_strategies, select_strategy
from procspawn.core.redirection import build_request
from procspawn.spawners import get_spawner
from procspawn.spawners.process_builder import check_options

ALL = frozenset(Strategy)
ORDER = [Strategy.DIRECT_SPAWN, Strategy.FAST_CLONE, Strategy.FORK_EXEC]


def _request(**options):
    return build_request({}, [("true", "true")], options)


def test_select_prefers_direct_spawn():
    assert select_strategy(_request(), ALL, ORDER) is Strategy.DIRECT_SPAWN


def test_select_skips_direct_spawn_for_chdir():
    request = _request(chdir="/")
    assert select_strategy(request, ALL, ORDER) is Strategy.FAST_CLONE
    assert select_strategy(request, {Strategy.DIRECT_SPAWN, Strategy.FORK_EXEC}, ORDER) is Strategy.FORK_EXEC


def test_select_skips_fast_clone_for_high_fd_redirect(pipe):
    rd, wr = pipe
    request = build_request({}, [("true", "true")], {5: wr, "chdir": "/"})
    assert select_strategy(request, ALL, ORDER) is Strategy.FORK_EXEC


def test_select_raises_with_reasons():
    with pytest.raises(CapabilityUnavailable) as exc:
        select_strategy(_request(chdir="/"), {Strategy.DIRECT_SPAWN}, ORDER)
    assert "direct_spawn: chdir" in str(exc.value)
    assert "fork_exec: not available" in str(exc.value)


def test_available_strategies_detected_once():
    found = available_strategies()
    assert found is available_strategies()
    assert Strategy.PROCESS_BUILDER in found
    if hasattr(os, "fork"):
        assert Strategy.FORK_EXEC in found


def test_get_spawner():
    assert get_spawner("fork_exec").name == "fork_exec"
    assert get_spawner(Strategy.DIRECT_SPAWN).name == "direct_spawn"
    with pytest.raises(ValueError):
        get_spawner("teleport")


def test_pspawn_with_chdir_is_unavailable(tmp_path):
    with pytest.raises(CapabilityUnavailable):
        pspawn("pwd", chdir=str(tmp_path))


def test_spawn_with_chdir_falls_through(tmp_path):
    out = tmp_path / "pwd.txt"
    pid = spawn("pwd", chdir=str(tmp_path), out=str(out))
    assert waitpid(pid).success
    assert out.read_text().strip() == os.path.realpath(tmp_path)


def test_process_builder_rejects_unsupported_options():
    with pytest.raises(InvalidArgument, match="new_pgroup, rlimit_core"):
        check_options({"rlimit_core": 0, "new_pgroup": True, "chdir": "/"})
    check_options({"chdir": "/", 1: CLOSE})


def test_process_builder_rejects_high_fd_redirects(pipe):
    rd, wr = pipe
    spawner = get_spawner(Strategy.PROCESS_BUILDER)
    assert spawner.supports(build_request({}, [("true", "true")], {rd: CLOSE}))
    with pytest.raises(CapabilityUnavailable):
        spawner.check(build_request({}, [("true", "true")], {5: wr}))
