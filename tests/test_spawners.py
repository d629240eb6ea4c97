import os
import sys

import pytest

from procspawn import CLOSE, CapabilityUnavailable, InvalidArgument, SpawnFailure, Strategy, fspawn, pspawn, vspawn, waitpid
from procspawn.core.dispatcher import available_strategies

# exits 1 (traceback on the null device) when the fd given as argv[1] is not open
FD_OPEN = "import os, sys; os.fstat(int(sys.argv[1]))"


def _spawn_fn(strategy):
    if strategy not in available_strategies():
        pytest.skip(f"{strategy.value} not available on this host")
    return {Strategy.FAST_CLONE: vspawn, Strategy.DIRECT_SPAWN: pspawn, Strategy.FORK_EXEC: fspawn}[strategy]


@pytest.fixture(params=[Strategy.DIRECT_SPAWN, Strategy.FAST_CLONE, Strategy.FORK_EXEC], ids=lambda s: s.value)
def spawn_fn(request):
    return _spawn_fn(request.param)


@pytest.fixture(params=[Strategy.DIRECT_SPAWN, Strategy.FORK_EXEC], ids=lambda s: s.value)
def fd_spawn_fn(request):
    """Strategies that can redirect and close arbitrary descriptors."""
    return _spawn_fn(request.param)


def assert_exit(pid, code):
    assert pid > 0
    status = waitpid(pid)
    assert status.pid == pid
    assert status.exited and status.code == code


def test_spawn_true(spawn_fn):
    assert_exit(spawn_fn("true", "with", "some stuff"), 0)


def test_spawn_with_shell(spawn_fn):
    assert_exit(spawn_fn("true && exit 13"), 13)


def test_spawn_with_cmdname_and_argv0_pair(spawn_fn):
    assert_exit(spawn_fn(("true", "not-true"), "some", "args", "toooo"), 0)


def test_spawn_with_cmdname_and_argv0_list(spawn_fn):
    assert_exit(spawn_fn(["echo", "fuuu"], "hello", out=os.devnull), 0)


def test_inherit_env(spawn_fn, monkeypatch):
    monkeypatch.setenv("PSPAWN", "parent")
    assert_exit(spawn_fn("/bin/sh", "-c", 'test "$PSPAWN" = "parent"'), 0)


def test_set_env(spawn_fn, monkeypatch):
    monkeypatch.setenv("PSPAWN", "parent")
    assert_exit(spawn_fn({"PSPAWN": "child"}, "/bin/sh", "-c", 'test "$PSPAWN" = "child"'), 0)
    # parent environment untouched
    assert os.environ["PSPAWN"] == "parent"


def test_unset_env(spawn_fn, monkeypatch):
    monkeypatch.setenv("PSPAWN", "parent")
    assert_exit(spawn_fn({"PSPAWN": None}, "/bin/sh", "-c", 'test -z "$PSPAWN"'), 0)
    assert os.environ["PSPAWN"] == "parent"


def test_unsetenv_others(spawn_fn, tmp_path):
    out = tmp_path / "env.txt"
    pid = spawn_fn({"ONLY": "1"}, "/usr/bin/env", unsetenv_others=True, out=str(out))
    assert_exit(pid, 0)
    assert out.read_text() == "ONLY=1\n"


def test_redirect_stdout_to_file(spawn_fn, tmp_path):
    out = tmp_path / "hello.txt"
    assert_exit(spawn_fn("echo", "hello world", out=str(out)), 0)
    assert out.read_text() == "hello world\n"


def test_redirect_append_mode(spawn_fn, tmp_path):
    out = tmp_path / "log.txt"
    out.write_text("first\n")
    assert_exit(spawn_fn("echo", "second", {"out": (str(out), "a")}), 0)
    assert out.read_text() == "first\nsecond\n"


def test_redirect_stdin_from_file(spawn_fn, tmp_path):
    src = tmp_path / "in.txt"
    src.write_text("one\ntwo\nthree\n")
    out = tmp_path / "count.txt"
    assert_exit(spawn_fn("wc", "-l", {"in": str(src), "out": str(out)}), 0)
    assert out.read_text().strip() == "3"


def test_redirect_fds_with_names_and_file_objects(spawn_fn):
    rd, wr = os.pipe()
    with os.fdopen(wr, "wb") as wfile:
        pid = spawn_fn("echo", "hello world", {"out": wfile, rd: CLOSE})
    with os.fdopen(rd, "rb") as rfile:
        output = rfile.read()
    assert output == b"hello world\n"
    assert_exit(pid, 0)


def test_redirect_fds_with_fd_numbers(spawn_fn):
    rd, wr = os.pipe()
    pid = spawn_fn("echo", "hello world", {1: wr, rd: CLOSE})
    os.close(wr)
    with os.fdopen(rd, "rb") as rfile:
        output = rfile.read()
    assert output == b"hello world\n"
    assert_exit(pid, 0)


def test_stderr_duplicated_onto_stdout(spawn_fn, tmp_path):
    out = tmp_path / "both.txt"
    assert_exit(spawn_fn("echo boom 1>&2", {"out": str(out), "err": "out"}), 0)
    assert out.read_text() == "boom\n"


def test_close_standard_streams_by_name(fd_spawn_fn):
    devnull = os.devnull
    assert_exit(fd_spawn_fn(sys.executable, "-c", FD_OPEN, "0", {"in": CLOSE, "err": devnull}), 1)
    assert_exit(fd_spawn_fn(sys.executable, "-c", FD_OPEN, "1", {"out": CLOSE, "err": devnull}), 1)


def test_close_option_with_fd_number(fd_spawn_fn, pipe):
    rd, wr = pipe
    os.set_inheritable(rd, True)
    assert_exit(fd_spawn_fn(sys.executable, "-c", FD_OPEN, str(rd)), 0)
    assert_exit(fd_spawn_fn(sys.executable, "-c", FD_OPEN, str(rd), {rd: CLOSE, "err": os.devnull}), 1)
    # closing only affects the child
    os.fstat(rd)
    os.fstat(wr)


def test_close_option_with_file_object(fd_spawn_fn, pipe):
    rd, wr = pipe
    os.set_inheritable(rd, True)
    with os.fdopen(rd, "rb", closefd=False) as rfile:
        pid = fd_spawn_fn(sys.executable, "-c", FD_OPEN, str(rd), {rfile: CLOSE, "err": os.devnull})
    assert_exit(pid, 1)
    os.fstat(rd)


def test_closing_multiple_fds_with_tuple_keys(fd_spawn_fn, pipe):
    rd, wr = pipe
    os.set_inheritable(rd, True)
    os.set_inheritable(wr, True)
    pid = fd_spawn_fn(sys.executable, "-c", FD_OPEN, str(wr), {(rd, wr, "out"): CLOSE, "err": os.devnull})
    assert_exit(pid, 1)


def test_redirect_high_fd(fd_spawn_fn, tmp_path):
    out = tmp_path / "fd9.txt"
    code = "import os; os.write(9, b'nine')"
    assert_exit(fd_spawn_fn(sys.executable, "-c", code, {9: (str(out), "w")}), 0)
    assert out.read_bytes() == b"nine"


def test_close_invalid_fd_raises(spawn_fn, closed_fd):
    with pytest.raises(InvalidArgument):
        spawn_fn("echo", "hiya", {closed_fd: CLOSE})


def test_redirect_from_invalid_fd_raises(spawn_fn, closed_fd):
    with pytest.raises(InvalidArgument):
        spawn_fn("echo", "hiya", {"out": closed_fd})


def test_missing_executable_direct_spawn():
    spawn_fn = _spawn_fn(Strategy.DIRECT_SPAWN)
    with pytest.raises(SpawnFailure) as exc:
        spawn_fn("procspawn-no-such-command")
    assert isinstance(exc.value, OSError)


def test_missing_executable_fork_exec_exits_127():
    spawn_fn = _spawn_fn(Strategy.FORK_EXEC)
    assert_exit(spawn_fn("procspawn-no-such-command"), 127)


def test_fast_clone_rejects_high_fd_redirect(pipe):
    spawn_fn = _spawn_fn(Strategy.FAST_CLONE)
    rd, wr = pipe
    with pytest.raises(CapabilityUnavailable):
        spawn_fn("true", {5: wr})
