from procspawn import waitpid
from procspawn.core.redirection import build_request
from procspawn.core.relay import RelayPump, relay_pump
from procspawn.spawners.process_builder import ProcessBuilderSpawner


def _start(argv, options=None):
    request = build_request({}, argv, options or {})
    return ProcessBuilderSpawner().start(request)


def test_relay_pump_collects_output():
    proc = _start([("/bin/sh", "/bin/sh"), "-c", "cat; echo err 1>&2"])
    outcome = relay_pump(proc, b"hello")
    assert outcome.violation is None
    assert outcome.out == b"hello"
    assert outcome.err == b"err\n"
    assert waitpid(proc.pid).success


def test_relay_stderr_merged_into_stdout():
    proc = _start([("/bin/sh", "/bin/sh"), "-c", "echo out; echo err 1>&2"], {"err": "out"})
    assert proc.stderr is None
    outcome = relay_pump(proc)
    assert outcome.out == b"out\nerr\n"
    assert outcome.err == b""
    waitpid(proc.pid)


def test_relay_timeout_signals_child():
    proc = _start([("sleep", "sleep"), "5"])
    outcome = relay_pump(proc, timeout=0.05)
    assert outcome.violation == "timeout"
    status = waitpid(proc.pid)
    assert status.signaled


def test_relay_cancel_is_idempotent():
    proc = _start([("sleep", "sleep"), "5"])
    relay = RelayPump(proc)
    relay.cancel()
    relay.cancel()
    assert waitpid(proc.pid).signaled
    relay.cancel()
    proc.stdout.close()
    proc.stderr.close()


def test_relay_pump_closes_pipes_held_by_grandchild():
    proc = _start([("/bin/sh", "/bin/sh"), "-c", "sleep 2 & wait"])
    relay = RelayPump(proc, b"ignored")
    try:
        outcome = relay.run(timeout=0.1)
    finally:
        relay.close()
    assert outcome.violation == "timeout"
    assert not any(t.is_alive() for t in relay.threads)
    assert proc.stdin.closed and proc.stdout.closed and proc.stderr.closed
    assert waitpid(proc.pid).signaled


def test_relay_close_is_idempotent():
    proc = _start([("true", "true")])
    relay = RelayPump(proc)
    relay.close()
    relay.close()
    assert proc.stdout.closed and proc.stderr.closed
    assert waitpid(proc.pid).success
