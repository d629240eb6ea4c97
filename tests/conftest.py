import os

import pytest

from procspawn.core.configuration import CONFIG_ENV_VAR, reset_settings
from procspawn.core.dispatcher import Strategy, available_strategies


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(params=["pump", "relay"])
def backend(request):
    if request.param == "pump" and not (available_strategies() - {Strategy.PROCESS_BUILDER}):
        pytest.skip("no native spawn strategy on this host")
    return request.param


@pytest.fixture
def pipe():
    rd, wr = os.pipe()
    fds = [rd, wr]
    yield rd, wr
    for fd in fds:
        try:
            os.close(fd)
        except OSError:
            pass


@pytest.fixture
def closed_fd():
    """A descriptor number that is not open right now."""
    fd = os.open(os.devnull, os.O_RDONLY)
    os.close(fd)
    return fd
