import signal

import pytest

from procspawn.core.configuration import (
    CONFIG_ENV_VAR,
    SpawnSettings,
    get_settings,
    load_settings,
    reset_settings,
)


def test_defaults_without_config():
    settings = load_settings()
    assert settings.shell == "/bin/sh"
    assert settings.read_chunk_size == 32 * 1024
    assert settings.kill_signum == signal.SIGTERM
    assert settings.strategy_order == ["direct_spawn", "fast_clone", "fork_exec"]
    assert settings.default_backend is None


def test_load_settings_from_yaml(tmp_path):
    cfg = tmp_path / "procspawn.yaml"
    cfg.write_text(
        "shell: /bin/bash\n"
        "read_chunk_size: 4096\n"
        "kill_signal: KILL\n"
        "strategy_order: [fork_exec]\n"
        "default_backend: relay\n"
    )
    settings = load_settings(cfg)
    assert settings.shell == "/bin/bash"
    assert settings.read_chunk_size == 4096
    assert settings.kill_signum == signal.SIGKILL
    assert settings.strategy_order == ["fork_exec"]
    assert settings.default_backend == "relay"
    # untouched keys keep their defaults
    assert settings.relay_poll_interval == 0.01


def test_empty_yaml_gives_defaults(tmp_path):
    cfg = tmp_path / "empty.yaml"
    cfg.write_text("")
    assert load_settings(cfg) == SpawnSettings()


def test_config_path_from_environment(tmp_path, monkeypatch):
    cfg = tmp_path / "env.yaml"
    cfg.write_text("kill_signal: SIGINT\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(cfg))
    reset_settings()
    assert get_settings().kill_signum == signal.SIGINT


def test_get_settings_is_cached():
    first = get_settings()
    assert get_settings() is first
    custom = SpawnSettings(read_chunk_size=1)
    reset_settings(custom)
    assert get_settings() is custom


@pytest.mark.parametrize(
    "data",
    [
        {"no_such_key": 1},
        {"read_chunk_size": 0},
        {"strategy_order": ["teleport"]},
        {"default_backend": "threads"},
        {"kill_signal": "NOPE"},
        {"relay_poll_interval": 0},
    ],
)
def test_invalid_settings_rejected(data):
    with pytest.raises(ValueError):
        SpawnSettings.from_dict(data)


def test_non_mapping_file_rejected(tmp_path):
    cfg = tmp_path / "list.yaml"
    cfg.write_text("- a\n- b\n")
    with pytest.raises(ValueError, match="mapping"):
        load_settings(cfg)
