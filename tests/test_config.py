import argparse
import sys

import pytest
import yaml

from roster.config import (
    RosterConfig,
    apply_env_overrides,
    config_to_yaml,
    default_lock_file,
    default_registry_file,
    load_config,
    merge_cli_args,
)


def test_defaults_match_the_protocol_constants() -> None:
    config = RosterConfig()
    assert config.heartbeat_interval == 5.0
    assert config.stale_threshold == 15.0
    assert config.stale_threshold_ms == 15_000
    assert config.lock_timeout == 5.0
    assert config.lock_poll_interval == 0.05
    assert config.write_attempts == 5
    assert config.retry_delay == 0.1
    config.validate()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX path layout")
def test_posix_shared_paths() -> None:
    assert default_registry_file() == "/tmp/roster-instances.json"
    assert default_lock_file() == "/tmp/roster-instances.lock"


def test_load_config_ignores_unknown_keys(tmp_path) -> None:
    path = tmp_path / "roster.yaml"
    path.write_text(
        "registry_file: /data/reg.json\n"
        "heartbeat_interval: 2\n"
        "stale_threshold: 6\n"
        "colour: blue\n"
    )
    config = load_config(path)
    assert config.registry_file == "/data/reg.json"
    assert config.heartbeat_interval == 2
    assert config.stale_threshold == 6
    assert config.lock_timeout == 5.0


def test_empty_config_file_gives_defaults(tmp_path) -> None:
    path = tmp_path / "roster.yaml"
    path.write_text("")
    assert load_config(path) == RosterConfig()


def test_non_mapping_config_is_rejected(tmp_path) -> None:
    path = tmp_path / "roster.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(path)


def test_env_overrides() -> None:
    config = apply_env_overrides(RosterConfig(), {
        "ROSTER_REGISTRY_FILE": "/x/reg.json",
        "ROSTER_WATCH_BACKEND": "polling",
        "ROSTER_DEBUG": "true",
    })
    assert config.registry_file == "/x/reg.json"
    assert config.watch_backend == "polling"
    assert config.log_level == "DEBUG"


def test_cli_args_take_precedence() -> None:
    config = RosterConfig(heartbeat_interval=2)
    args = argparse.Namespace(heartbeat_interval=None, stale_threshold=30.0, lock_file="/l")
    merge_cli_args(config, args)
    assert config.heartbeat_interval == 2
    assert config.stale_threshold == 30.0
    assert config.lock_file == "/l"


@pytest.mark.parametrize("changes", [
    {"heartbeat_interval": 0},
    {"stale_threshold": 5.0},
    {"write_attempts": 0},
    {"watch_backend": "inotify"},
    {"retry_delay": -1},
    {"heartbeat_interval": "fast"},
    {"write_attempts": True},
])
def test_validate_rejects(changes) -> None:
    config = RosterConfig(**changes)
    with pytest.raises(ValueError):
        config.validate()


def test_config_to_yaml_round_trips() -> None:
    config = RosterConfig(registry_file="/r.json", watch_backend="native")
    assert RosterConfig(**yaml.safe_load(config_to_yaml(config))) == config
