"""Configuration loading and merging for Roster."""

import os
import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Mapping, Optional

import yaml


REGISTRY_BASENAME = "roster-instances"


def _shared_dir() -> Path:
    """Fixed, machine-wide directory every instance agrees on."""
    if sys.platform == "win32":
        return Path(r"C:\Users\Public")
    return Path("/tmp")


def default_registry_file() -> str:
    return str(_shared_dir() / f"{REGISTRY_BASENAME}.json")


def default_lock_file() -> str:
    return str(_shared_dir() / f"{REGISTRY_BASENAME}.lock")


@dataclass
class RosterConfig:
    # Shared state location
    registry_file: str = field(default_factory=default_registry_file)
    lock_file: str = field(default_factory=default_lock_file)

    # Liveness (seconds)
    heartbeat_interval: float = 5.0
    stale_threshold: float = 15.0

    # Lock coordination (seconds)
    lock_timeout: float = 5.0
    lock_poll_interval: float = 0.05

    # Write retries: linear backoff of retry_delay * attempt
    write_attempts: int = 5
    retry_delay: float = 0.1

    # Change notification: auto | native | polling
    watch_backend: str = "auto"
    poll_interval: float = 1.0

    # Label prefix for display names
    app_name: str = "Roster"

    log_level: str = "WARNING"

    @property
    def stale_threshold_ms(self) -> int:
        return int(self.stale_threshold * 1000)

    def validate(self) -> None:
        """Raise ValueError describing the first invalid setting."""
        for name in ("heartbeat_interval", "stale_threshold", "lock_timeout",
                     "lock_poll_interval", "poll_interval", "retry_delay", "write_attempts"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, not {value!r}")
        for name in ("heartbeat_interval", "stale_threshold", "lock_timeout",
                     "lock_poll_interval", "poll_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must not be negative")
        if self.stale_threshold <= self.heartbeat_interval:
            raise ValueError(
                f"stale_threshold ({self.stale_threshold}s) must exceed "
                f"heartbeat_interval ({self.heartbeat_interval}s)"
            )
        if self.write_attempts < 1:
            raise ValueError("write_attempts must be at least 1")
        if self.watch_backend not in ("auto", "native", "polling"):
            raise ValueError(
                f"watch_backend must be auto, native or polling, not {self.watch_backend!r}"
            )


def load_config(path: str | Path) -> RosterConfig:
    """Load a RosterConfig from a YAML file. Unknown keys are ignored."""
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")

    valid_fields = {f.name for f in fields(RosterConfig)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return RosterConfig(**filtered)


_ENV_OVERRIDES = {
    "ROSTER_REGISTRY_FILE": "registry_file",
    "ROSTER_LOCK_FILE": "lock_file",
    "ROSTER_WATCH_BACKEND": "watch_backend",
}


def apply_env_overrides(config: RosterConfig, environ: Optional[Mapping[str, str]] = None) -> RosterConfig:
    """Overlay ROSTER_* environment variables onto *config*."""
    environ = os.environ if environ is None else environ
    for var, name in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            setattr(config, name, value)
    if environ.get("ROSTER_DEBUG", "").lower() in ("1", "true"):
        config.log_level = "DEBUG"
    return config


def merge_cli_args(config: RosterConfig, args) -> RosterConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(RosterConfig):
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)
    return config


def config_to_yaml(config: RosterConfig) -> str:
    """Serialize a RosterConfig to YAML."""
    return yaml.safe_dump(asdict(config), default_flow_style=False, sort_keys=False)
