"""Test helpers shared across test modules."""

import time
from pathlib import Path

from roster.config import RosterConfig
from roster.registry import RegistryEntry, derive_instance_id


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int | None = None):
        self.now = int(time.time() * 1000) if start is None else start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


def make_config(base: Path, **overrides) -> RosterConfig:
    """Config pointing at *base* with timers that never fire during a test."""
    settings = dict(
        registry_file=str(base / "shared" / "instances.json"),
        lock_file=str(base / "shared" / "instances.lock"),
        heartbeat_interval=3600.0,
        stale_threshold=15.0,
        lock_timeout=5.0,
        retry_delay=0.0,
        watch_backend="polling",
        poll_interval=0.05,
    )
    settings.update(overrides)
    return RosterConfig(**settings)


def make_entry(session_id: str, last_updated: int, **fields) -> RegistryEntry:
    values = dict(
        process_id=1000,
        session_id=session_id,
        instance_id=derive_instance_id(session_id),
        display_name=f"Roster - {session_id}",
        last_updated=last_updated,
        start_time=last_updated - 60_000,
        memory_mb=10.0,
    )
    values.update(fields)
    return RegistryEntry(**values)
