import os
import time

import pytest

from roster.registry import LockCoordinator, with_retry


def test_marker_holds_pid_during_operation_and_is_removed(tmp_path) -> None:
    lock = LockCoordinator(tmp_path / "reg.lock")
    seen = lock.with_lock(lambda: lock.holder())
    assert seen == str(os.getpid())
    assert not lock.is_locked()


def test_marker_is_removed_when_operation_raises(tmp_path) -> None:
    lock = LockCoordinator(tmp_path / "reg.lock")

    def fail():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        lock.with_lock(fail)
    assert not lock.is_locked()


def test_abandoned_marker_is_taken_over_immediately(tmp_path) -> None:
    marker = tmp_path / "reg.lock"
    marker.write_text("99999")
    old = time.time() - 6
    os.utime(marker, (old, old))

    lock = LockCoordinator(marker, timeout=5.0)
    start = time.monotonic()
    assert lock.with_lock(lambda: "done") == "done"
    assert time.monotonic() - start < 1.0
    assert not marker.exists()


def test_held_marker_is_forced_after_timeout(tmp_path) -> None:
    marker = tmp_path / "reg.lock"
    marker.write_text("99999")

    lock = LockCoordinator(marker, timeout=0.3, poll_interval=0.02)
    start = time.monotonic()
    lock.with_lock(lambda: None)
    elapsed = time.monotonic() - start
    assert 0.25 <= elapsed < 2.0


def test_undecodable_marker_is_taken_over(tmp_path) -> None:
    marker = tmp_path / "reg.lock"
    marker.write_bytes(b"\xff\xfe\x00garbage")

    lock = LockCoordinator(marker, timeout=0.2, poll_interval=0.02)
    assert isinstance(lock.holder(), str)
    assert lock.with_lock(lambda: lock.holder()) == str(os.getpid())
    assert not marker.exists()


def test_waits_for_marker_to_disappear(tmp_path) -> None:
    marker = tmp_path / "reg.lock"
    marker.write_text("99999")
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 3:
            marker.unlink()

    lock = LockCoordinator(marker, timeout=60, poll_interval=0.05, sleep=fake_sleep)
    lock.with_lock(lambda: None)
    assert sleeps == [0.05, 0.05, 0.05]


def test_retry_uses_linear_backoff() -> None:
    calls = []
    sleeps = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise OSError("busy")
        return "ok"

    assert with_retry(flaky, attempts=5, delay=0.1, sleep=sleeps.append) == "ok"
    assert sleeps == pytest.approx([0.1, 0.2])


def test_retry_gives_up_after_attempts() -> None:
    calls = []

    def always_fails():
        calls.append(1)
        raise OSError("busy")

    with pytest.raises(OSError):
        with_retry(always_fails, attempts=5, delay=0.1, sleep=lambda s: None)
    assert len(calls) == 5


def test_retry_does_not_repeat_permission_errors() -> None:
    calls = []

    def denied():
        calls.append(1)
        raise PermissionError("nope")

    with pytest.raises(PermissionError):
        with_retry(denied, sleep=lambda s: None)
    assert len(calls) == 1
