from helpers import make_entry
from roster.registry import is_live, reap


def test_reap_drops_entries_at_or_past_threshold() -> None:
    now = 100_000
    fresh = make_entry("fresh", now - 1_000)
    edge = make_entry("edge", now - 15_000)
    old = make_entry("old", now - 60_000)
    almost = make_entry("almost", now - 14_999)

    live = reap([fresh, edge, old, almost], now, 15_000)

    assert [e.session_id for e in live] == ["fresh", "almost"]


def test_reap_is_pure() -> None:
    entries = [make_entry("a", 0), make_entry("b", 99_000)]
    reap(entries, 100_000, 15_000)
    assert [e.session_id for e in entries] == ["a", "b"]


def test_future_timestamps_count_as_live() -> None:
    assert is_live(make_entry("clock-skew", 200_000), 100_000, 15_000)
