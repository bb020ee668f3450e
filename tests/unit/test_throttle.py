from __future__ import annotations

import threading
import time

import pytest

from eventlog import ThrottleCache, parse_duration


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> _Clock:
    fake = _Clock()
    monkeypatch.setattr("eventlog.throttle.time.monotonic", fake)
    return fake


@pytest.mark.parametrize(
    ("text", "seconds"),
    [
        ("1s", 1.0),
        ("5m", 300.0),
        ("1.5h", 5400.0),
        ("2h45m", 9900.0),
        ("300ms", 0.3),
        ("10us", 1e-5),
        ("10µs", 1e-5),
        ("7ns", 7e-9),
        (".5s", 0.5),
        ("0", 0.0),
        ("-1m", -60.0),
        ("+2s", 2.0),
    ],
)
def test_parse_duration(text: str, seconds: float) -> None:
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "bogus", "1", "s", "1d", "1 s", "1s ", "--1s", "1e3s"])
def test_parse_duration_rejects(text: str) -> None:
    with pytest.raises(ValueError):
        parse_duration(text)


def test_suppresses_within_period_and_releases_after_it() -> None:
    cache = ThrottleCache()

    assert cache.should_suppress("1s", "m", "e") is False
    assert cache.should_suppress("1s", "m", "e") is True
    time.sleep(1.05)
    assert cache.should_suppress("1s", "m", "e") is False


def test_window_is_fixed_not_sliding(clock: _Clock) -> None:
    cache = ThrottleCache()

    assert cache.should_suppress("10s", "m", "e") is False
    clock.now += 6
    assert cache.should_suppress("10s", "m", "e") is True
    clock.now += 4
    # Exactly one period after the first emission: elapsed >= period lets it through.
    assert cache.should_suppress("10s", "m", "e") is False
    clock.now += 9.999
    assert cache.should_suppress("10s", "m", "e") is True


def test_keys_are_message_and_error(clock: _Clock) -> None:
    cache = ThrottleCache()

    assert cache.should_suppress("1m", "m", "e") is False
    assert cache.should_suppress("1m", "m", "other") is False
    assert cache.should_suppress("1m", "other", "e") is False
    assert cache.should_suppress("1m", "m", "e") is True
    assert len(cache) == 3


def test_invalid_period_never_suppresses_and_leaves_cache_alone(clock: _Clock) -> None:
    cache = ThrottleCache()

    for _ in range(3):
        assert cache.should_suppress("bogus", "m", "e") is False
    assert len(cache) == 0

    assert cache.should_suppress("1h", "m", "e") is False
    assert cache.should_suppress("bogus", "m", "e") is False
    assert cache.should_suppress("1h", "m", "e") is True


def test_prune_removes_only_stale_entries(clock: _Clock) -> None:
    cache = ThrottleCache()
    cache.should_suppress("1s", "old", "")
    clock.now += 120
    cache.should_suppress("1s", "new", "")

    assert cache.prune(60) == 1
    assert len(cache) == 1
    assert cache.should_suppress("1h", "new", "") is True


def test_concurrent_callers_let_exactly_one_through() -> None:
    cache = ThrottleCache()
    callers = 16
    start = threading.Barrier(callers)
    results: list[bool] = []
    results_lock = threading.Lock()

    def call() -> None:
        start.wait()
        suppressed = cache.should_suppress("1h", "burst", "")
        with results_lock:
            results.append(suppressed)

    threads = [threading.Thread(target=call) for _ in range(callers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(False) == 1
    assert results.count(True) == callers - 1
