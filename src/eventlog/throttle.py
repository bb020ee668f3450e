"""Suppression of repeated identical emissions.

Records are keyed by `(message, error)`. Within a caller-chosen period only the
first record of a key is let through; the window is fixed at that first
emission and does not slide with suppressed calls.
"""

from __future__ import annotations

import re
import threading
import time

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # U+00B5 micro sign
    "μs": 1e-6,  # U+03BC greek mu
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_COMPONENT = r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"([-+]?)((?:{_COMPONENT})+)")
_COMPONENT_RE = re.compile(_COMPONENT)


def parse_duration(text: str) -> float:
    """Parse a duration literal such as "300ms", "1.5h" or "2h45m" into seconds.

    Accepts an optional sign followed by one or more number+unit groups (units:
    ns, us, µs, ms, s, m, h). A bare "0" is also accepted. Raises `ValueError`
    for anything else, including the empty string.
    """
    if text in ("0", "+0", "-0"):
        return 0.0
    match = _DURATION_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid duration {text!r}")
    seconds = sum(float(number) * _UNIT_SECONDS[unit] for number, unit in _COMPONENT_RE.findall(match.group(2)))
    return -seconds if match.group(1) == "-" else seconds


class ThrottleCache:
    """Thread-safe map of `(message, error)` to the time it was last let through.

    Entries are never evicted implicitly; the cache grows with the number of
    distinct keys. Call `prune` if that number is unbounded.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_emitted: dict[tuple[str, str], float] = {}

    def should_suppress(self, period: str, message: str, error: str) -> bool:
        """Return True when the key was let through less than `period` ago.

        An unparseable period never suppresses and leaves the cache untouched.
        """
        try:
            window = parse_duration(period)
        except ValueError:
            return False

        key = (message, error)
        with self._lock:
            now = time.monotonic()
            last = self._last_emitted.get(key)
            if last is not None and now - last < window:
                return True
            self._last_emitted[key] = now
            return False

    def prune(self, max_age: float) -> int:
        """Drop entries last let through more than `max_age` seconds ago; return how many."""
        with self._lock:
            cutoff = time.monotonic() - max_age
            stale = [key for key, last in self._last_emitted.items() if last < cutoff]
            for key in stale:
                del self._last_emitted[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._last_emitted.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_emitted)


# Backs the default emitter; shared by every emitter that is not given its own cache.
default_cache = ThrottleCache()
