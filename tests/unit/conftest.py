from __future__ import annotations

import pytest
import structlog

import eventlog.emitter
from eventlog.throttle import default_cache


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch):
    """Give every test a fresh throttle cache, default emitter and structlog config.

    All three are process-wide, so a record throttled or a sink configured in
    one test would otherwise leak into the next.
    """
    default_cache.clear()
    structlog.reset_defaults()
    monkeypatch.setattr(eventlog.emitter, "_default_emitter", eventlog.emitter.get_emitter())
    yield
    default_cache.clear()
    structlog.reset_defaults()
