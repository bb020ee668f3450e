"""Delivery entry point: throttle, stamp provenance, serialize, write to a sink.

Two variants share the pipeline:

- `Emitter.emit` is fire-and-forget. Failures never reach the producer; they are
  reported on the diagnostic channel only.
- `Emitter.deliver` raises serialization and sink errors, for callers that need
  to know whether a record was delivered.

The process default emitter writes to stdout until `configure()` installs
another sink. Configure it once, before records are emitted concurrently.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from .diagnostics import get_logger, setup_diagnostics
from .formatting import http_msg
from .models import Record, Source, encode_record
from .sinks import Sink, StreamSink
from .throttle import ThrottleCache, default_cache

if TYPE_CHECKING:
    from .config import EventLogConfig

EMPTY_MESSAGE = "<eventlog empty>"


def capture_source(stacklevel: int = 1) -> Source:
    """Describe the frame `stacklevel` levels above the caller of this function.

    `stacklevel=1` is the function that called `capture_source`'s caller, the
    same convention as the `logging` module. A `stacklevel` deeper than the
    stack stops at the outermost frame instead of raising.
    """
    frame = sys._getframe(1)
    for _ in range(stacklevel):
        if frame.f_back is None:
            break
        frame = frame.f_back
    code = frame.f_code
    func = getattr(code, "co_qualname", code.co_name)
    module = frame.f_globals.get("__name__")
    return Source(
        func=f"{module}.{func}" if module else func,
        file=code.co_filename,
        line=frame.f_lineno,
    )


def _with_default_message(record: Record) -> Record:
    if record.message:
        return record
    if record.req_method and record.req_path:
        return record.msg(http_msg(record.req_method, record.req_path, record.resp_status))
    return record.msg(EMPTY_MESSAGE)


class Emitter:
    """Routes records to one explicitly provided sink."""

    def __init__(self, sink: Sink, *, throttle: ThrottleCache | None = None) -> None:
        """Create an emitter.

        Args:
            sink: Destination for serialized records.
            throttle: Cache used by `period` checks; defaults to the process-wide cache.
        """
        self.sink = sink
        self.throttle = throttle if throttle is not None else default_cache

    def emit(
        self,
        record: Record,
        period: str = "",
        *,
        source: Source | None = None,
        stacklevel: int = 1,
    ) -> None:
        """Write a record, reporting (never raising) any failure.

        With a non-empty `period`, the record is dropped silently when the same
        message/error pair was written less than `period` ago. Provenance is taken
        from `source` when given, otherwise from the caller `stacklevel` frames up.
        """
        record = _with_default_message(record)
        if period and self.throttle.should_suppress(period, record.message, record.error):
            return
        record = record.model_copy(update={"source": source or capture_source(stacklevel)})
        try:
            self._write(record)
        except Exception as exc:  # noqa: BLE001 - a logging failure must not crash the producer
            get_logger().error("emit.failed", message=record.message, error=str(exc), exc_type=type(exc).__name__)

    def deliver(
        self,
        record: Record,
        period: str = "",
        *,
        source: Source | None = None,
        stacklevel: int = 1,
    ) -> bool:
        """Write a record, raising serialization and sink errors.

        Returns False when the record was throttled, True when it was written.
        """
        record = _with_default_message(record)
        if period and self.throttle.should_suppress(period, record.message, record.error):
            return False
        record = record.model_copy(update={"source": source or capture_source(stacklevel)})
        self._write(record)
        return True

    def _write(self, record: Record) -> None:
        self.sink.write(encode_record(record))

    def close(self) -> None:
        self.sink.close()


_default_emitter = Emitter(StreamSink())


def get_emitter() -> Emitter:
    """Return the process default emitter."""
    return _default_emitter


def configure(sink: Sink | None = None, *, config: EventLogConfig | None = None) -> Emitter:
    """Install the process default emitter and return it.

    Pass a ready `sink`, or a `config` to build one from (see `load_config`).
    With a config, diagnostics are also routed to stderr unless the host
    application already configured structlog. With neither, records go to stdout.
    """
    global _default_emitter

    if sink is None and config is not None:
        from .config import build_sink

        setup_diagnostics()
        sink = build_sink(config)
    _default_emitter = Emitter(sink if sink is not None else StreamSink())
    return _default_emitter
