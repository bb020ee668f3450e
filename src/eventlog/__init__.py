"""Structured event records and their delivery.

This package provides:
- A record model with builders for messages, errors, attributes and HTTP transactions.
- Sinks for a daily rotating file (tailed by a shipping agent), a remote collector
  over HTTP with a bounded retry budget, and plain streams.
- A throttle that suppresses repeated identical records within a time window.

Typical use:

    import eventlog

    eventlog.configure(config=eventlog.load_config())
    eventlog.fail(charge_card, exc).user(user_id).write_once_in("1m")
"""

from .config import EventLogConfig, build_sink, load_config
from .emitter import Emitter, capture_source, configure, get_emitter
from .models import Record, Source, encode_record, fail, msg, new, panic, req, request
from .sinks import DeliveryError, FileSink, HTTPSink, InMemorySink, Sink, StreamSink
from .throttle import ThrottleCache, parse_duration

__all__ = [
    "DeliveryError",
    "Emitter",
    "EventLogConfig",
    "FileSink",
    "HTTPSink",
    "InMemorySink",
    "Record",
    "Sink",
    "Source",
    "StreamSink",
    "ThrottleCache",
    "build_sink",
    "capture_source",
    "configure",
    "encode_record",
    "fail",
    "get_emitter",
    "load_config",
    "msg",
    "new",
    "panic",
    "parse_duration",
    "req",
    "request",
]
