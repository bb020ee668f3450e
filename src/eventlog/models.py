"""Event record models.

A record describes one application occurrence: a message, an optional error,
free-form attributes, and optionally the HTTP transaction it happened in.
Builder methods return modified copies, so a partially built record can be
shared and extended safely:

    eventlog.msg("payment declined").user(user_id).attrs("amount", 42).write()
"""

from __future__ import annotations

import json
import os
import socket
import traceback
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

import requests
from pydantic import BaseModel, ConfigDict, Field

from .diagnostics import get_logger
from .formatting import Headers, compact_json, fn_name, head2str, new_reference, redact, redact_url, truncate

NIL_ERROR = "eventlog_nil"


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


class Source(BaseModel):
    """Where a record was emitted from."""

    model_config = ConfigDict(frozen=True)

    func: str
    file: str
    line: int


def _body_text(body: bytes | None) -> str:
    """Compact (when JSON), truncate and decode a captured body."""
    if body is None:
        return ""
    try:
        body = compact_json(body)
    except ValueError:
        pass
    return truncate(body).decode("utf-8", errors="replace")


class Record(BaseModel):
    """A structured event record, serialized with the collector's short field names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Host name of the emitting machine (overridable, e.g. via the container hostname).
    hostname: str = Field(default="", alias="host")

    # Deployment environment, e.g. "dev" or "prod" (the ENVIRONMENT variable).
    environment: str = Field(default="", alias="env")

    # Unique per record; can be handed to API clients and used to link logs across services.
    reference: str = Field(default="", alias="ref")

    message: str = Field(default="", alias="msg")
    error: str = Field(default="", alias="err")

    # The user who initiated the request.
    username: str = Field(default="", alias="user")

    # Supplementary key/value data, indexed by the collector.
    attributes: dict[str, str] = Field(default_factory=dict)

    req_method: str = ""
    req_url: str = ""
    # Derived from req_url; stored separately so the collector can group by path.
    req_path: str = ""
    req_header: str = ""
    req_body: str = ""

    resp_status: int = 0
    resp_header: str = ""
    resp_body: str = ""

    source: Source | None = None

    @classmethod
    def new(cls) -> Record:
        """Create a record stamped with host, environment and a fresh reference."""
        return cls(
            hostname=socket.gethostname(),
            environment=os.getenv("ENVIRONMENT", ""),
            reference=new_reference(),
        )

    def msg(self, message: str) -> Record:
        return self.model_copy(update={"message": message})

    def ref(self, reference: str) -> Record:
        return self.model_copy(update={"reference": reference})

    def err(self, error: BaseException | str | None) -> Record:
        """Attach an error; `None` is recorded as a marker so it stays visible."""
        if error is None:
            text = NIL_ERROR
        elif isinstance(error, BaseException):
            text = str(error) or type(error).__name__
        else:
            text = error
        return self.model_copy(update={"error": text})

    def user(self, username: str) -> Record:
        return self.model_copy(update={"username": username})

    def attrs(self, *args: Any) -> Record:
        """Add attributes from alternating key/value arguments.

        Strings are stored as-is, any other value as its `repr`. A trailing key
        without a value is ignored.
        """
        attributes = dict(self.attributes)
        for key, value in zip(args[::2], args[1::2]):
            attributes[str(key)] = value if isinstance(value, str) else repr(value)
        return self.model_copy(update={"attributes": attributes})

    def fail(self, fn: Any, error: BaseException | str | None) -> Record:
        return self.msg("FAIL " + fn_name(fn)).err(error)

    def panic(self, fn: Any, exc: Any) -> Record:
        """Describe a crash in `fn`, attaching the stack as the `stack` attribute."""
        if isinstance(exc, BaseException) and exc.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        else:
            stack = "".join(traceback.format_stack())
        error = exc if isinstance(exc, BaseException) else str(exc)
        return self.msg("PANIC " + fn_name(fn)).err(error).attrs("stack", stack)

    def request(self, req: requests.Request | requests.PreparedRequest | None) -> Record:
        """Capture an outgoing or incoming request (redacted, body compacted)."""
        if req is None:
            return self
        if isinstance(req, requests.Request):
            req = req.prepare()
        body = req.body
        if isinstance(body, str):
            body = body.encode("utf-8")
        elif body is not None and not isinstance(body, (bytes, bytearray)):
            # Streamed or file-like bodies cannot be read without consuming them.
            get_logger().warning("record.body_unreadable", body_type=type(body).__name__)
            body = None
        return self.req(req.method or "", req.url, req.headers, body)

    def req(self, method: str, url: str | None, headers: Headers | None, body: bytes | None) -> Record:
        """Capture request parts directly, e.g. when the body must be left out."""
        update: dict[str, Any] = {"req_method": method}
        if url is not None:
            update["req_url"] = redact_url(url)
            update["req_path"] = urlsplit(url).path
        update["req_header"] = head2str(redact(headers))
        update["req_body"] = _body_text(None if body is None else bytes(body))
        return self.model_copy(update=update)

    def response(self, resp: requests.Response | None) -> Record:
        if resp is None:
            return self
        try:
            body = resp.content
        except (RuntimeError, requests.RequestException) as exc:
            get_logger().warning("record.body_unreadable", error=str(exc))
            body = None
        return self.resp(resp.status_code, resp.headers, body)

    def resp(self, status: int, headers: Headers | None, body: bytes | None) -> Record:
        return self.model_copy(
            update={
                "resp_status": status,
                "resp_header": head2str(redact(headers)),
                "resp_body": _body_text(None if body is None else bytes(body)),
            }
        )

    def write(self) -> None:
        """Emit through the default emitter (fire-and-forget)."""
        from .emitter import get_emitter

        get_emitter().emit(self, stacklevel=2)

    def write_once_in(self, period: str) -> None:
        """Emit unless an identical message/error pair was emitted within `period` (e.g. "5m")."""
        from .emitter import get_emitter

        get_emitter().emit(self, period, stacklevel=2)


def encode_record(record: Record) -> bytes:
    """Serialize a record as one compact JSON line.

    Empty fields are omitted except `msg`. HTML characters are not escaped.
    """
    data = record.model_dump(by_alias=True, mode="json")
    payload = {key: value for key, value in data.items() if key == "msg" or value not in (None, "", 0, {})}
    return (json.dumps(payload, ensure_ascii=False, separators=(",", ":")) + "\n").encode("utf-8")


def new() -> Record:
    return Record.new()


def msg(message: str) -> Record:
    return Record.new().msg(message)


def request(req: requests.Request | requests.PreparedRequest | None) -> Record:
    """Start a record from an HTTP request.

    There is no separate response constructor; add the response with
    `.response(...)` so both halves of the transaction land in one record.
    """
    return Record.new().request(req)


def req(method: str, url: str | None, headers: Headers | None, body: bytes | None) -> Record:
    """Start a record from explicit request parts (lets callers drop large or sensitive bodies)."""
    return Record.new().req(method, url, headers, body)


def fail(fn: Any, error: BaseException | str | None) -> Record:
    return Record.new().fail(fn, error)


def panic(fn: Any, exc: Any) -> Record:
    return Record.new().panic(fn, exc)
