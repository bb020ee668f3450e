"""Sinks: destinations for serialized records.

Sinks are synchronous and block the calling thread for the whole write. They
raise on failure; the emitter decides whether a failure reaches the producer.
"""

from __future__ import annotations

import sys
import threading
import time
from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Protocol

import requests
from requests.structures import CaseInsensitiveDict

from .diagnostics import get_logger
from .formatting import redact_url
from .models import utc_now

# Exported so a shipping agent can find the log files and the lines it has not forwarded yet.
FILE_FORMAT = "%Y-%m-%d"
NOT_SENT_MARK = b"-"

REQUEST_TIMEOUT = 10.0
MAX_RETRY_DURATION = 300.0
RETRY_INTERVAL = 10.0


class Sink(Protocol):
    """A destination that accepts one serialized record per call."""

    def write(self, payload: bytes) -> int:
        """Deliver a payload, returning the number of bytes written."""

    def close(self) -> None:
        """Release resources or interrupt pending work."""


class DeliveryError(RuntimeError):
    """The collector answered with a non-2xx status."""

    def __init__(self, *, status_code: int, body: str | None = None):
        super().__init__(f"expected 2xx, got {status_code}")
        self.status_code = status_code
        self.body = body


def sentinel_line(payload: bytes) -> bytes:
    """Prefix the not-sent mark and end the payload with exactly one newline."""
    return NOT_SENT_MARK + bytes(payload).rstrip(b"\n") + b"\n"


def log_filename(now: datetime | None = None) -> str:
    """Name of the file for the current (UTC) calendar day."""
    return (now or utc_now()).strftime(FILE_FORMAT)


class FileSink:
    """Appends sentinel-prefixed lines to one file per UTC day in `directory`.

    Every write opens, appends and closes the file. Keeping no descriptor open
    costs a few microseconds per call and rules out descriptor exhaustion
    across rotated files. Day rotation is implicit in the filename.

    An external agent tails these files and forwards lines that still start
    with NOT_SENT_MARK; marking lines as sent is its job, not ours.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """File the next write goes to."""
        return self.directory / log_filename()

    def write(self, payload: bytes) -> int:
        """Append one sentinel-prefixed line to today's file; return the bytes written.

        Open, write and close errors (`OSError`) propagate unchanged.
        """
        line = sentinel_line(payload)
        with self._lock:
            with self.path.open("ab") as handle:
                handle.write(line)
        return len(line)

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""


class HTTPSink:
    """POSTs each payload to a collector, retrying for a bounded time.

    Retries are spaced by a constant `retry_interval` (no backoff, no jitter)
    and stop once `retry_budget` seconds have passed since the first attempt.
    A single call can therefore block for minutes; callers on latency-sensitive
    paths must dispatch it themselves.
    """

    def __init__(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        *,
        request_timeout: float = REQUEST_TIMEOUT,
        retry_budget: float = MAX_RETRY_DURATION,
        retry_interval: float = RETRY_INTERVAL,
    ) -> None:
        self.url = url
        self.headers = dict(headers or {})
        self.request_timeout = request_timeout
        self.retry_budget = retry_budget
        self.retry_interval = retry_interval
        self._closed = threading.Event()

    def _request_headers(self) -> CaseInsensitiveDict:
        headers = CaseInsensitiveDict({"Content-Type": "application/json"})
        headers.update(self.headers)
        return headers

    def _send(self, payload: bytes) -> None:
        """Issue one POST.

        Raises:
        - `DeliveryError` for non-2xx responses
        - `requests.RequestException` for transport errors
        """
        resp = requests.request(
            "POST",
            self.url,
            data=payload,
            headers=self._request_headers(),
            timeout=self.request_timeout,
        )
        if not 200 <= resp.status_code < 300:
            raise DeliveryError(status_code=resp.status_code, body=resp.text)

    def write(self, payload: bytes) -> int:
        """POST the payload until a 2xx answer or the retry budget runs out.

        Returns `len(payload)` on success. On exhaustion (or after `close()`),
        logs `delivery.failed` and raises the last `DeliveryError` or
        `requests.RequestException`.
        """
        log = get_logger(url=redact_url(self.url))
        deadline = time.monotonic() + self.retry_budget
        attempt = 0
        while True:
            attempt += 1
            try:
                self._send(payload)
                return len(payload)
            except (requests.RequestException, DeliveryError) as exc:
                last_error = exc
                log.warning("delivery.attempt_failed", attempt=attempt, error=str(exc))

            # Event.wait doubles as an interruptible sleep: close() ends the loop early.
            if self._closed.wait(self.retry_interval) or time.monotonic() >= deadline:
                break

        log.error("delivery.failed", attempts=attempt, error=str(last_error))
        raise last_error

    def close(self) -> None:
        """Stop retrying; an in-flight write raises its last error after the current attempt."""
        self._closed.set()


class StreamSink:
    """Writes payloads unchanged to a binary stream (stdout by default)."""

    def __init__(self, stream: BinaryIO | None = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    @property
    def stream(self) -> BinaryIO:
        # Resolved per write so a replaced sys.stdout is honoured.
        return self._stream if self._stream is not None else sys.stdout.buffer

    def write(self, payload: bytes) -> int:
        with self._lock:
            stream = self.stream
            stream.write(payload)
            stream.flush()
        return len(payload)

    def close(self) -> None:
        with self._lock:
            self.stream.flush()


class InMemorySink:
    """In-memory sink for tests and local debugging."""

    def __init__(self) -> None:
        """Create an empty in-memory sink."""
        self._lock = threading.Lock()
        self._payloads: list[bytes] = []

    def write(self, payload: bytes) -> int:
        """Append a payload to the in-memory list (thread-safe)."""
        with self._lock:
            self._payloads.append(bytes(payload))
        return len(payload)

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""

    def snapshot(self) -> Sequence[bytes]:
        """Return a point-in-time copy of all written payloads."""
        with self._lock:
            return list(self._payloads)

