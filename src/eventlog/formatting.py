"""Helpers used by the record builders.

Most helpers accept `None` and return an empty result for it, so callers do not
need to guard every optional request/response attribute.
"""

from __future__ import annotations

import json
import random
from collections.abc import Mapping
from typing import Any, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

HeaderValue = Union[str, bytes, list, tuple]
Headers = Mapping[str, HeaderValue]

# Typical large bodies are around 2 KiB; the limit leaves roughly 2x headroom.
BODY_MAX_BYTES = 5 * 1024

# Must stay safe inside both a header value and a URL query.
REDACTED = "...eventlog_redacted..."

_HEX_LETTERS = "abcdef0123456789"
_SENSITIVE_HEADER_PARTS = ("password", "secret", "token", "key")
_SENSITIVE_QUERY_KEYS = frozenset({"token", "password"})
_JSON_WHITESPACE = frozenset(b" \t\n\r")


def fn_name(fn: Any) -> str:
    """Return a readable name for a function (or pass a string through)."""
    if fn is None:
        return "<eventlog nil>"
    if isinstance(fn, str):
        return fn
    if callable(fn):
        qualname = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None)
        if qualname is not None:
            module = getattr(fn, "__module__", None)
            return f"{module}.{qualname}" if module else qualname
    return f"<eventlog unsupported: {type(fn).__name__}>"


def new_reference() -> str:
    """Return a 36-character random hex reference for a record."""
    return "".join(random.choices(_HEX_LETTERS, k=36))


def truncate(body: bytes) -> bytes:
    """Cap a body at BODY_MAX_BYTES, noting how many bytes were dropped."""
    if len(body) > BODY_MAX_BYTES:
        dropped = len(body) - BODY_MAX_BYTES
        return body[:BODY_MAX_BYTES] + f"...<eventlog truncated {dropped} bytes>".encode()
    return body


def _header_values(value: HeaderValue) -> list[str]:
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = [value]
    out = []
    for item in items:
        if isinstance(item, bytes):
            item = item.decode("latin-1")
        out.append(str(item).replace("\r", " ").replace("\n", " "))
    return out


def head2str(headers: Headers | None) -> str:
    """Render headers in wire format, one `Name: value` line per value, sorted by name."""
    if headers is None:
        return ""
    lines = []
    for name in sorted(headers):
        for value in _header_values(headers[name]):
            lines.append(f"{name}: {value}\r\n")
    return "".join(lines)


def _is_sensitive_header(name: str) -> bool:
    lowered = name.lower()
    if lowered == "authorization":
        return True
    return any(part in lowered for part in _SENSITIVE_HEADER_PARTS)


def redact(headers: Headers | None) -> dict[str, HeaderValue] | None:
    """Return a copy of `headers` with credential-like values replaced."""
    if headers is None:
        return None
    return {
        name: REDACTED if _is_sensitive_header(name) else value
        for name, value in headers.items()
    }


def redact_url(url: str | None) -> str | None:
    """Redact `token`/`password` query parameters.

    The query is parsed and re-encoded, so a secret value that happens to also
    appear in the path or another parameter is left alone.
    """
    if url is None:
        return None
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    if not any(key in _SENSITIVE_QUERY_KEYS for key, _ in pairs):
        return url
    query = urlencode([(key, REDACTED if key in _SENSITIVE_QUERY_KEYS else value) for key, value in pairs])
    return urlunsplit(parts._replace(query=query))


def http_msg(method: str, path: str, status: int = 0) -> str:
    """Describe an HTTP transaction as `METHOD path [status]` (status omitted when 0)."""
    msg = f"{method} {path}"
    if status != 0:
        msg += f" [{status}]"
    return msg


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON literal {name!r}")


def compact_json(data: bytes | str | None) -> bytes | None:
    """Strip insignificant whitespace from a JSON document.

    Only whitespace outside strings is removed; keys, numbers and escapes keep
    their original spelling. Returns `None` for `None` and `b""` for empty
    input. Raises `ValueError` (`json.JSONDecodeError` or `UnicodeDecodeError`)
    for invalid input, including the non-standard NaN and Infinity literals.
    """
    if data is None:
        return None
    if not data:
        return b""
    if isinstance(data, str):
        data = data.encode("utf-8")
    json.loads(data.decode("utf-8"), parse_constant=_reject_constant)

    out = bytearray()
    in_string = escaped = False
    for byte in data:
        if in_string:
            out.append(byte)
            if escaped:
                escaped = False
            elif byte == 0x5C:  # backslash
                escaped = True
            elif byte == 0x22:  # closing quote
                in_string = False
        elif byte not in _JSON_WHITESPACE:
            out.append(byte)
            in_string = byte == 0x22
    return bytes(out)
