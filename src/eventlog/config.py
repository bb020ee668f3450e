"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting `EVENTLOG_*` environment variables into a typed Pydantic model.
- Building the sink the configuration describes.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, TypeVar

import dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from .sinks import MAX_RETRY_DURATION, REQUEST_TIMEOUT, RETRY_INTERVAL, FileSink, HTTPSink, Sink, StreamSink

_T = TypeVar("_T", int, float)

SinkKind = Literal["stdout", "file", "http"]


def _get_env_str(name: str) -> str | None:
    """Read an optional env var, treating blank values as unset."""
    value = os.getenv(name, "").strip()
    return value or None


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


def _get_env_headers(name: str) -> dict[str, str]:
    """Read a JSON object of header names to values."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise ValueError(f'{name} must be a JSON object, e.g. {{"Authorization": "Bearer ..."}}. Got: {raw!r}') from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"{name} must be a JSON object. Got: {raw!r}")
    return {str(key): str(value) for key, value in parsed.items()}


class EventLogConfig(BaseModel):
    """Where records go and how hard the HTTP sink tries."""

    sink: SinkKind = Field(default="stdout", description="Active sink: stdout, file or http")
    directory: Path | None = Field(default=None, description="Directory for daily log files (file sink)")
    url: str | None = Field(default=None, description="Collector URL (http sink)")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra HTTP headers, e.g. authorization")

    request_timeout: float = Field(default=REQUEST_TIMEOUT, description="Per-attempt timeout (seconds)")
    retry_budget: float = Field(default=MAX_RETRY_DURATION, description="Max total time spent retrying (seconds)")
    retry_interval: float = Field(default=RETRY_INTERVAL, description="Constant delay between attempts (seconds)")

    @field_validator("request_timeout", "retry_interval")
    def validate_positive(cls, v: float) -> float:
        """Timeouts and intervals must be positive."""
        if v <= 0:
            raise ValueError(f"must be > 0. Got: {v}")
        return v

    @field_validator("retry_budget")
    def validate_budget(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"retry_budget must be >= 0. Got: {v}")
        return v

    @model_validator(mode="after")
    def validate_sink_target(self) -> EventLogConfig:
        """Each sink kind needs its own destination."""
        if self.sink == "file" and self.directory is None:
            raise ValueError("EVENTLOG_DIR is required when EVENTLOG_SINK=file.")
        if self.sink == "http" and not self.url:
            raise ValueError("EVENTLOG_URL is required when EVENTLOG_SINK=http.")
        return self


def load_config() -> EventLogConfig:
    """Load the configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages for malformed values or a
      sink kind whose destination is missing.
    """
    dotenv.load_dotenv()

    directory = _get_env_str("EVENTLOG_DIR")
    return EventLogConfig(
        sink=(_get_env_str("EVENTLOG_SINK") or "stdout").lower(),
        directory=Path(directory) if directory else None,
        url=_get_env_str("EVENTLOG_URL"),
        headers=_get_env_headers("EVENTLOG_HEADERS"),
        request_timeout=_get_env_number("EVENTLOG_REQUEST_TIMEOUT", REQUEST_TIMEOUT, float),
        retry_budget=_get_env_number("EVENTLOG_RETRY_BUDGET", MAX_RETRY_DURATION, float),
        retry_interval=_get_env_number("EVENTLOG_RETRY_INTERVAL", RETRY_INTERVAL, float),
    )


def build_sink(config: EventLogConfig) -> Sink:
    """Instantiate the sink selected by `config`."""
    if config.sink == "file":
        if config.directory is None:
            raise ValueError("EVENTLOG_DIR is required when EVENTLOG_SINK=file.")
        return FileSink(config.directory)
    if config.sink == "http":
        if not config.url:
            raise ValueError("EVENTLOG_URL is required when EVENTLOG_SINK=http.")
        return HTTPSink(
            config.url,
            config.headers,
            request_timeout=config.request_timeout,
            retry_budget=config.retry_budget,
            retry_interval=config.retry_interval,
        )
    return StreamSink()
