from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from eventlog import FileSink
from eventlog.sinks import NOT_SENT_MARK, log_filename


def _freeze_day(monkeypatch: pytest.MonkeyPatch, day: datetime) -> None:
    monkeypatch.setattr("eventlog.sinks.utc_now", lambda: day)


def test_write_adds_sentinel_when_payload_ends_with_newline(tmp_path: Path) -> None:
    sink = FileSink(tmp_path)
    payload = b'{"message":"test"}\n'

    n = sink.write(payload)

    assert sink.path.read_bytes() == b'-{"message":"test"}\n'
    assert n == len(payload) + 1


def test_write_appends_missing_newline(tmp_path: Path) -> None:
    sink = FileSink(tmp_path)
    payload = b'{"message":"test"}'

    n = sink.write(payload)

    assert sink.path.read_bytes() == b'-{"message":"test"}\n'
    assert n == len(payload) + 2


def test_write_collapses_extra_trailing_newlines(tmp_path: Path) -> None:
    sink = FileSink(tmp_path)

    sink.write(b"a\n\n\n")
    sink.write(b"")

    assert sink.path.read_bytes() == b"-a\n-\n"


def test_writes_append_to_the_same_daily_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _freeze_day(monkeypatch, datetime(2024, 3, 9, 23, 59, tzinfo=timezone.utc))
    sink = FileSink(tmp_path)

    sink.write(b"one")
    sink.write(b"two")

    assert [p.name for p in tmp_path.iterdir()] == ["2024-03-09"]
    assert (tmp_path / "2024-03-09").read_bytes() == b"-one\n-two\n"


def test_rotates_at_utc_day_boundary(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    sink = FileSink(tmp_path)

    _freeze_day(monkeypatch, datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc))
    sink.write(b"last")
    _freeze_day(monkeypatch, datetime(2025, 1, 1, 0, 0, 1, tzinfo=timezone.utc))
    sink.write(b"first")

    assert (tmp_path / "2024-12-31").read_bytes() == b"-last\n"
    assert (tmp_path / "2025-01-01").read_bytes() == b"-first\n"


def test_log_filename_format() -> None:
    assert log_filename(datetime(2023, 1, 5, tzinfo=timezone.utc)) == "2023-01-05"


def test_missing_directory_raises(tmp_path: Path) -> None:
    sink = FileSink(tmp_path / "does-not-exist")

    with pytest.raises(FileNotFoundError):
        sink.write(b"lost")


def test_concurrent_writes_never_interleave(tmp_path: Path) -> None:
    sink = FileSink(tmp_path)
    writers = 8
    per_writer = 50
    start = threading.Barrier(writers)

    def produce(worker: int) -> None:
        start.wait()
        for i in range(per_writer):
            # Long payloads make a torn write visible.
            sink.write(f"w{worker:02d}-{i:03d}-".encode() + b"x" * 2000)

    threads = [threading.Thread(target=produce, args=(w,)) for w in range(writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    lines = sink.path.read_bytes().split(b"\n")
    assert lines[-1] == b""
    lines = lines[:-1]
    assert len(lines) == writers * per_writer
    for line in lines:
        assert line.startswith(NOT_SENT_MARK + b"w")
        assert line.count(NOT_SENT_MARK + b"w") == 1
        assert line.endswith(b"x" * 2000)
        assert len(line) == 1 + len(b"w00-000-") + 2000
