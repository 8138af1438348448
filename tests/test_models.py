"""Tests for LogRecord documents and TailTask offsets."""

from datetime import datetime, timedelta, timezone

from docker_log_forwarder.models import ContainerLogSource, LogRecord, TailMode, TailTask


def _task(tmp_path) -> TailTask:
    source = ContainerLogSource(str(tmp_path / "abc123"), lambda d: "svc")
    return TailTask(log_file_path=source.log_file_path, source=source)


class TestLogRecord:
    def test_to_document(self):
        record = LogRecord("abc123", "web", "stderr", "boom",
                           datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc))
        doc = record.to_document()
        assert doc == {
            "containerId": "abc123",
            "serviceName": "web",
            "stream": "stderr",
            "message": "boom",
            "timestamp": "2024-01-15T10:30:00.123456Z",
            "@timestamp": "2024-01-15T10:30:00.123456Z",
        }

    def test_to_document_normalises_offset(self):
        tz = timezone(timedelta(hours=2))
        record = LogRecord("c", "s", "stdout", "m", datetime(2024, 1, 15, 12, 0, tzinfo=tz))
        assert record.to_document()["timestamp"] == "2024-01-15T10:00:00Z"


class TestTailTask:
    def test_defaults(self, tmp_path):
        task = _task(tmp_path)
        assert task.mode is TailMode.WAITING_FOR_FILE
        assert task.offset == 0
        assert not task.cancelled

    def test_advance_is_monotonic(self, tmp_path):
        task = _task(tmp_path)
        task.advance(100)
        task.advance(50)
        assert task.offset == 100

    def test_reset_and_cancel(self, tmp_path):
        task = _task(tmp_path)
        task.advance(100)
        task.reset()
        assert task.offset == 0
        task.cancel()
        assert task.cancelled
