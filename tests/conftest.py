"""Shared pytest fixtures for the docker-log-forwarder test suite."""

import json
import threading
import time

import pytest

from docker_log_forwarder.models import LogRecord


class CollectingSink:
    """Sink that keeps every record it is given."""

    def __init__(self, fail=False):
        self.records: list[LogRecord] = []
        self.fail = fail
        self._lock = threading.Lock()

    def index_log(self, record: LogRecord) -> bool:
        with self._lock:
            self.records.append(record)
        return not self.fail

    @property
    def messages(self) -> list[str]:
        with self._lock:
            return [r.message for r in self.records]

    def close(self):
        pass


def log_line(message: str, stream: str = "stdout", time_str: str = "2024-01-15T10:30:00.123456789Z") -> str:
    """One Docker json-file line, newline included."""
    return json.dumps({"log": message + "\n", "stream": stream, "time": time_str}) + "\n"


def wait_until(predicate, timeout: float = 3.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture()
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture()
def containers_dir(tmp_path):
    d = tmp_path / "containers"
    d.mkdir()
    return d


@pytest.fixture()
def make_container(containers_dir):
    """Create a container directory, optionally with log content and a name."""

    def _make(container_id: str = "abc123", lines: list[str] | None = None, name: str | None = None):
        cdir = containers_dir / container_id
        cdir.mkdir()
        if lines is not None:
            (cdir / f"{container_id}-json.log").write_text("".join(lines))
        if name is not None:
            (cdir / "config.v2.json").write_text(json.dumps({"Name": name}))
        return cdir

    return _make
