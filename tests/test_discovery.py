"""Tests for container discovery at startup and from watch events."""

import pytest
from watchdog.events import DirCreatedEvent, FileCreatedEvent

from conftest import log_line, wait_until
from docker_log_forwarder.discovery import ContainerDiscoveryWatcher, DiscoveryError
from docker_log_forwarder.supervisor import TailSupervisor


class RecordingSupervisor:
    def __init__(self, fail_for=()):
        self.calls = []
        self._fail_for = set(fail_for)

    def start_tailing_if_needed(self, container_dir):
        self.calls.append(container_dir)
        if any(container_dir.endswith(name) for name in self._fail_for):
            raise PermissionError(f"cannot list {container_dir}")


class FakeObserver:
    def __init__(self, fail=False):
        self.fail = fail
        self.scheduled = []
        self.started = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        if self.fail:
            raise PermissionError(f"permission denied: {path}")
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass


class TestStartup:
    def test_existing_directories_discovered(self, containers_dir):
        (containers_dir / "aaa").mkdir()
        (containers_dir / "bbb").mkdir()
        (containers_dir / "stray.txt").write_text("not a container")
        sup = RecordingSupervisor()
        observer = FakeObserver()

        watcher = ContainerDiscoveryWatcher(str(containers_dir), sup, observer)
        watcher.start()

        assert sorted(sup.calls) == [str(containers_dir / "aaa"), str(containers_dir / "bbb")]
        assert observer.started
        assert observer.scheduled == [(watcher, str(containers_dir), False)]
        watcher.stop()
        assert observer.stopped

    def test_missing_base_dir_is_fatal(self, tmp_path):
        watcher = ContainerDiscoveryWatcher(str(tmp_path / "nope"), RecordingSupervisor(), FakeObserver())
        with pytest.raises(DiscoveryError):
            watcher.start()

    def test_base_dir_is_a_file_is_fatal(self, tmp_path):
        f = tmp_path / "containers"
        f.write_text("")
        watcher = ContainerDiscoveryWatcher(str(f), RecordingSupervisor(), FakeObserver())
        with pytest.raises(DiscoveryError):
            watcher.start()

    def test_watch_subscription_failure_is_fatal(self, containers_dir):
        sup = RecordingSupervisor()
        watcher = ContainerDiscoveryWatcher(str(containers_dir), sup, FakeObserver(fail=True))
        with pytest.raises(DiscoveryError):
            watcher.start()
        assert sup.calls == []

    def test_one_failing_container_does_not_stop_others(self, containers_dir):
        for name in ("aaa", "bad", "ccc"):
            (containers_dir / name).mkdir()
        sup = RecordingSupervisor(fail_for=["bad"])
        watcher = ContainerDiscoveryWatcher(str(containers_dir), sup, FakeObserver())
        watcher.start()
        assert len(sup.calls) == 3


class TestEvents:
    def test_new_directory_discovered(self, containers_dir):
        sup = RecordingSupervisor()
        watcher = ContainerDiscoveryWatcher(str(containers_dir), sup, FakeObserver())
        watcher.start()

        new_dir = containers_dir / "new"
        new_dir.mkdir()
        watcher.dispatch(DirCreatedEvent(str(new_dir)))
        assert sup.calls == [str(new_dir)]

    def test_new_file_ignored(self, containers_dir):
        sup = RecordingSupervisor()
        watcher = ContainerDiscoveryWatcher(str(containers_dir), sup, FakeObserver())
        watcher.start()
        watcher.dispatch(FileCreatedEvent(str(containers_dir / "file.txt")))
        assert sup.calls == []

    def test_event_failure_does_not_raise(self, containers_dir):
        sup = RecordingSupervisor(fail_for=["bad"])
        watcher = ContainerDiscoveryWatcher(str(containers_dir), sup, FakeObserver())
        watcher.start()
        watcher.dispatch(DirCreatedEvent(str(containers_dir / "bad")))
        watcher.dispatch(DirCreatedEvent(str(containers_dir / "good")))
        assert len(sup.calls) == 2


class TestEndToEnd:
    def test_container_created_after_start_is_tailed(self, containers_dir, sink):
        supervisor = TailSupervisor(sink, poll_interval=0.05, resolver=lambda d: "svc")
        watcher = ContainerDiscoveryWatcher(str(containers_dir), supervisor)
        try:
            watcher.start()
            cdir = containers_dir / "late"
            cdir.mkdir()
            (cdir / "late-json.log").write_text(log_line("late hello"))
            assert wait_until(lambda: sink.messages == ["late hello"], timeout=5)
        finally:
            watcher.stop()
            supervisor.shutdown()

    def test_existing_and_new_containers(self, make_container, containers_dir, sink):
        make_container("early", [log_line("early 1"), log_line("early 2")], name="/web")
        supervisor = TailSupervisor(sink, poll_interval=0.05)
        watcher = ContainerDiscoveryWatcher(str(containers_dir), supervisor)
        try:
            watcher.start()
            assert wait_until(lambda: sink.messages == ["early 1", "early 2"])
            assert {r.service_name for r in sink.records} == {"web"}
        finally:
            watcher.stop()
            supervisor.shutdown()
