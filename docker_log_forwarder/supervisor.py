"""TailSupervisor: one tail per log file, and waits for files not yet created."""

import logging
import os
import threading
import time

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from docker_log_forwarder.metrics import Metrics
from docker_log_forwarder.models import ContainerLogSource, TailMode, TailPolicy, TailTask
from docker_log_forwarder.reader import DEFAULT_POLL_INTERVAL, LogFileReader
from docker_log_forwarder.registry import TailRegistry

logger = logging.getLogger(__name__)

DEFAULT_FILE_WAIT_TIMEOUT = 300.0
_WAIT_SLICE = 0.1


class _FileCreatedHandler(FileSystemEventHandler):
    """Sets an event once a specific file is created (or moved) into place."""

    def __init__(self, target_path: str, appeared: threading.Event):
        super().__init__()
        self._target = os.path.abspath(target_path)
        self._appeared = appeared

    def on_created(self, event):
        if not event.is_directory and os.path.abspath(event.src_path) == self._target:
            self._appeared.set()

    def on_moved(self, event):
        if not event.is_directory and os.path.abspath(event.dest_path) == self._target:
            self._appeared.set()


class TailSupervisor:
    """Starts, deduplicates and tracks tail tasks.

    Every task (tail or wait-for-file) runs in its own daemon thread so a busy
    or waiting task never delays the next container.
    """

    def __init__(
        self,
        sink,
        policy: TailPolicy = TailPolicy.REPLAY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        file_wait_timeout: float = DEFAULT_FILE_WAIT_TIMEOUT,
        metrics: Metrics | None = None,
        registry: TailRegistry | None = None,
        resolver=None,
        observer_factory=Observer,
    ):
        self._sink = sink
        self._policy = policy
        self._poll_interval = poll_interval
        self._file_wait_timeout = file_wait_timeout
        self._metrics = metrics or Metrics()
        self._registry = registry or TailRegistry()
        self._resolver = resolver
        self._observer_factory = observer_factory
        self._observer = None
        self._observer_lock = threading.Lock()
        self._shutdown = threading.Event()

    @property
    def registry(self) -> TailRegistry:
        return self._registry

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    def start_tailing_if_needed(self, container_dir: str) -> TailTask | None:
        """Begin tailing a container's log unless it is already being tailed.

        Returns the new task, or None if one already exists (or we are
        shutting down).
        """
        if self._shutdown.is_set():
            return None

        source = ContainerLogSource(container_dir, self._resolver)
        task = TailTask(log_file_path=source.log_file_path, source=source)
        if not self._registry.try_register(task):
            logger.debug("Already tailing %s", source.log_file_path)
            return None

        logger.info("Container directory detected: %s", source.container_dir)
        task.thread = threading.Thread(
            target=self._run_task, args=(task,),
            name=f"tail-{source.container_id[:12]}", daemon=True,
        )
        task.thread.start()

        if self._shutdown.is_set():
            task.cancel()
        return task

    def shutdown(self, timeout: float = 5.0):
        """Cancel every task, wait for their threads, stop the file watcher."""
        self._shutdown.set()
        tasks = self._registry.tasks()
        for task in tasks:
            task.cancel()
        for task in tasks:
            if task.thread is not None and task.thread is not threading.current_thread():
                task.thread.join(timeout=timeout)

        with self._observer_lock:
            if self._observer is not None:
                self._observer.stop()
                self._observer.join(timeout=timeout)
                self._observer = None
        logger.info("Tail supervisor stopped (%d task(s) cancelled)", len(tasks))

    def _run_task(self, task: TailTask):
        started = False
        try:
            if not os.path.exists(task.log_file_path):
                if not self._wait_for_file(task):
                    return
            reader = LogFileReader(
                task, self._sink,
                policy=self._policy,
                poll_interval=self._poll_interval,
                metrics=self._metrics,
            )
            started = True
            self._metrics.increment("tails_started")
            reader.run()
        except Exception:
            logger.exception("Unexpected error tailing %s", task.log_file_path)
        finally:
            task.mode = TailMode.STOPPED
            self._registry.remove(task)
            if started:
                self._metrics.increment("tails_stopped")
                logger.info("Stopped tailing %s", task.log_file_path)

    def _wait_for_file(self, task: TailTask) -> bool:
        """Block until the log file exists, the ceiling passes, or cancel."""
        task.mode = TailMode.WAITING_FOR_FILE
        container_dir = task.source.container_dir
        logger.info("Waiting for log file to appear: %s", task.log_file_path)

        appeared = threading.Event()
        handler = _FileCreatedHandler(task.log_file_path, appeared)
        try:
            watch = self._get_observer().schedule(handler, container_dir, recursive=False)
        except OSError as e:
            logger.error("Error watching container dir %s: %s", container_dir, e)
            return False

        try:
            deadline = time.monotonic() + self._file_wait_timeout
            while not task.cancelled:
                # Checking the path as well covers a file created before the
                # watch was in place.
                if appeared.is_set() or os.path.exists(task.log_file_path):
                    return True
                if not os.path.isdir(container_dir):
                    logger.info("Container dir %s removed while waiting", container_dir)
                    return False
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("Log file %s did not appear within %.0fs, giving up",
                                   task.log_file_path, self._file_wait_timeout)
                    self._metrics.increment("waits_abandoned")
                    return False
                appeared.wait(min(remaining, _WAIT_SLICE))
            return False
        finally:
            self._unschedule(watch)

    def _get_observer(self):
        with self._observer_lock:
            if self._observer is None:
                self._observer = self._observer_factory()
                self._observer.daemon = True
                self._observer.start()
            return self._observer

    def _unschedule(self, watch):
        with self._observer_lock:
            if self._observer is None:
                return
            try:
                self._observer.unschedule(watch)
            except KeyError:
                pass
