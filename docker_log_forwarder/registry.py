"""Active-tail registry: at most one TailTask per log file path."""

import threading

from docker_log_forwarder.models import TailTask


class TailRegistry:
    """Thread-safe mapping of log file path -> running TailTask.

    Discovery threads insert, tail threads remove; the check-and-insert in
    ``try_register`` is atomic so racing discovery events cannot both win.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks: dict[str, TailTask] = {}

    def try_register(self, task: TailTask) -> bool:
        """Insert *task* unless its path is already tailed. Returns True if inserted."""
        with self._lock:
            if task.log_file_path in self._tasks:
                return False
            self._tasks[task.log_file_path] = task
            return True

    def remove(self, task: TailTask) -> bool:
        """Remove *task* if it is still the registered task for its path."""
        with self._lock:
            if self._tasks.get(task.log_file_path) is task:
                del self._tasks[task.log_file_path]
                return True
            return False

    def get(self, log_file_path: str) -> TailTask | None:
        with self._lock:
            return self._tasks.get(log_file_path)

    def __contains__(self, log_file_path: str) -> bool:
        with self._lock:
            return log_file_path in self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def tasks(self) -> list[TailTask]:
        """Snapshot of the currently registered tasks."""
        with self._lock:
            return list(self._tasks.values())
