"""ContainerDiscoveryWatcher: finds container directories now and as they appear."""

import logging
import os

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    """Raised when the base container directory cannot be listed or watched."""


class ContainerDiscoveryWatcher(FileSystemEventHandler):
    """Hands every container directory under *base_dir* to the supervisor.

    Existing directories are handed over once at start-up; new ones as
    watchdog reports them. The handler only ever calls
    ``supervisor.start_tailing_if_needed``, which returns without blocking.
    """

    def __init__(self, base_dir: str, supervisor, observer=None):
        super().__init__()
        self._base_dir = os.path.abspath(base_dir)
        self._supervisor = supervisor
        self._observer = observer if observer is not None else Observer()
        self._started = False

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def start(self):
        """Subscribe to the base directory, then discover what already exists.

        Subscribing first means a container created during the initial listing
        is seen at least once; duplicates are absorbed by the supervisor.
        """
        if not os.path.isdir(self._base_dir):
            raise DiscoveryError(f"Container directory does not exist: {self._base_dir}")

        logger.info("Watching Docker containers directory: %s", self._base_dir)
        try:
            self._observer.schedule(self, self._base_dir, recursive=False)
            self._observer.start()
        except OSError as e:
            raise DiscoveryError(f"Cannot watch {self._base_dir}: {e}") from e
        self._started = True

        count = self.discover_existing()
        logger.info("Discovered %d existing container(s)", count)

    def stop(self):
        if self._started:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._started = False

    def discover_existing(self) -> int:
        """Hand every existing subdirectory to the supervisor. Returns the count."""
        try:
            entries = list(os.scandir(self._base_dir))
        except OSError as e:
            raise DiscoveryError(f"Cannot list {self._base_dir}: {e}") from e

        count = 0
        for entry in entries:
            try:
                is_dir = entry.is_dir()
            except OSError as e:
                logger.error("Cannot stat %s: %s", entry.path, e)
                continue
            if is_dir:
                self._discover(entry.path)
                count += 1
        return count

    def on_created(self, event):
        if event.is_directory:
            self._discover(event.src_path)

    def on_moved(self, event):
        if event.is_directory and os.path.dirname(os.path.abspath(event.dest_path)) == self._base_dir:
            self._discover(event.dest_path)

    def _discover(self, container_dir: str):
        try:
            self._supervisor.start_tailing_if_needed(container_dir)
        except Exception:
            logger.exception("Failed to start tailing container dir %s", container_dir)
