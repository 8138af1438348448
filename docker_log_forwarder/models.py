"""Data model for container log sources, tail tasks and forwarded records."""

import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from docker_log_forwarder.service_name import CONFIG_FILENAME, resolve_service_name

LOG_SUFFIX = "-json.log"


class TailMode(Enum):
    WAITING_FOR_FILE = "waiting_for_file"
    REPLAYING_HISTORY = "replaying_history"
    LIVE = "live"
    STOPPED = "stopped"


class TailPolicy(Enum):
    REPLAY = "replay"   # replay rotated segments + canonical file, then tail
    TAIL = "tail"       # seek to end of canonical file, tail new lines only


@dataclass(frozen=True)
class LogRecord:
    container_id: str
    service_name: str
    stream: str
    message: str
    timestamp: datetime

    def to_document(self) -> dict:
        """Document shape sent to the search backend."""
        ts = self.timestamp.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return {
            "containerId": self.container_id,
            "serviceName": self.service_name,
            "stream": self.stream,
            "message": self.message,
            "timestamp": ts,
            "@timestamp": ts,
        }


class ContainerLogSource:
    """One container directory: its id, canonical log file and metadata file.

    The service name is resolved lazily on first access and cached for the
    lifetime of the source.
    """

    def __init__(self, container_dir: str, resolver=None):
        self.container_dir = os.path.abspath(container_dir)
        self.container_id = os.path.basename(self.container_dir.rstrip(os.sep))
        self.log_file_path = os.path.join(self.container_dir, self.container_id + LOG_SUFFIX)
        self.config_path = os.path.join(self.container_dir, CONFIG_FILENAME)
        self._resolver = resolver or resolve_service_name
        self._service_name: str | None = None
        self._lock = threading.Lock()

    @property
    def log_file_name(self) -> str:
        return os.path.basename(self.log_file_path)

    @property
    def service_name(self) -> str:
        with self._lock:
            if self._service_name is None:
                self._service_name = self._resolver(self.container_dir)
            return self._service_name

    def __repr__(self) -> str:
        return f"ContainerLogSource({self.container_id!r})"


@dataclass
class TailTask:
    """Registry entry for one tailed (or awaited) log file."""

    log_file_path: str
    source: ContainerLogSource
    mode: TailMode = TailMode.WAITING_FOR_FILE
    offset: int = 0
    cancel_event: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None

    def advance(self, offset: int) -> None:
        """Move the offset forward; a lower value is ignored."""
        if offset > self.offset:
            self.offset = offset

    def reset(self) -> None:
        """Start over at byte 0 of a new (rotated in or truncated) file."""
        self.offset = 0

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()
