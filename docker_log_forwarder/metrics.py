"""Thread-safe forwarding counters and periodic reporting."""

import logging
import threading

logger = logging.getLogger(__name__)

COUNTERS = (
    "lines_read",
    "records_indexed",
    "parse_errors",
    "sink_failures",
    "tails_started",
    "tails_stopped",
    "waits_abandoned",
)


class Metrics:
    """Thread-safe counters shared by every tail task."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters = {name: 0 for name in COUNTERS}

    def increment(self, name: str, amount: int = 1):
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def snapshot(self) -> dict:
        """Return a copy of all counters."""
        with self._lock:
            return dict(self._counters)

    def format_summary(self) -> str:
        snap = self.snapshot()
        return " ".join(f"{name}={snap[name]}" for name in sorted(snap))


class MetricsReporter:
    """Background thread that periodically logs a metrics summary."""

    def __init__(self, metrics: Metrics, interval: float, shutdown_event: threading.Event):
        self._metrics = metrics
        self._interval = interval
        self._shutdown = shutdown_event
        self._thread: threading.Thread | None = None

    def start(self):
        if self._interval <= 0:
            return
        self._thread = threading.Thread(
            target=self._report_loop, name="metrics-reporter", daemon=True,
        )
        self._thread.start()

    def stop(self):
        if self._thread:
            self._thread.join(timeout=5)

    def _report_loop(self):
        while not self._shutdown.is_set():
            self._shutdown.wait(self._interval)
            if self._shutdown.is_set():
                break
            logger.info("[metrics] %s", self._metrics.format_summary())
