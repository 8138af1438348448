"""LogFileReader: replays and tails one container's json-file log.

Two mutually exclusive policies (see TailPolicy):

- REPLAY: every rotated segment (``<id>-json.log.<suffix>``) is read in
  ascending name order, then the canonical ``<id>-json.log`` is read from
  byte 0. Live tailing continues from the exact offset reached, through the
  same file handle. Rotation suffixes must sort oldest-first as strings
  (fixed width, zero padded).
- TAIL: the canonical file is opened at its current end and only lines
  appended afterwards are emitted.

Offsets are byte offsets into the canonical file. A line is only consumed
once it is newline-terminated; the offset moves past it after it has been
parsed and handed to the sink (or dropped as malformed).
"""

import gzip
import logging
import os

from docker_log_forwarder.metrics import Metrics
from docker_log_forwarder.models import LogRecord, TailMode, TailPolicy, TailTask
from docker_log_forwarder.parser import parse_line

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0


def rotated_segments(container_dir: str, log_file_name: str) -> list[str]:
    """Rotated segment paths for a canonical log file, oldest first by name."""
    prefix = log_file_name + "."
    names = sorted(n for n in os.listdir(container_dir) if n.startswith(prefix))
    return [os.path.join(container_dir, n) for n in names]


class LogFileReader:
    """Delivers every line of one container's log exactly once to a sink."""

    def __init__(
        self,
        task: TailTask,
        sink,
        policy: TailPolicy = TailPolicy.REPLAY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        metrics: Metrics | None = None,
        wait=None,
    ):
        self._task = task
        self._source = task.source
        self._path = task.log_file_path
        self._sink = sink
        self._policy = policy
        self._poll_interval = poll_interval
        self._metrics = metrics or Metrics()
        self._wait = wait or task.cancel_event.wait
        self._file = None
        self._inode: int | None = None
        self._skip_fragment = False
        self._missing = False
        self._service_name: str | None = None

    @property
    def task(self) -> TailTask:
        return self._task

    def run(self):
        """Replay (per policy) then tail until deletion, I/O error or cancel."""
        try:
            self.open()
            while not self._task.cancelled:
                count = self.poll_once()
                if count is None:
                    break
                if count == 0:
                    self._wait(self._poll_interval)
        except OSError as e:
            logger.error("Stopped tailing %s: %s", self._path, e)
        finally:
            self.close()

    def open(self):
        """Run the start-up half of the policy and open the canonical file."""
        self._service_name = self._source.service_name

        if self._policy is TailPolicy.REPLAY:
            self._task.mode = TailMode.REPLAYING_HISTORY
            self._replay_rotated()
            self._open_canonical(at_end=False)
        else:
            self._open_canonical(at_end=True)
            self._task.mode = TailMode.LIVE

        logger.info("Tailing %s (container=%s, service=%s, policy=%s, offset=%d)",
                    self._path, self._source.container_id, self._service_name,
                    self._policy.value, self._task.offset)

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None
        self._task.mode = TailMode.STOPPED

    def poll_once(self) -> int | None:
        """Consume every complete line currently available.

        Returns the number of lines consumed, or None when the file is gone
        and the task should stop.
        """
        count = self._read_available()
        if count:
            return count

        if self._task.mode is TailMode.REPLAYING_HISTORY:
            self._task.mode = TailMode.LIVE
            logger.info("Caught up with %s at offset %d, now live", self._path, self._task.offset)

        state = self._check_file()
        if state == "deleted":
            logger.info("Log file %s deleted, stopping tail", self._path)
            return None
        if state == "rotated":
            return self._read_available()
        return 0

    # -- replay ------------------------------------------------------------

    def _replay_rotated(self):
        try:
            segments = rotated_segments(self._source.container_dir, self._source.log_file_name)
        except OSError as e:
            logger.error("Cannot list %s for rotated segments: %s", self._source.container_dir, e)
            return

        for segment in segments:
            if self._task.cancelled:
                return
            self._replay_segment(segment)

    def _replay_segment(self, segment: str):
        logger.info("Processing historical logs from %s", segment)
        opener = gzip.open if segment.endswith(".gz") else open
        count = 0
        try:
            with opener(segment, "rb") as f:
                for raw in f:
                    if self._task.cancelled:
                        return
                    self._handle_line(raw, segment)
                    count += 1
        except (OSError, EOFError) as e:
            logger.error("Error reading historical log file %s: %s", segment, e)
            return
        logger.debug("Replayed %d lines from %s", count, segment)

    # -- canonical file ----------------------------------------------------

    def _open_canonical(self, at_end: bool):
        self._file = open(self._path, "rb")
        stat = os.fstat(self._file.fileno())
        self._inode = stat.st_ino
        self._task.reset()

        if at_end and stat.st_size > 0:
            self._file.seek(stat.st_size - 1)
            self._skip_fragment = self._file.read(1) != b"\n"
            self._task.advance(stat.st_size)
        self._file.seek(self._task.offset)

    def _read_available(self) -> int:
        count = 0
        while not self._task.cancelled:
            start = self._task.offset
            raw = self._file.readline()
            if not raw.endswith(b"\n"):
                # Partial (or no) data: leave it for the next poll.
                self._file.seek(start)
                break
            if self._skip_fragment:
                self._skip_fragment = False
                logger.debug("Skipping partial line at start of %s", self._path)
            else:
                self._handle_line(raw, self._path)
            self._task.advance(start + len(raw))
            count += 1
        return count

    def _check_file(self) -> str:
        """Detect deletion, rotation and truncation of the canonical path."""
        try:
            stat = os.stat(self._path)
        except FileNotFoundError:
            # Allow one poll for a rotate-then-create gap.
            if self._missing:
                return "deleted"
            self._missing = True
            return "ok"
        self._missing = False

        if stat.st_ino != self._inode:
            logger.info("File rotation detected for %s", self._path)
            self._drain_old_handle()
            self._file.close()
            self._skip_fragment = False
            self._open_canonical(at_end=False)
            return "rotated"

        if stat.st_size < self._task.offset:
            logger.info("File truncation detected for %s", self._path)
            self._task.reset()
            self._file.seek(0)
        return "ok"

    def _drain_old_handle(self):
        """Emit whatever the rotated-away file still holds past our offset."""
        self._file.seek(self._task.offset)
        for raw in self._file:
            if self._task.cancelled:
                return
            self._handle_line(raw, self._path)

    # -- per line ----------------------------------------------------------

    def _handle_line(self, raw: bytes, source_file: str):
        text = raw.decode("utf-8", errors="replace").strip()
        if not text:
            return
        self._metrics.increment("lines_read")

        record = parse_line(text, self._source.container_id, self._service_name, source_file)
        if record is None:
            self._metrics.increment("parse_errors")
            return
        self._forward(record)

    def _forward(self, record: LogRecord):
        try:
            ok = self._sink.index_log(record)
        except Exception:
            logger.exception("Sink raised while indexing record for %s", record.container_id)
            ok = False

        if ok:
            self._metrics.increment("records_indexed")
        else:
            self._metrics.increment("sink_failures")
