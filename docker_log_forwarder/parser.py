"""Decode one line of Docker's json-file log format into a LogRecord.

Expected format (one JSON object per line):
    {"log": "hello\\n", "stream": "stdout", "time": "2024-01-15T10:30:00.123456789Z"}
"""

import json
import logging
import re
from datetime import datetime, timedelta, timezone

from docker_log_forwarder.models import LogRecord

logger = logging.getLogger(__name__)

DEFAULT_STREAM = "stdout"
STREAMS = ("stdout", "stderr")

# RFC 3339 date-time; fraction of any length, "Z" or a numeric offset.
_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Fractions beyond microseconds (Docker writes nanoseconds) are truncated.
    Raises ValueError for anything that is not a fully-qualified date-time,
    including instants that fall outside the representable UTC range.
    """
    if not isinstance(value, str):
        raise ValueError(f"timestamp is not a string: {value!r}")
    m = _TIMESTAMP_RE.match(value.strip())
    if not m:
        raise ValueError(f"invalid timestamp: {value!r}")

    year, month, day, hour, minute, second, fraction, offset = m.groups()
    micros = int((fraction or "0")[:6].ljust(6, "0"))

    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = 1 if offset[0] == "+" else -1
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))

    dt = datetime(int(year), int(month), int(day), int(hour), int(minute), int(second),
                  micros, tzinfo=tz)
    try:
        return dt.astimezone(timezone.utc)
    except OverflowError as e:
        raise ValueError(f"timestamp out of range: {value!r}") from e


def parse_line(line: str, container_id: str, service_name: str,
               source_file: str = "") -> LogRecord | None:
    """Parse one raw line. Returns None (and logs) if the line is malformed.

    A missing or empty "stream" defaults to stdout; any other value that is
    not "stdout" or "stderr" makes the line malformed.
    """
    try:
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("line is not a JSON object")

        stream = data.get("stream") or DEFAULT_STREAM
        if stream not in STREAMS:
            raise ValueError(f"unknown stream: {stream!r}")
        message = data.get("log", "")
        if not isinstance(message, str):
            message = str(message)

        return LogRecord(
            container_id=container_id,
            service_name=service_name,
            stream=stream,
            message=message.rstrip(),
            timestamp=parse_timestamp(data.get("time")),
        )
    except (ValueError, TypeError, RecursionError) as e:
        logger.warning("Dropping malformed line from %s (container %s): %s",
                       source_file or "<unknown>", container_id, e)
        return None
