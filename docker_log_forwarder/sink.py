"""Ingestion sinks: where finished log records are delivered.

The tailing core only relies on ``index_log(record) -> bool``. Sinks never
raise for delivery failures; they log and return False. Retry and
backpressure are not handled here.
"""

import json
import logging
import sys
import threading

import requests

from docker_log_forwarder.models import LogRecord

logger = logging.getLogger(__name__)


class IngestionSink:
    """Base class for record sinks."""

    def index_log(self, record: LogRecord) -> bool:
        raise NotImplementedError

    def close(self):
        pass


class OpenSearchSink(IngestionSink):
    """Indexes each record as one document via the OpenSearch REST API."""

    def __init__(self, base_url: str, index_name: str = "docker-logs",
                 timeout: float = 5.0, session: requests.Session | None = None):
        self._base_url = base_url.rstrip("/")
        self._index = index_name
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    @property
    def doc_url(self) -> str:
        return f"{self._base_url}/{self._index}/_doc"

    def index_log(self, record: LogRecord) -> bool:
        try:
            response = self._session.post(
                self.doc_url, json=record.to_document(), timeout=self._timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Failed to index record for %s: %s", record.container_id, e)
            return False

        if response.status_code >= 300:
            logger.error("Index request for %s rejected (HTTP %d): %s",
                         record.container_id, response.status_code, response.text[:200])
            return False
        return True

    def close(self):
        self._session.close()


class StdoutSink(IngestionSink):
    """Writes one JSON document per line; useful for debugging and piping."""

    def __init__(self, stream=None):
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()

    def index_log(self, record: LogRecord) -> bool:
        line = json.dumps(record.to_document(), ensure_ascii=False)
        try:
            with self._lock:
                self._stream.write(line + "\n")
                self._stream.flush()
        except (OSError, ValueError) as e:
            logger.error("Failed to write record for %s: %s", record.container_id, e)
            return False
        return True
