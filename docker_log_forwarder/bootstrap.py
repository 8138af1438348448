"""One-time, best-effort setup of the search backend and its dashboards.

Nothing here is fatal: each step logs its outcome and startup continues.
"""

import logging
import time

import requests

logger = logging.getLogger(__name__)

INDEX_PATTERN_ID = "docker-logs"
TIME_FIELD = "@timestamp"

INDEX_BODY = {
    "settings": {
        "index.number_of_shards": 1,
        "index.number_of_replicas": 0,
    },
    "mappings": {
        "properties": {
            "containerId": {"type": "keyword"},
            "serviceName": {"type": "keyword"},
            "stream": {"type": "keyword"},
            "message": {"type": "text"},
            "timestamp": {"type": "date"},
            "@timestamp": {"type": "date"},
        }
    },
}

_DASHBOARDS_HEADERS = {"osd-xsrf": "true", "Content-Type": "application/json"}


def wait_for_service(session: requests.Session, name: str, url: str, timeout: float,
                     interval: float = 3.0, request_timeout: float = 5.0, sleep=time.sleep) -> bool:
    """Poll *url* until it answers with a status below 500. Returns readiness."""
    logger.info("Waiting for %s to become ready...", name)
    waited = 0.0
    while True:
        try:
            response = session.get(url, timeout=request_timeout)
            if response.status_code < 500:
                logger.info("%s is ready.", name)
                return True
        except requests.exceptions.RequestException as e:
            logger.debug("%s not ready: %s", name, e)

        if waited + interval > timeout:
            logger.warning("%s did not become ready within %.0f seconds.", name, timeout)
            return False
        sleep(interval)
        waited += interval


def ensure_index(session: requests.Session, opensearch_url: str, index_name: str,
                 request_timeout: float = 10.0) -> bool:
    """Create *index_name* with the log mapping unless it already exists."""
    url = f"{opensearch_url.rstrip('/')}/{index_name}"
    try:
        response = session.head(url, timeout=request_timeout)
        if response.status_code == 200:
            logger.info("Index already exists: %s", index_name)
            return True

        logger.info("Creating OpenSearch index: %s", index_name)
        response = session.put(url, json=INDEX_BODY, timeout=request_timeout)
    except requests.exceptions.RequestException as e:
        logger.error("Failed to ensure index %s exists: %s", index_name, e)
        return False

    if response.status_code >= 300:
        # A concurrent creator wins with resource_already_exists_exception.
        if "resource_already_exists_exception" in response.text:
            return True
        logger.error("Failed to create index %s (HTTP %d): %s",
                     index_name, response.status_code, response.text[:200])
        return False
    return True


def create_index_pattern(session: requests.Session, dashboards_url: str, pattern_title: str,
                         pattern_id: str = INDEX_PATTERN_ID, request_timeout: float = 10.0) -> bool:
    """Register the index pattern in Dashboards. 409 (exists) counts as success."""
    url = f"{dashboards_url.rstrip('/')}/api/saved_objects/index-pattern/{pattern_id}"
    body = {"attributes": {"title": pattern_title, "timeFieldName": TIME_FIELD}}
    try:
        response = session.post(url, json=body, headers=_DASHBOARDS_HEADERS, timeout=request_timeout)
    except requests.exceptions.RequestException as e:
        logger.error("Error creating Dashboards index pattern: %s", e)
        return False

    if response.status_code in (200, 409):
        logger.info("Dashboards index pattern created or already exists: %s", pattern_id)
        return True
    logger.error("Failed to create Dashboards index pattern (HTTP %d): %s",
                 response.status_code, response.text[:200])
    return False


def set_default_index_pattern(session: requests.Session, dashboards_url: str,
                              pattern_id: str = INDEX_PATTERN_ID,
                              request_timeout: float = 10.0) -> bool:
    url = f"{dashboards_url.rstrip('/')}/api/opensearch-dashboards/settings/defaultIndex"
    try:
        response = session.post(url, json={"value": pattern_id},
                                headers=_DASHBOARDS_HEADERS, timeout=request_timeout)
    except requests.exceptions.RequestException as e:
        logger.error("Error setting default index pattern: %s", e)
        return False

    if response.status_code == 200:
        logger.info("Default index pattern set to: %s", pattern_id)
        return True
    logger.error("Failed to set default index pattern (HTTP %d): %s",
                 response.status_code, response.text[:200])
    return False


def run_bootstrap(config, session: requests.Session | None = None, sleep=time.sleep) -> dict:
    """Run every bootstrap step in order. Returns each step's outcome."""
    if session is None:
        with requests.Session() as own_session:
            return run_bootstrap(config, session=own_session, sleep=sleep)

    results = {}

    results["opensearch_ready"] = wait_for_service(
        session, "OpenSearch", config.opensearch_url, timeout=30,
        request_timeout=config.request_timeout, sleep=sleep,
    )
    results["index"] = ensure_index(session, config.opensearch_url, config.index_name)

    results["dashboards_ready"] = wait_for_service(
        session, "Dashboards", f"{config.dashboards_url}/api/status", timeout=60,
        request_timeout=config.request_timeout, sleep=sleep,
    )
    results["index_pattern"] = create_index_pattern(session, config.dashboards_url, config.index_name)
    results["default_index"] = set_default_index_pattern(session, config.dashboards_url)
    return results
