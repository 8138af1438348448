"""Configuration: a frozen dataclass built from defaults, YAML, env vars and CLI args."""

import argparse
import logging
import os
import sys
from dataclasses import dataclass, fields

import yaml

from docker_log_forwarder.models import TailPolicy

logger = logging.getLogger(__name__)

SINKS = ("opensearch", "stdout")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Config:
    containers_dir: str = "/var/lib/docker/containers"
    tail_policy: str = "replay"
    poll_interval: float = 1.0
    file_wait_timeout: float = 300.0
    sink: str = "opensearch"
    opensearch_scheme: str = "http"
    opensearch_host: str = "localhost"
    opensearch_port: int = 9200
    index_name: str = "docker-logs"
    dashboards_host: str = "dashboards"
    dashboards_port: int = 5601
    bootstrap: bool = True
    request_timeout: float = 5.0
    metrics_interval: float = 60.0
    log_level: str = "INFO"

    def __post_init__(self):
        if self.tail_policy not in {p.value for p in TailPolicy}:
            raise ValueError(f"tail_policy must be 'replay' or 'tail', got {self.tail_policy!r}")
        if self.sink not in SINKS:
            raise ValueError(f"sink must be one of {SINKS}, got {self.sink!r}")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.file_wait_timeout < 0 or self.request_timeout < 0 or self.metrics_interval < 0:
            raise ValueError("timeouts and intervals must not be negative")

    @property
    def policy(self) -> TailPolicy:
        return TailPolicy(self.tail_policy)

    @property
    def opensearch_url(self) -> str:
        return f"{self.opensearch_scheme}://{self.opensearch_host}:{self.opensearch_port}"

    @property
    def dashboards_url(self) -> str:
        return f"http://{self.dashboards_host}:{self.dashboards_port}"


# field name -> (env var, converter)
_ENV_VARS = {
    "containers_dir": ("CONTAINERS_DIR", str),
    "tail_policy": ("TAIL_POLICY", str),
    "poll_interval": ("POLL_INTERVAL", float),
    "file_wait_timeout": ("FILE_WAIT_TIMEOUT", float),
    "sink": ("SINK", str),
    "opensearch_scheme": ("OPENSEARCH_SCHEME", str),
    "opensearch_host": ("OPENSEARCH_HOST", str),
    "opensearch_port": ("OPENSEARCH_PORT", int),
    "index_name": ("INDEX_NAME", str),
    "dashboards_host": ("DASHBOARDS_HOST", str),
    "dashboards_port": ("DASHBOARDS_PORT", int),
    "bootstrap": ("BOOTSTRAP", _parse_bool),
    "request_timeout": ("REQUEST_TIMEOUT", float),
    "metrics_interval": ("METRICS_INTERVAL", float),
    "log_level": ("LOG_LEVEL", str),
}


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(Config)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", path, ", ".join(sorted(unknown)))
    logger.info("Loaded YAML config from %s", path)
    return {k: v for k, v in data.items() if k in known}


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Docker log forwarder")
    parser.add_argument("--config", default=None,
                        help="Path to YAML config file (or CONFIG_PATH env var)")
    parser.add_argument("--containers-dir", help="Docker containers directory")
    parser.add_argument("--tail-policy", choices=[p.value for p in TailPolicy],
                        help="replay: history then live (default); tail: new lines only")
    parser.add_argument("--poll-interval", type=float, help="Seconds between polls at EOF")
    parser.add_argument("--file-wait-timeout", type=float,
                        help="Seconds to wait for a new container's log file")
    parser.add_argument("--sink", choices=SINKS, help="Where records are sent")
    parser.add_argument("--opensearch-host")
    parser.add_argument("--opensearch-port", type=int)
    parser.add_argument("--index-name")
    parser.add_argument("--no-bootstrap", dest="bootstrap", action="store_false", default=None,
                        help="Skip index and dashboards setup")
    parser.add_argument("--metrics-interval", type=float,
                        help="Seconds between metrics summaries (0 disables)")
    parser.add_argument("--log-level")
    return parser


def load_config(argv: list[str] | None = None) -> Config:
    """Build Config from defaults <- YAML <- env vars <- CLI args (highest priority)."""
    if argv is None:
        argv = sys.argv[1:]
    args = build_cli_parser().parse_args(argv)

    kwargs: dict = load_yaml_config(args.config or os.environ.get("CONFIG_PATH"))

    for name, (env_var, convert) in _ENV_VARS.items():
        raw = os.environ.get(env_var)
        if raw is not None and raw != "":
            kwargs[name] = convert(raw)

    for name, value in vars(args).items():
        if name != "config" and value is not None:
            kwargs[name] = value

    return Config(**kwargs)
