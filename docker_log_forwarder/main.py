#!/usr/bin/env python3
"""Docker Log Forwarder entry point."""

import logging
import signal
import sys
import threading

from docker_log_forwarder.bootstrap import run_bootstrap
from docker_log_forwarder.config import load_config
from docker_log_forwarder.discovery import ContainerDiscoveryWatcher, DiscoveryError
from docker_log_forwarder.metrics import Metrics, MetricsReporter
from docker_log_forwarder.sink import OpenSearchSink, StdoutSink
from docker_log_forwarder.supervisor import TailSupervisor

logger = logging.getLogger(__name__)


def build_sink(config):
    if config.sink == "stdout":
        return StdoutSink()
    return OpenSearchSink(config.opensearch_url, config.index_name, timeout=config.request_timeout)


def main(argv: list[str] | None = None) -> int:
    config = load_config(argv)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [FORWARDER] %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )
    logger.info("Config: containers_dir=%s, policy=%s, sink=%s, poll_interval=%.2fs",
                config.containers_dir, config.tail_policy, config.sink, config.poll_interval)

    shutdown_event = threading.Event()

    def _signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    if config.bootstrap and config.sink == "opensearch":
        run_bootstrap(config)

    sink = build_sink(config)
    metrics = Metrics()
    reporter = MetricsReporter(metrics, config.metrics_interval, shutdown_event)
    supervisor = TailSupervisor(
        sink,
        policy=config.policy,
        poll_interval=config.poll_interval,
        file_wait_timeout=config.file_wait_timeout,
        metrics=metrics,
    )
    watcher = ContainerDiscoveryWatcher(config.containers_dir, supervisor)

    try:
        watcher.start()
    except DiscoveryError as e:
        logger.error("Container discovery failed, cannot continue: %s", e)
        watcher.stop()
        supervisor.shutdown()
        sink.close()
        return 1

    reporter.start()
    logger.info("Docker Log Forwarder running. Press Ctrl+C to stop.")

    try:
        while not shutdown_event.is_set():
            shutdown_event.wait(1)
    except KeyboardInterrupt:
        shutdown_event.set()

    logger.info("Shutting down...")
    watcher.stop()
    supervisor.shutdown()
    reporter.stop()
    sink.close()

    logger.info("Stats: %s", metrics.format_summary())
    logger.info("Docker Log Forwarder stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
