"""Resolve a human-readable service name for a container directory."""

import json
import logging
import os

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.v2.json"


def resolve_service_name(container_dir: str) -> str:
    """Read ``Name`` from the container's config.v2.json, minus its leading "/".

    Falls back to the raw container id (the directory name) when the file is
    missing, unreadable, not JSON, or has no usable name.
    """
    container_id = os.path.basename(os.path.normpath(container_dir))
    config_path = os.path.join(container_dir, CONFIG_FILENAME)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return container_id
    except (OSError, ValueError) as e:
        logger.warning("Cannot read %s, using container id as service name: %s", config_path, e)
        return container_id

    name = data.get("Name") if isinstance(data, dict) else None
    if not isinstance(name, str):
        return container_id

    name = name.lstrip("/")
    return name or container_id
