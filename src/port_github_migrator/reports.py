"""
Helpers for the JSON files the migrator writes: diff reports and entity
exports.
"""
import json
import logging
import os
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def write_json(path, data):
    """Writes `data` as indented JSON, creating parent directories as needed."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
        f.write("\n")
    logger.debug("Wrote %s", path)
    return path


def default_export_name(prefix, now=None):
    """A timestamped file name such as `entities-20240101T120000Z.json`."""
    now = now or datetime.now(timezone.utc)
    return f"{prefix}-{now.strftime('%Y%m%dT%H%M%SZ')}.json"


def build_entities_export(entities, now=None):
    """The document written by the get-entities command."""
    now = now or datetime.now(timezone.utc)
    return {
        "timestamp": now.isoformat(),
        "totalEntities": len(entities),
        "entities": [
            {"identifier": entity.identifier, "blueprint": entity.blueprint}
            for entity in entities
        ],
    }
