"""JSON adapter for task snapshots."""

from __future__ import annotations

import json
import logging

from month_rules.schema import EvalTask

logger = logging.getLogger(__name__)


def parse_items(payload: object) -> list[EvalTask]:
    """Convert decoded JSON into tasks, skipping records that cannot be used."""

    if not isinstance(payload, list):
        raise ValueError("JSON payload must be a list of objects")

    tasks: list[EvalTask] = []
    for index, item in enumerate(payload, start=1):
        if not isinstance(item, dict):
            logger.warning("Item %d: expected an object, skipping", index)
            continue
        try:
            tasks.append(EvalTask.from_mapping(item))
        except ValueError as exc:
            logger.warning("Item %d: %s, skipping", index, exc)
    return tasks


def parse(file_path: str) -> list[EvalTask]:
    """Parse a JSON file holding a list of task objects."""

    with open(file_path, encoding="utf-8") as handle:
        payload = json.load(handle)
    return parse_items(payload)
