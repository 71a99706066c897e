"""CSV adapter for task snapshots."""

from __future__ import annotations

import csv
import logging

from month_rules.schema import EvalTask

logger = logging.getLogger(__name__)

_LOCATION_FIELDS = ("location_label", "lat", "lng")


def _parse_row(row: dict) -> EvalTask:
    record = {key: (value.strip() if isinstance(value, str) else value) for key, value in row.items() if key}
    record = {key: value for key, value in record.items() if value not in (None, "")}
    if any(field in record for field in _LOCATION_FIELDS):
        record["location"] = {
            "label": record.pop("location_label", None),
            "lat": record.pop("lat", None),
            "lng": record.pop("lng", None),
        }
    return EvalTask.from_mapping(record)


def parse(file_path: str) -> list[EvalTask]:
    """Parse a CSV file with one task per row.

    Expected header: ``id,title,status,scheduled_start,due_at,duration_min,location_label,lat,lng``.
    Rows without an id are skipped.
    """

    with open(file_path, newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            return []

        tasks: list[EvalTask] = []
        for row_number, row in enumerate(reader, start=2):
            try:
                tasks.append(_parse_row(row))
            except ValueError as exc:
                logger.warning("Row %d: %s, skipping", row_number, exc)
        return tasks
