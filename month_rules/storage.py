"""Persisted month-rule snapshots.

The on-disk format is ``{"version": 1, "byMonth": {"YYYY-MM": [rule, ...]}}``.
Loading is strict per record and lenient per file: records with the wrong
shape are dropped from their month, a version mismatch discards everything,
and nothing here raises to the caller.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from month_rules.catalog import param_keys
from month_rules.schema import MonthRule, RuleType

logger = logging.getLogger(__name__)

STORAGE_VERSION = 1


@dataclass
class MonthRulesSnapshot:
    version: int = STORAGE_VERSION
    by_month: dict[str, list[MonthRule]] = field(default_factory=dict)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _parse_rule(item: Any) -> Optional[MonthRule]:
    if not isinstance(item, dict):
        return None
    rule_id = item.get("id")
    enabled = item.get("enabled")
    params = item.get("params")
    created_at = item.get("createdAt")
    updated_at = item.get("updatedAt")

    if not isinstance(rule_id, str) or not isinstance(enabled, bool):
        return None
    if not _is_number(created_at) or not _is_number(updated_at):
        return None
    try:
        rule_type = RuleType(item.get("type"))
    except ValueError:
        return None
    if not isinstance(params, dict) or not all(_is_number(value) for value in params.values()):
        return None
    if set(params) != param_keys(rule_type):
        return None

    return MonthRule(
        id=rule_id,
        type=rule_type,
        enabled=enabled,
        params={key: params[key] for key in params},
        created_at=int(created_at),
        updated_at=int(updated_at),
    )


def parse_snapshot(payload: Any) -> Optional[MonthRulesSnapshot]:
    """Validate a decoded payload, returning ``None`` when it cannot be used."""

    if not isinstance(payload, dict):
        return None
    if payload.get("version") != STORAGE_VERSION or isinstance(payload.get("version"), bool):
        logger.info("Discarding month rules snapshot with version %r", payload.get("version"))
        return None

    by_month_raw = payload.get("byMonth")
    if not isinstance(by_month_raw, dict):
        return MonthRulesSnapshot()

    by_month: dict[str, list[MonthRule]] = {}
    for month_key, items in by_month_raw.items():
        if not isinstance(items, list):
            continue
        rules = [rule for rule in (_parse_rule(item) for item in items) if rule is not None]
        dropped = len(items) - len(rules)
        if dropped:
            logger.info("Dropped %d malformed rule record(s) for %s", dropped, month_key)
        by_month[month_key] = rules
    return MonthRulesSnapshot(version=STORAGE_VERSION, by_month=by_month)


def snapshot_to_dict(snapshot: MonthRulesSnapshot) -> dict:
    return {
        "version": snapshot.version,
        "byMonth": {
            month_key: [rule.to_dict() for rule in rules] for month_key, rules in snapshot.by_month.items()
        },
    }


class JsonFileStorage:
    """Best-effort JSON file persistence for rule snapshots."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[MonthRulesSnapshot]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read month rules from %s: %s", self.path, exc)
            return None
        if not raw.strip():
            return None
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable month rules file %s", self.path)
            return None
        return parse_snapshot(payload)

    def save(self, snapshot: MonthRulesSnapshot) -> None:
        try:
            text = json.dumps(snapshot_to_dict(snapshot), indent=2, ensure_ascii=False)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(text, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Could not save month rules to %s: %s", self.path, exc)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove month rules file %s: %s", self.path, exc)


class MemoryStorage:
    """In-process storage holding the last saved payload as plain JSON data."""

    def __init__(self, payload: Any = None):
        self.payload = payload
        self.saves = 0

    def load(self) -> Optional[MonthRulesSnapshot]:
        if self.payload is None:
            return None
        return parse_snapshot(self.payload)

    def save(self, snapshot: MonthRulesSnapshot) -> None:
        self.payload = snapshot_to_dict(snapshot)
        self.saves += 1

    def clear(self) -> None:
        self.payload = None
