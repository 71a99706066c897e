"""Core data schema for month rules, tasks and warnings."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class RuleType(str, Enum):
    """Closed set of scheduling-constraint categories."""

    NO_TASK_AFTER_HOUR = "NO_TASK_AFTER_HOUR"
    WEEKDAY_MAX_TASKS = "WEEKDAY_MAX_TASKS"
    MAX_CONTINUOUS_WORK = "MAX_CONTINUOUS_WORK"
    START_DEADLINE_TASK_DAYS_BEFORE = "START_DEADLINE_TASK_DAYS_BEFORE"
    SLEEP_BLOCK = "SLEEP_BLOCK"
    AUTO_TRAVEL_BUFFER = "AUTO_TRAVEL_BUFFER"


class Severity(str, Enum):
    WARN = "warn"
    INFO = "info"


@dataclass
class TaskLocation:
    label: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    def is_set(self) -> bool:
        """A location counts when it has a label or a full coordinate pair."""

        if self.label:
            return True
        return self.lat is not None and self.lng is not None


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class EvalTask:
    """The slice of a task that rule evaluation reads."""

    id: str
    title: Optional[str] = None
    status: Optional[str] = None
    scheduled_start: Optional[str] = None
    due_at: Optional[str] = None
    duration_min: Optional[float] = None
    location: Optional[TaskLocation] = None

    @property
    def is_done(self) -> bool:
        return self.status == "done"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EvalTask":
        """Build a task from a loose record, ignoring fields it does not know.

        Both snake_case and camelCase keys are accepted. Raises ``ValueError``
        when the record has no usable id.
        """

        task_id = _as_text(data.get("id", data.get("task_id")))
        if task_id is None:
            raise ValueError("task record has no id")

        location = None
        raw_location = data.get("location")
        if isinstance(raw_location, Mapping):
            location = TaskLocation(
                label=_as_text(raw_location.get("label")),
                lat=_as_float(raw_location.get("lat")),
                lng=_as_float(raw_location.get("lng")),
            )

        return cls(
            id=task_id,
            title=_as_text(data.get("title")),
            status=_as_text(data.get("status")),
            scheduled_start=_as_text(_first(data, "scheduled_start", "scheduledStart")),
            due_at=_as_text(_first(data, "due_at", "dueAt")),
            duration_min=_as_float(_first(data, "duration_min", "durationMin")),
            location=location,
        )


@dataclass
class MonthRule:
    """A configured rule instance scoped to one month."""

    id: str
    type: RuleType
    enabled: bool
    params: dict[str, float]
    created_at: int
    updated_at: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "enabled": self.enabled,
            "params": dict(self.params),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class RuleWarning:
    """A diagnostic produced by rule evaluation."""

    id: str
    month_key: str
    rule_id: str
    rule_type: RuleType
    severity: Severity
    message: str
    task_ids: list[str] = field(default_factory=list)
    date_key: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {
            "id": self.id,
            "monthKey": self.month_key,
            "ruleId": self.rule_id,
            "ruleType": self.rule_type.value,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.task_ids:
            payload["taskIds"] = list(self.task_ids)
        if self.date_key is not None:
            payload["dateKey"] = self.date_key
        return payload
