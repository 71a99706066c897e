"""Derived counts and per-task severity for rendering warnings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from month_rules.schema import RuleWarning, Severity

NONE = "none"


def max_severity(a: str, b: str) -> str:
    """warn > info > none"""

    if Severity.WARN.value in (a, b):
        return Severity.WARN.value
    if Severity.INFO.value in (a, b):
        return Severity.INFO.value
    return NONE


@dataclass
class WarningSummary:
    warn_count: int = 0
    info_count: int = 0
    severity_by_task_id: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.warn_count + self.info_count


def summarize_warnings(warnings: list[RuleWarning]) -> WarningSummary:
    summary = WarningSummary()
    for warning in warnings:
        if warning.severity is Severity.WARN:
            summary.warn_count += 1
        else:
            summary.info_count += 1
        for task_id in warning.task_ids:
            previous = summary.severity_by_task_id.get(task_id, NONE)
            summary.severity_by_task_id[task_id] = max_severity(previous, warning.severity.value)
    return summary


def severity_for(summary: WarningSummary, task_id: str) -> str:
    return summary.severity_by_task_id.get(task_id, NONE)


def jump_target(warning: RuleWarning) -> Optional[str]:
    return warning.task_ids[0] if warning.task_ids else None


def visible_warnings(warnings: list[RuleWarning], limit: int = 12) -> tuple[list[RuleWarning], int]:
    """Return the warnings to show and how many were cut off."""

    shown = warnings[: max(0, limit)]
    return shown, len(warnings) - len(shown)
