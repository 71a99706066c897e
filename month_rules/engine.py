"""Month rule evaluation.

``evaluate_month_rules`` is a pure function: it reads a month key, the rule
instances of that month and a task snapshot, and returns warnings. Nothing is
mutated and no state survives between calls.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from functools import cmp_to_key
from typing import Any, Callable, Iterable, Mapping, Optional

from month_rules.dates import (
    date_key,
    end_time,
    in_month,
    is_weekday,
    minutes_between,
    month_key_of,
    now_local,
    parse_instant,
    start_of_day,
    validate_month_key,
)
from month_rules.schema import EvalTask, MonthRule, RuleType, RuleWarning, Severity

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MIN = 60.0

_SEVERITY_RANK = {Severity.WARN: 0, Severity.INFO: 1}


@dataclass
class _Scheduled:
    task: EvalTask
    start: datetime
    end: datetime
    duration_min: float


@dataclass
class _Context:
    month_key: str
    scoped: list[EvalTask]
    scheduled: list[_Scheduled]
    tz: Optional[tzinfo]


def make_warning_id(month_key: str, rule_id: str, tag: str, *context: Any) -> str:
    """Deterministic warning id built from its context fields."""

    parts = [month_key, rule_id, tag, *(str(part) for part in context if part is not None)]
    return "warn_" + "_".join(parts)


def _coerce_tasks(tasks: Iterable[Any]) -> list[EvalTask]:
    coerced: list[EvalTask] = []
    for index, task in enumerate(tasks):
        if isinstance(task, EvalTask):
            coerced.append(task)
            continue
        if isinstance(task, Mapping):
            try:
                coerced.append(EvalTask.from_mapping(task))
            except ValueError:
                logger.debug("Skipping task record %d without id", index)
            continue
        logger.debug("Skipping task record %d of type %s", index, type(task).__name__)
    return coerced


def _project_scheduled(tasks: list[EvalTask], tz: Optional[tzinfo]) -> list[_Scheduled]:
    scheduled: list[_Scheduled] = []
    for task in tasks:
        start = parse_instant(task.scheduled_start, tz)
        if start is None:
            if task.scheduled_start:
                logger.debug("Task %s has unparseable scheduled_start %r", task.id, task.scheduled_start)
            continue
        duration = task.duration_min
        if duration is None or not math.isfinite(duration):
            duration = DEFAULT_DURATION_MIN
        try:
            end = end_time(start, duration)
        except (OverflowError, ValueError):
            logger.debug("Task %s has out-of-range duration %r", task.id, duration)
            continue
        scheduled.append(_Scheduled(task=task, start=start, end=end, duration_min=duration))
    return scheduled


def _params(rule: MonthRule, *keys: str) -> Optional[tuple[float, ...]]:
    values = []
    for key in keys:
        value = rule.params.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            logger.debug("Rule %s has no usable %r parameter", rule.id, key)
            return None
        values.append(float(value))
    return tuple(values)


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _group_by_day(entries: Iterable[_Scheduled]) -> dict[str, list[_Scheduled]]:
    by_day: dict[str, list[_Scheduled]] = defaultdict(list)
    for entry in entries:
        by_day[date_key(entry.start)].append(entry)
    return by_day


def _check_no_task_after_hour(rule: MonthRule, ctx: _Context) -> list[RuleWarning]:
    params = _params(rule, "hour")
    if params is None:
        return []
    (hour,) = params

    offending = [entry for entry in ctx.scheduled if entry.start.hour >= hour]
    if not offending:
        return []
    return [
        RuleWarning(
            id=make_warning_id(ctx.month_key, rule.id, "NO_TASK_AFTER_HOUR"),
            month_key=ctx.month_key,
            rule_id=rule.id,
            rule_type=rule.type,
            severity=Severity.WARN,
            message=f"{len(offending)} task(s) start at or after {_fmt(hour)}:00",
            task_ids=[entry.task.id for entry in offending],
        )
    ]


def _check_weekday_max_tasks(rule: MonthRule, ctx: _Context) -> list[RuleWarning]:
    params = _params(rule, "max")
    if params is None:
        return []
    (limit,) = params

    active = (entry for entry in ctx.scheduled if not entry.task.is_done and is_weekday(entry.start))
    warnings = []
    for day, entries in _group_by_day(active).items():
        if len(entries) <= limit:
            continue
        warnings.append(
            RuleWarning(
                id=make_warning_id(ctx.month_key, rule.id, "WEEKDAY_MAX_TASKS", day),
                month_key=ctx.month_key,
                rule_id=rule.id,
                rule_type=rule.type,
                severity=Severity.WARN,
                message=f"Weekday {day} has {len(entries)} tasks (limit {_fmt(limit)})",
                task_ids=[entry.task.id for entry in entries],
                date_key=day,
            )
        )
    return warnings


def _split_runs(entries: list[_Scheduled], break_min: float) -> list[tuple[datetime, datetime, list[str]]]:
    """Merge start-sorted entries into runs separated by gaps of at least ``break_min``."""

    runs: list[tuple[datetime, datetime, list[str]]] = []
    run_start = run_end = None
    run_ids: list[str] = []
    for entry in entries:
        if run_start is None:
            run_start, run_end, run_ids = entry.start, entry.end, [entry.task.id]
            continue
        if minutes_between(run_end, entry.start) >= break_min:
            runs.append((run_start, run_end, run_ids))
            run_start, run_end, run_ids = entry.start, entry.end, [entry.task.id]
            continue
        run_end = max(run_end, entry.end)
        run_ids.append(entry.task.id)
    if run_start is not None:
        runs.append((run_start, run_end, run_ids))
    return runs


def _check_max_continuous_work(rule: MonthRule, ctx: _Context) -> list[RuleWarning]:
    params = _params(rule, "maxWorkMin", "breakMin")
    if params is None:
        return []
    max_work_min, break_min = params

    active = (entry for entry in ctx.scheduled if not entry.task.is_done)
    warnings = []
    for day, entries in _group_by_day(active).items():
        entries.sort(key=lambda entry: entry.start)
        for ordinal, (run_start, run_end, run_ids) in enumerate(_split_runs(entries, break_min)):
            run_len = minutes_between(run_start, run_end)
            if run_len <= max_work_min:
                continue
            warnings.append(
                RuleWarning(
                    id=make_warning_id(ctx.month_key, rule.id, "MAX_CONTINUOUS_WORK", day, ordinal),
                    month_key=ctx.month_key,
                    rule_id=rule.id,
                    rule_type=rule.type,
                    severity=Severity.WARN,
                    message=(
                        f"{day} has {run_len} min of continuous work "
                        f"(limit {_fmt(max_work_min)} min / break {_fmt(break_min)} min)"
                    ),
                    task_ids=run_ids,
                    date_key=day,
                )
            )
    return warnings


def _check_start_deadline(rule: MonthRule, ctx: _Context) -> list[RuleWarning]:
    params = _params(rule, "days")
    if params is None:
        return []
    (days,) = params

    warnings = []
    for task in ctx.scoped:
        if not task.due_at or task.is_done:
            continue
        due = parse_instant(task.due_at, ctx.tz)
        if due is None:
            logger.debug("Task %s has unparseable due_at %r", task.id, task.due_at)
            continue
        try:
            threshold = due - timedelta(days=days)
        except (OverflowError, ValueError):
            # Unreachable threshold: only a missing start is flagged.
            threshold = None
        start = parse_instant(task.scheduled_start, ctx.tz)
        if start is not None and (threshold is None or start <= threshold):
            continue
        warnings.append(
            RuleWarning(
                id=make_warning_id(ctx.month_key, rule.id, "START_DEADLINE", task.id),
                month_key=ctx.month_key,
                rule_id=rule.id,
                rule_type=rule.type,
                severity=Severity.WARN,
                message=f"Task due {task.due_at[:10]} is not scheduled to start {_fmt(days)} days ahead",
                task_ids=[task.id],
            )
        )
    return warnings


def overlaps_sleep_block(start: datetime, end: datetime, start_hour: float, end_hour: float) -> bool:
    """Half-open overlap test against the sleep window of the previous, same and next day."""

    base = start_of_day(start)
    for day_offset in (-1, 0, 1):
        try:
            day = base + timedelta(days=day_offset)
            block_start = day + timedelta(hours=start_hour)
            block_end = day + timedelta(hours=end_hour)
            if end_hour <= start_hour:
                block_end += timedelta(days=1)
        except (OverflowError, ValueError):
            # The window falls outside the representable datetime range.
            continue
        if start < block_end and block_start < end:
            return True
    return False


def _check_sleep_block(rule: MonthRule, ctx: _Context) -> list[RuleWarning]:
    params = _params(rule, "startHour", "endHour")
    if params is None:
        return []
    start_hour, end_hour = params

    offending = [
        entry
        for entry in ctx.scheduled
        if not entry.task.is_done and overlaps_sleep_block(entry.start, entry.end, start_hour, end_hour)
    ]
    if not offending:
        return []
    return [
        RuleWarning(
            id=make_warning_id(ctx.month_key, rule.id, "SLEEP_BLOCK"),
            month_key=ctx.month_key,
            rule_id=rule.id,
            rule_type=rule.type,
            severity=Severity.WARN,
            message=(
                f"{len(offending)} task(s) overlap the sleep block "
                f"{_fmt(start_hour)}:00-{_fmt(end_hour)}:00"
            ),
            task_ids=[entry.task.id for entry in offending],
        )
    ]


def _check_travel_buffer(rule: MonthRule, ctx: _Context) -> list[RuleWarning]:
    params = _params(rule, "bufferMin")
    if params is None:
        return []
    (buffer_min,) = params

    located = (
        entry
        for entry in ctx.scheduled
        if not entry.task.is_done and entry.task.location is not None and entry.task.location.is_set()
    )
    warnings = []
    for day, entries in _group_by_day(located).items():
        entries.sort(key=lambda entry: entry.start)
        for index, (earlier, later) in enumerate(zip(entries, entries[1:])):
            gap = minutes_between(earlier.end, later.start)
            if gap >= buffer_min:
                continue
            warnings.append(
                RuleWarning(
                    id=make_warning_id(ctx.month_key, rule.id, "TRAVEL_BUFFER", day, index),
                    month_key=ctx.month_key,
                    rule_id=rule.id,
                    rule_type=rule.type,
                    severity=Severity.INFO,
                    message=f"{day} leaves {gap} min between located tasks (recommended {_fmt(buffer_min)} min)",
                    task_ids=[earlier.task.id, later.task.id],
                    date_key=day,
                )
            )
    return warnings


RULE_CHECKS: dict[RuleType, Callable[[MonthRule, _Context], list[RuleWarning]]] = {
    RuleType.NO_TASK_AFTER_HOUR: _check_no_task_after_hour,
    RuleType.WEEKDAY_MAX_TASKS: _check_weekday_max_tasks,
    RuleType.MAX_CONTINUOUS_WORK: _check_max_continuous_work,
    RuleType.START_DEADLINE_TASK_DAYS_BEFORE: _check_start_deadline,
    RuleType.SLEEP_BLOCK: _check_sleep_block,
    RuleType.AUTO_TRAVEL_BUFFER: _check_travel_buffer,
}


def sort_warnings(warnings: list[RuleWarning]) -> list[RuleWarning]:
    """Stable sort by severity, then day key when both have one, otherwise message."""

    def compare(a: RuleWarning, b: RuleWarning) -> int:
        rank = _SEVERITY_RANK[a.severity] - _SEVERITY_RANK[b.severity]
        if rank:
            return rank
        if a.date_key is not None and b.date_key is not None:
            return (a.date_key > b.date_key) - (a.date_key < b.date_key)
        return (a.message > b.message) - (a.message < b.message)

    return sorted(warnings, key=cmp_to_key(compare))


def evaluate_month_rules(
    month_key: Optional[str],
    rules: Iterable[MonthRule],
    tasks: Iterable[Any],
    tz: Optional[tzinfo] = None,
) -> list[RuleWarning]:
    """Evaluate the enabled rules of a month against a task snapshot."""

    month_key = validate_month_key(month_key) if month_key is not None else month_key_of(now_local(tz))

    all_tasks = _coerce_tasks(tasks)
    scoped = [task for task in all_tasks if in_month(task.scheduled_start, month_key) or in_month(task.due_at, month_key)]
    ctx = _Context(month_key=month_key, scoped=scoped, scheduled=_project_scheduled(scoped, tz), tz=tz)

    warnings: list[RuleWarning] = []
    for rule in rules:
        if not rule.enabled:
            continue
        check = RULE_CHECKS.get(rule.type)
        if check is None:
            raise AssertionError(f"unhandled rule type: {rule.type!r}")
        warnings.extend(check(rule, ctx))

    logger.debug("Evaluated %s: %d task(s) in scope, %d warning(s)", month_key, len(scoped), len(warnings))
    return sort_warnings(warnings)
