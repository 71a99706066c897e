"""Rule catalog: labels, defaults, summaries and the rule factory."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Optional

from month_rules.schema import MonthRule, RuleType

MAX_RULES_PER_MONTH = 3


@dataclass(frozen=True)
class RuleDef:
    label: str
    description: str
    defaults: dict[str, float]


RULE_DEFS: dict[RuleType, RuleDef] = {
    RuleType.NO_TASK_AFTER_HOUR: RuleDef(
        label="No tasks starting after {hour}:00",
        description="Flags tasks that start at or after the given hour, to avoid overbooking evenings.",
        defaults={"hour": 22},
    ),
    RuleType.WEEKDAY_MAX_TASKS: RuleDef(
        label="At most {max} tasks per weekday",
        description="Flags weekdays whose number of open tasks exceeds the limit.",
        defaults={"max": 5},
    ),
    RuleType.MAX_CONTINUOUS_WORK: RuleDef(
        label="Continuous work up to {maxWorkMin} min (break {breakMin} min)",
        description="Flags stretches of back-to-back work that run too long without a break.",
        defaults={"maxWorkMin": 180, "breakMin": 10},
    ),
    RuleType.START_DEADLINE_TASK_DAYS_BEFORE: RuleDef(
        label="Start deadline tasks {days} days before the due date",
        description="Flags tasks with a due date that are not scheduled to start early enough.",
        defaults={"days": 7},
    ),
    RuleType.SLEEP_BLOCK: RuleDef(
        label="Keep sleep block {startHour}:00-{endHour}:00 free",
        description="Flags tasks that overlap the protected sleep window.",
        defaults={"startHour": 1, "endHour": 8},
    ),
    RuleType.AUTO_TRAVEL_BUFFER: RuleDef(
        label="Keep a {bufferMin} min travel buffer",
        description="Flags located tasks on the same day that leave too little time to travel between them.",
        defaults={"bufferMin": 15},
    ),
}


def _fmt_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def param_keys(rule_type: RuleType) -> frozenset[str]:
    try:
        return frozenset(RULE_DEFS[rule_type].defaults)
    except KeyError:
        raise AssertionError(f"unhandled rule type: {rule_type!r}") from None


def format_rule_summary(rule: MonthRule) -> str:
    """Render a rule as one line, with its live parameter values."""

    try:
        definition = RULE_DEFS[rule.type]
    except KeyError:
        raise AssertionError(f"unhandled rule type: {rule.type!r}") from None
    values = {**definition.defaults, **rule.params}
    return definition.label.format(**{key: _fmt_number(value) for key, value in values.items()})


def now_ms() -> int:
    return int(time.time() * 1000)


def create_rule(rule_type: RuleType, now: Optional[int] = None) -> MonthRule:
    """Create an enabled rule carrying the type's default parameters."""

    rule_type = RuleType(rule_type)
    if rule_type not in RULE_DEFS:
        raise AssertionError(f"unhandled rule type: {rule_type!r}")
    stamp = now_ms() if now is None else now
    return MonthRule(
        id=str(uuid.uuid4()),
        type=rule_type,
        enabled=True,
        params=dict(RULE_DEFS[rule_type].defaults),
        created_at=stamp,
        updated_at=stamp,
    )
