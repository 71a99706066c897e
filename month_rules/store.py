"""Month-scoped rule store with best-effort persistence."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Any, Callable, Mapping, Optional, Protocol

from month_rules.catalog import MAX_RULES_PER_MONTH, create_rule, now_ms, param_keys
from month_rules.schema import MonthRule, RuleType
from month_rules.storage import STORAGE_VERSION, MonthRulesSnapshot

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


class RuleStorage(Protocol):
    def load(self) -> Optional[MonthRulesSnapshot]: ...

    def save(self, snapshot: MonthRulesSnapshot) -> None: ...


def clean_param_patch(patch: Mapping[str, Any]) -> dict[str, float]:
    """Keep only finite numeric values from a parameter patch."""

    clean = {}
    for key, value in patch.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isfinite(value):
            clean[key] = value
    return clean


class MonthRulesStore:
    """Holds rule instances per month key and writes through to storage.

    Listeners registered with :meth:`subscribe` are called with the month key
    after every mutation that changed something.
    """

    def __init__(self, storage: RuleStorage, clock: Optional[Callable[[], int]] = None):
        self.storage = storage
        self.clock = clock or now_ms
        self.hydrated = False
        self.by_month: dict[str, list[MonthRule]] = {}
        self._listeners: list[Listener] = []

    def hydrate(self) -> None:
        if self.hydrated:
            return
        snapshot = self.storage.load()
        self.hydrated = True
        if snapshot is None or snapshot.version != STORAGE_VERSION:
            return
        self.by_month = snapshot.by_month

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def rules_for(self, month_key: str) -> list[MonthRule]:
        return list(self.by_month.get(month_key, []))

    def can_add(self, month_key: str) -> bool:
        return len(self.by_month.get(month_key, [])) < MAX_RULES_PER_MONTH

    def add_rule(self, month_key: str, rule_type: RuleType) -> Optional[MonthRule]:
        current = self.by_month.get(month_key, [])
        if len(current) >= MAX_RULES_PER_MONTH:
            logger.debug("Rule cap reached for %s, ignoring add", month_key)
            return None
        rule = create_rule(rule_type, now=self.clock())
        self._commit(month_key, [*current, rule])
        return rule

    def update_rule(self, month_key: str, rule_id: str, *, enabled: bool) -> Optional[MonthRule]:
        return self._replace(month_key, rule_id, lambda rule, now: replace(rule, enabled=bool(enabled), updated_at=now))

    def update_params(self, month_key: str, rule_id: str, patch: Mapping[str, Any]) -> Optional[MonthRule]:
        clean = clean_param_patch(patch)

        def merge(rule: MonthRule, now: int) -> MonthRule:
            # Keys outside the type's schema are dropped.
            allowed = param_keys(rule.type)
            params = {**rule.params, **{key: value for key, value in clean.items() if key in allowed}}
            return replace(rule, params=params, updated_at=now)

        return self._replace(month_key, rule_id, merge)

    def remove_rule(self, month_key: str, rule_id: str) -> bool:
        current = self.by_month.get(month_key, [])
        remaining = [rule for rule in current if rule.id != rule_id]
        if len(remaining) == len(current):
            logger.debug("No rule %s in %s to remove", rule_id, month_key)
            return False
        self._commit(month_key, remaining)
        return True

    def snapshot(self) -> MonthRulesSnapshot:
        return MonthRulesSnapshot(version=STORAGE_VERSION, by_month={k: list(v) for k, v in self.by_month.items()})

    def _replace(
        self,
        month_key: str,
        rule_id: str,
        update: Callable[[MonthRule, int], MonthRule],
    ) -> Optional[MonthRule]:
        current = self.by_month.get(month_key, [])
        for index, rule in enumerate(current):
            if rule.id == rule_id:
                updated = update(rule, self.clock())
                next_rules = list(current)
                next_rules[index] = updated
                self._commit(month_key, next_rules)
                return updated
        logger.debug("No rule %s in %s to update", rule_id, month_key)
        return None

    def _commit(self, month_key: str, rules: list[MonthRule]) -> None:
        self.by_month = {**self.by_month, month_key: rules}
        self._persist()
        for listener in list(self._listeners):
            try:
                listener(month_key)
            except Exception:  # noqa: BLE001
                logger.exception("Month rules listener failed")

    def _persist(self) -> None:
        try:
            self.storage.save(self.snapshot())
        except Exception as exc:  # noqa: BLE001
            logger.warning("Persisting month rules failed: %s", exc)
