"""Demo script for month-rules."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from month_rules.adapters.json_adapter import parse
from month_rules.catalog import format_rule_summary
from month_rules.engine import evaluate_month_rules
from month_rules.presentation import summarize_warnings
from month_rules.schema import RuleType
from month_rules.storage import MemoryStorage
from month_rules.store import MonthRulesStore

MONTH = "2026-01"


def main() -> None:
    tasks = parse(str(Path(__file__).with_name("sample_tasks.json")))

    store = MonthRulesStore(MemoryStorage())
    store.hydrate()
    store.add_rule(MONTH, RuleType.NO_TASK_AFTER_HOUR)
    continuous = store.add_rule(MONTH, RuleType.MAX_CONTINUOUS_WORK)
    store.update_params(MONTH, continuous.id, {"maxWorkMin": 120})
    store.add_rule(MONTH, RuleType.AUTO_TRAVEL_BUFFER)

    print("Rules:")
    for rule in store.rules_for(MONTH):
        print("  -", format_rule_summary(rule))

    warnings = evaluate_month_rules(MONTH, store.rules_for(MONTH), tasks)
    summary = summarize_warnings(warnings)
    print(f"Warnings: {summary.warn_count} warn / {summary.info_count} info")
    for warning in warnings:
        print(f"  [{warning.severity.value}] {warning.message} -> {', '.join(warning.task_ids)}")


if __name__ == "__main__":
    main()
