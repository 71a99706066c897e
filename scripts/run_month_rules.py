"""Manage month rules and evaluate them against a task file."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from month_rules.adapters import csv_adapter, json_adapter
from month_rules.catalog import MAX_RULES_PER_MONTH, format_rule_summary
from month_rules.config import config, resolve_timezone, setup_logging
from month_rules.dates import validate_month_key
from month_rules.engine import evaluate_month_rules
from month_rules.presentation import summarize_warnings
from month_rules.schema import RuleType
from month_rules.storage import JsonFileStorage
from month_rules.store import MonthRulesStore


def _load_tasks(path: Path):
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return csv_adapter.parse(str(path))
    if suffix == ".json":
        return json_adapter.parse(str(path))
    raise ValueError("Unsupported input format, expected .csv or .json")


def _parse_param(text: str) -> tuple[str, float]:
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got {text!r}")
    try:
        return key.strip(), float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"parameter {key!r} must be a number") from exc


def _month_key(text: str) -> str:
    try:
        return validate_month_key(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _timezone(text: str):
    try:
        return resolve_timezone(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _rule_type(text: str) -> RuleType:
    try:
        return RuleType(text.strip().upper())
    except ValueError as exc:
        choices = ", ".join(t.value for t in RuleType)
        raise argparse.ArgumentTypeError(f"unknown rule type {text!r}, expected one of: {choices}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Month rules: configure rules and check a task schedule")
    parser.add_argument("--store", default=config["store_path"], help="Path to the JSON rules store")
    parser.add_argument("--log-level", default=None, help="Logging level (default from MONTH_RULES_LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List the rules of a month")
    list_cmd.add_argument("--month", required=True, type=_month_key)

    add_cmd = sub.add_parser("add", help="Add a rule with default parameters")
    add_cmd.add_argument("--month", required=True, type=_month_key)
    add_cmd.add_argument("--type", required=True, type=_rule_type)

    set_cmd = sub.add_parser("set", help="Update rule parameters")
    set_cmd.add_argument("--month", required=True, type=_month_key)
    set_cmd.add_argument("--rule", required=True)
    set_cmd.add_argument("--param", action="append", type=_parse_param, default=[], help="key=value")

    for name in ("enable", "disable", "remove"):
        cmd = sub.add_parser(name, help=f"{name.capitalize()} a rule")
        cmd.add_argument("--month", required=True, type=_month_key)
        cmd.add_argument("--rule", required=True)

    eval_cmd = sub.add_parser("evaluate", help="Evaluate the month's rules against a task file")
    eval_cmd.add_argument("--month", required=True, type=_month_key)
    eval_cmd.add_argument("--tasks", required=True, help="Path to CSV/JSON tasks file")
    eval_cmd.add_argument("--tz", default=config["timezone"], type=_timezone, help="IANA timezone for wall-clock times")
    eval_cmd.add_argument("--out", default=None, help="Optional path to write the JSON report")
    return parser


def _print_rules(store: MonthRulesStore, month: str) -> None:
    rules = store.rules_for(month)
    print(f"{month}: {len(rules)}/{MAX_RULES_PER_MONTH} rules")
    for rule in rules:
        state = "on " if rule.enabled else "off"
        print(f"  [{state}] {rule.id}  {format_rule_summary(rule)}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    store = MonthRulesStore(JsonFileStorage(args.store))
    store.hydrate()

    if args.command == "list":
        _print_rules(store, args.month)
        return 0

    if args.command == "add":
        rule = store.add_rule(args.month, args.type)
        if rule is None:
            print(f"{args.month} already has {MAX_RULES_PER_MONTH} rules", file=sys.stderr)
            return 1
        print(rule.id)
        return 0

    if args.command in ("set", "enable", "disable", "remove"):
        if args.command == "set":
            changed = store.update_params(args.month, args.rule, dict(args.param)) is not None
        elif args.command == "remove":
            changed = store.remove_rule(args.month, args.rule)
        else:
            changed = store.update_rule(args.month, args.rule, enabled=args.command == "enable") is not None
        if not changed:
            print(f"No rule {args.rule} in {args.month}", file=sys.stderr)
            return 1
        _print_rules(store, args.month)
        return 0

    tasks = _load_tasks(Path(args.tasks))
    warnings = evaluate_month_rules(args.month, store.rules_for(args.month), tasks, tz=args.tz)
    summary = summarize_warnings(warnings)
    report = {
        "monthKey": args.month,
        "warnCount": summary.warn_count,
        "infoCount": summary.info_count,
        "warnings": [warning.to_dict() for warning in warnings],
        "severityByTaskId": summary.severity_by_task_id,
    }
    print(json.dumps(report, indent=2, ensure_ascii=False))

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"Saved warnings report to {out_path}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
