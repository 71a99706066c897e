import importlib.util
import json
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "run_month_rules.py"


def load_cli():
    spec = importlib.util.spec_from_file_location("run_month_rules", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_add_set_and_evaluate(tmp_path, capsys):
    cli = load_cli()
    store = str(tmp_path / "rules.json")
    tasks = tmp_path / "tasks.json"
    tasks.write_text(
        json.dumps([{"id": "late", "scheduledStart": "2026-01-10T21:30:00", "durationMin": 30}]),
        encoding="utf-8",
    )

    assert cli.main(["--store", store, "add", "--month", "2026-01", "--type", "no_task_after_hour"]) == 0
    rule_id = capsys.readouterr().out.strip()
    assert cli.main(["--store", store, "set", "--month", "2026-01", "--rule", rule_id, "--param", "hour=21"]) == 0
    capsys.readouterr()

    out_path = tmp_path / "out" / "report.json"
    assert cli.main(["--store", store, "evaluate", "--month", "2026-01", "--tasks", str(tasks), "--out", str(out_path)]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["warnCount"] == 1
    assert report["warnings"][0]["taskIds"] == ["late"]
    assert report["severityByTaskId"] == {"late": "warn"}
    assert json.loads(out_path.read_text(encoding="utf-8")) == report


def test_add_at_cap_and_unknown_rule_fail(tmp_path, capsys):
    cli = load_cli()
    store = str(tmp_path / "rules.json")
    for _ in range(3):
        assert cli.main(["--store", store, "add", "--month", "2026-01", "--type", "SLEEP_BLOCK"]) == 0
    assert cli.main(["--store", store, "add", "--month", "2026-01", "--type", "SLEEP_BLOCK"]) == 1
    assert cli.main(["--store", store, "disable", "--month", "2026-01", "--rule", "missing"]) == 1
    assert cli.main(["--store", store, "list", "--month", "2026-01"]) == 0
    assert "3/3 rules" in capsys.readouterr().out


@pytest.mark.parametrize(
    "argv",
    [
        ["add", "--month", "2026-13", "--type", "SLEEP_BLOCK"],
        ["list", "--month", "January"],
        ["evaluate", "--month", "2026-01", "--tasks", "tasks.json", "--tz", "Not/A_Zone"],
    ],
)
def test_invalid_month_or_timezone_is_a_usage_error(tmp_path, argv):
    cli = load_cli()
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--store", str(tmp_path / "rules.json"), *argv])
    assert excinfo.value.code == 2
    assert not (tmp_path / "rules.json").exists()
