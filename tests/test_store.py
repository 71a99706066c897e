import itertools

from month_rules.catalog import MAX_RULES_PER_MONTH
from month_rules.schema import RuleType
from month_rules.storage import JsonFileStorage, MemoryStorage
from month_rules.store import MonthRulesStore

MONTH = "2026-01"


def make_store(storage=None):
    ticks = itertools.count(1000)
    store = MonthRulesStore(storage or MemoryStorage(), clock=lambda: next(ticks))
    store.hydrate()
    return store


class FailingStorage:
    def load(self):
        return None

    def save(self, snapshot):
        raise OSError("quota exceeded")


def test_add_rule_is_capped_per_month():
    storage = MemoryStorage()
    store = make_store(storage)
    for rule_type in list(RuleType):
        store.add_rule(MONTH, rule_type)
    rules = store.rules_for(MONTH)
    assert len(rules) == MAX_RULES_PER_MONTH
    assert storage.saves == MAX_RULES_PER_MONTH
    assert not store.can_add(MONTH)
    assert store.can_add("2026-02")


def test_add_at_cap_changes_nothing():
    store = make_store()
    for _ in range(MAX_RULES_PER_MONTH):
        store.add_rule(MONTH, RuleType.SLEEP_BLOCK)
    before = store.by_month
    snapshot = [rule.to_dict() for rule in store.rules_for(MONTH)]
    assert store.add_rule(MONTH, RuleType.NO_TASK_AFTER_HOUR) is None
    assert store.by_month is before
    assert [rule.to_dict() for rule in store.rules_for(MONTH)] == snapshot


def test_update_rule_toggles_enabled_and_bumps_timestamp():
    store = make_store()
    rule = store.add_rule(MONTH, RuleType.NO_TASK_AFTER_HOUR)
    updated = store.update_rule(MONTH, rule.id, enabled=False)
    assert updated.enabled is False
    assert updated.updated_at > rule.updated_at
    assert updated.created_at == rule.created_at
    assert updated.type is rule.type


def test_update_params_keeps_only_finite_numbers():
    store = make_store()
    rule = store.add_rule(MONTH, RuleType.MAX_CONTINUOUS_WORK)
    updated = store.update_params(
        MONTH,
        rule.id,
        {"maxWorkMin": 240, "breakMin": float("inf"), "bogus": "x", "flag": True},
    )
    assert updated.params == {"maxWorkMin": 240, "breakMin": 10}
    assert updated.updated_at > rule.updated_at


def test_unknown_rule_id_is_a_noop():
    storage = MemoryStorage()
    store = make_store(storage)
    store.add_rule(MONTH, RuleType.SLEEP_BLOCK)
    saves = storage.saves
    assert store.update_rule(MONTH, "missing", enabled=False) is None
    assert store.update_params(MONTH, "missing", {"startHour": 2}) is None
    assert store.remove_rule(MONTH, "missing") is False
    assert storage.saves == saves


def test_remove_rule():
    store = make_store()
    rule = store.add_rule(MONTH, RuleType.SLEEP_BLOCK)
    assert store.remove_rule(MONTH, rule.id) is True
    assert store.rules_for(MONTH) == []


def test_persistence_failure_does_not_propagate():
    store = make_store(FailingStorage())
    rule = store.add_rule(MONTH, RuleType.SLEEP_BLOCK)
    assert store.rules_for(MONTH) == [rule]
    assert store.update_params(MONTH, rule.id, {"startHour": 0}).params["startHour"] == 0


def test_round_trip_through_file(tmp_path):
    path = tmp_path / "rules.json"
    store = make_store(JsonFileStorage(path))
    rule = store.add_rule(MONTH, RuleType.AUTO_TRAVEL_BUFFER)
    store.update_params(MONTH, rule.id, {"bufferMin": 25})

    reloaded = make_store(JsonFileStorage(path))
    rules = reloaded.rules_for(MONTH)
    assert len(rules) == 1
    assert rules[0].id == rule.id
    assert rules[0].params == {"bufferMin": 25}


def test_hydrate_runs_once():
    storage = MemoryStorage()
    store = make_store(storage)
    store.add_rule(MONTH, RuleType.SLEEP_BLOCK)
    storage.payload = None
    store.hydrate()
    assert len(store.rules_for(MONTH)) == 1


def test_listeners_are_notified_and_can_unsubscribe():
    store = make_store()
    seen = []
    unsubscribe = store.subscribe(seen.append)
    store.add_rule(MONTH, RuleType.SLEEP_BLOCK)
    unsubscribe()
    store.add_rule(MONTH, RuleType.SLEEP_BLOCK)
    assert seen == [MONTH]


def test_failing_listener_does_not_break_mutation():
    store = make_store()

    def boom(month_key):
        raise RuntimeError("listener failed")

    store.subscribe(boom)
    assert store.add_rule(MONTH, RuleType.SLEEP_BLOCK) is not None
