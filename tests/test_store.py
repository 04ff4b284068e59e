"""Tests for the shared state store."""
import json

import pytest

from engine.model import (
    COMMAND_SQUAD, Priority, SpeedTier, TaskStatus, TaskType, Unit, UnitStatus,
)
from engine.rng import DRNG
from engine.roles import Commander, SquadLead
from engine.store import SharedStateStore
from runtime.storage import MemoryPartition, StorageSync

KEY = "POLAR_OPS_DATA"


def make_store(sync=None, clock=None) -> SharedStateStore:
    """Create a store with a fixed seed and a stepping clock."""
    ticks = iter(range(1_000, 1_000_000))
    return SharedStateStore(sync=sync, rng=DRNG(1), clock=clock or (lambda: next(ticks)))


def test_default_state():
    """An empty partition yields the starter picture."""
    store = make_store()
    assert [u.id for u in store.state.units] == ["SC-01", "SF-12", "SD-05"]
    assert [s.id for s in store.state.squads] == ["ALPHA", "BRAVO"]
    assert store.state.tasks == []
    assert store.state.staged_moves == []
    assert store.state.current_role == Commander()
    for u in store.state.units:
        assert u.status == UnitStatus.ACTIVE
        assert 0.5 <= u.speed < 1.0


def test_stage_twice_without_append_replaces():
    """A second plain stage replaces the first rather than accumulating."""
    store = make_store()
    store.update_staged_move("SC-01", 500, 300)
    store.update_staged_move("SC-01", 600, 320)

    assert len(store.state.staged_moves) == 1
    move = store.get_staged_move("SC-01")
    assert (move.x, move.y) == (600, 320)
    assert move.waypoints == [(600, 320)]


def test_append_extends_waypoints():
    """Appending keeps earlier points and makes the new point primary."""
    store = make_store()
    store.update_staged_move("SC-01", 500, 300)
    store.set_staged_speed("SC-01", SpeedTier.SLOW)
    store.update_staged_move("SC-01", 500, 500, append=True)

    assert len(store.state.staged_moves) == 1
    move = store.get_staged_move("SC-01")
    assert move.waypoints == [(500, 300), (500, 500)]
    assert (move.x, move.y) == (500, 500)
    assert move.speed == SpeedTier.SLOW


def test_append_without_existing_plan_starts_one():
    store = make_store()
    store.update_staged_move("SF-12", 10, 20, append=True)
    assert store.get_staged_move("SF-12").waypoints == [(10, 20)]


def test_operations_on_unknown_ids_are_noops():
    """Unknown units, tasks and squads leave state and subscribers alone."""
    store = make_store()
    calls = []
    store.subscribe(lambda s: calls.append(s))
    calls.clear()

    store.update_staged_move("NOPE", 1, 1)
    store.update_unit_status("NOPE", UnitStatus.DESTROYED)
    store.update_task_status("TASK-0", TaskStatus.COMPLETE)
    store.delete_task("TASK-0")
    store.clear_staged_move("NOPE")
    store.set_squad_color("NOPE", "#fff")
    store.delete_unit("NOPE")

    assert calls == []
    assert store.state.staged_moves == []


def test_move_request_consolidates_per_unit():
    """A new request for a unit removes its earlier pending one."""
    store = make_store()
    sc01 = store.get_unit("SC-01")
    sf12 = store.get_unit("SF-12")
    store.add_move_request(sc01, 400, 300)
    other = store.add_move_request(sf12, 600, 400)
    latest = store.add_move_request(sc01, 500.4, 299.6)

    pending = [t for t in store.state.tasks if t.is_pending_request_for("SC-01")]
    assert pending == [latest]
    assert latest.title == "REQUEST: MOVE POLAR-1 TO 500, 300"
    assert latest.priority == Priority.MEDIUM
    assert latest.squad_id == COMMAND_SQUAD
    assert latest.type == TaskType.REQUEST
    assert latest.payload.unit_id == "SC-01"
    assert store.get_task(other.id) is other


def test_task_ids_unique_on_same_millisecond():
    store = make_store(clock=lambda: 5_000)
    a = store.add_task("HOLD RIDGE", Priority.HIGH, "ALPHA")
    b = store.add_task("SCREEN EAST", Priority.LOW, "BRAVO")
    assert a.id == "TASK-5000"
    assert b.id == "TASK-5001"
    assert a.status == TaskStatus.PENDING
    assert a.notification is True


def test_acknowledge_clears_notification():
    store = make_store()
    task = store.add_task("HOLD RIDGE", Priority.HIGH, "ALPHA")
    store.update_task_status(task.id, TaskStatus.ACKNOWLEDGED)
    assert task.status == TaskStatus.ACKNOWLEDGED
    assert task.notification is False


def test_delete_unit_purges_its_references_only():
    """Deleting a unit drops its staged move and payload tasks, nothing else."""
    store = make_store()
    store.update_staged_move("SC-01", 500, 300)
    store.update_staged_move("SF-12", 600, 400)
    store.add_move_request(store.get_unit("SC-01"), 500, 300)
    keep_request = store.add_move_request(store.get_unit("SF-12"), 600, 400)
    directive = store.add_task("HOLD RIDGE", Priority.HIGH, "ALPHA")

    store.delete_unit("SC-01")

    assert store.get_unit("SC-01") is None
    assert [m.unit_id for m in store.state.staged_moves] == ["SF-12"]
    assert store.state.tasks == [keep_request, directive]


def test_subscribe_called_now_and_after_each_mutation_in_order():
    store = make_store()
    calls = []
    store.subscribe(lambda s: calls.append("first"))
    store.subscribe(lambda s: calls.append("second"))
    assert calls == ["first", "second"]

    store.add_squad("CHARLIE", "#ff00ff")
    assert calls == ["first", "second", "first", "second"]


def test_unsubscribe_stops_notifications():
    store = make_store()
    calls = []
    unsubscribe = store.subscribe(lambda s: calls.append(s))
    unsubscribe()
    store.add_squad("CHARLIE", "#ff00ff")
    assert len(calls) == 1


def test_add_squad_is_noop_when_present():
    store = make_store()
    store.add_squad("ALPHA", "#123456")
    assert len(store.state.squads) == 2
    assert store.get_squad("ALPHA").color == "#00f2ff"


def test_add_unit_fills_defaults():
    store = make_store()
    store.add_unit(Unit(id="UN-7", type="SCOUT", x=50, y=50, callsign="POLAR-4", squad="BRAVO"))
    unit = store.get_unit("UN-7")
    assert unit.status == UnitStatus.ACTIVE
    assert unit.name == "UN-7"
    assert 0.5 <= unit.speed < 1.0


def test_add_unit_with_existing_id_is_ignored():
    store = make_store()
    store.add_unit(Unit(id="SC-01", type="SCOUT", x=0, y=0, callsign="DUP"))
    assert len(store.state.units) == 3
    assert store.get_unit("SC-01").callsign == "POLAR-1"


def test_non_moving_status_halts_unit():
    """Marking a moving unit destroyed drops its target and waypoints."""
    store = make_store()
    unit = store.get_unit("SC-01")
    unit.target = (500, 300)
    unit.path.append((600, 300))
    unit.status = UnitStatus.MOVING

    store.update_unit_status("SC-01", UnitStatus.DESTROYED)

    assert unit.status == UnitStatus.DESTROYED
    assert unit.target is None
    assert len(unit.path) == 0


def test_moving_status_requires_target():
    store = make_store()
    store.update_unit_status("SC-01", UnitStatus.MOVING)
    assert store.get_unit("SC-01").status == UnitStatus.ACTIVE


def test_update_unit_details_and_squad():
    store = make_store()
    store.update_unit_details("SD-05", "TITAN ACTUAL", "CRUISER", "TITAN-6")
    store.set_unit_squad("SD-05", "BRAVO")
    unit = store.get_unit("SD-05")
    assert (unit.name, unit.type, unit.callsign, unit.squad) == (
        "TITAN ACTUAL", "CRUISER", "TITAN-6", "BRAVO")


def test_find_unit_matches_id_callsign_or_name():
    store = make_store()
    assert store.find_unit("raptor").id == "SF-12"
    assert store.find_unit("sd-0").id == "SD-05"
    assert store.find_unit("nothing") is None
    assert store.find_unit("  ") is None


def test_tasks_for_squad():
    store = make_store()
    store.add_task("HOLD RIDGE", Priority.HIGH, "ALPHA")
    store.add_task("SCREEN EAST", None, "BRAVO")
    assert [t.title for t in store.get_tasks_for_squad("BRAVO")] == ["SCREEN EAST"]


def test_every_mutation_persists_snapshot():
    partition = MemoryPartition()
    handle = partition.open()
    store = make_store(sync=StorageSync(handle, KEY))
    store.update_staged_move("SF-12", 600, 400)
    store.set_role(SquadLead("BRAVO"))

    data = json.loads(handle.get_item(KEY))
    assert data["stagedMoves"] == [
        {"unitId": "SF-12", "x": 600, "y": 400, "waypoints": [{"x": 600, "y": 400}]}
    ]
    assert data["currentRole"] == "SQUAD-BRAVO"
    assert {s["id"] for s in data["squads"]} == {"ALPHA", "BRAVO"}


def test_snapshot_missing_units_loads_default():
    """A pre-migration snapshot without units is replaced by the starter state."""
    partition = MemoryPartition()
    handle = partition.open()
    handle.set_item(KEY, json.dumps({
        "tasks": [],
        "squads": [{"id": "ZULU", "color": "#000"}],
        "stagedMoves": [],
        "currentRole": "COMMANDER",
    }))

    store = make_store(sync=StorageSync(partition.open(), KEY))

    assert len(store.state.units) == 3
    assert [s.id for s in store.state.squads] == ["ALPHA", "BRAVO"]


def test_snapshot_that_is_not_json_loads_default():
    partition = MemoryPartition()
    partition.open().set_item(KEY, "{units: oops")
    store = make_store(sync=StorageSync(partition.open(), KEY))
    assert len(store.state.units) == 3


def test_snapshot_with_bad_entries_loads_default():
    partition = MemoryPartition()
    partition.open().set_item(KEY, json.dumps({
        "squads": [{"id": "ALPHA", "color": "#fff"}],
        "units": [{"id": "X-1", "status": "FLYING", "x": 1, "y": 2}],
    }))
    store = make_store(sync=StorageSync(partition.open(), KEY))
    assert [u.id for u in store.state.units] == ["SC-01", "SF-12", "SD-05"]


@pytest.mark.parametrize("doc", [
    {"squads": [], "units": ["SC-01"]},
    {"squads": ["ALPHA"], "units": []},
    {"squads": [], "units": [], "tasks": "oops"},
    {"squads": [], "units": [], "stagedMoves": [7]},
    {"squads": [], "units": [], "currentRole": 5},
    {"squads": [], "units": [{"id": "X", "x": 1, "y": 2, "status": "MOVING", "target": "north"}]},
    {"squads": [], "units": [], "tasks": [{"id": "TASK-1", "payload": "SC-01"}]},
])
def test_snapshot_with_wrong_entry_shapes_loads_default(doc):
    """Entries of the wrong JSON type never escape as exceptions."""
    partition = MemoryPartition()
    partition.open().set_item(KEY, json.dumps(doc))
    store = make_store(sync=StorageSync(partition.open(), KEY))
    assert [u.id for u in store.state.units] == ["SC-01", "SF-12", "SD-05"]


def test_valid_snapshot_round_trips_through_storage():
    partition = MemoryPartition()
    first = make_store(sync=StorageSync(partition.open(), KEY))
    first.update_staged_move("SC-01", 500, 300)
    first.update_staged_move("SC-01", 550, 350, append=True)
    first.add_task("HOLD RIDGE", Priority.HIGH, "ALPHA")
    first.update_unit_status("SD-05", UnitStatus.DESTROYED)

    second = make_store(sync=StorageSync(partition.open(), KEY))

    assert second.get_staged_move("SC-01").waypoints == [(500, 300), (550, 350)]
    assert second.state.tasks[0].title == "HOLD RIDGE"
    assert second.get_unit("SD-05").status == UnitStatus.DESTROYED
    assert second.get_unit("SC-01").speed == first.get_unit("SC-01").speed


def test_loaded_moving_unit_without_target_becomes_active():
    partition = MemoryPartition()
    partition.open().set_item(KEY, json.dumps({
        "squads": [{"id": "ALPHA", "color": "#fff"}],
        "units": [{"id": "X-1", "type": "SCOUT", "x": 1, "y": 2, "callsign": "X",
                   "squad": "ALPHA", "status": "MOVING"}],
    }))
    store = make_store(sync=StorageSync(partition.open(), KEY))
    unit = store.get_unit("X-1")
    assert unit.status == UnitStatus.ACTIVE
    assert unit.target is None


def test_reset_restores_starter_picture():
    store = make_store()
    store.delete_unit("SC-01")
    store.add_task("HOLD RIDGE", Priority.HIGH, "ALPHA")
    store.reset()
    assert len(store.state.units) == 3
    assert store.state.tasks == []
