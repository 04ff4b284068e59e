"""Tests for role-scoped pending items and rosters."""
from engine.model import Priority, UnitStatus
from engine.rng import DRNG
from engine.roles import Commander, Observer, SquadLead
from engine.store import SharedStateStore
from engine.views import pending_items, roster_status, unit_roster


def make_store() -> SharedStateStore:
    """Starter picture with a staged move and request for SF-12 and a directive."""
    store = SharedStateStore(rng=DRNG(5))
    store.update_staged_move("SF-12", 600, 400)
    store.add_move_request(store.get_unit("SF-12"), 600, 400)
    store.update_staged_move("SC-01", 500, 300)
    store.add_task("HOLD RIDGE", Priority.HIGH, "ALPHA")
    return store


def test_commander_sees_request_instead_of_duplicate_staged_move():
    store = make_store()
    items = pending_items(store.state, Commander())
    kinds = [(i.kind, i.payload.unit_id if i.payload else None) for i in items]

    assert ("TASK", "SF-12") in kinds
    assert ("STAGED", "SF-12") not in kinds
    assert ("STAGED", "SC-01") in kinds
    assert len(items) == 3


def test_squad_lead_sees_own_tasks_and_staged_moves():
    store = make_store()
    bravo = pending_items(store.state, SquadLead("BRAVO"))
    alpha = pending_items(store.state, SquadLead("ALPHA"))

    assert [i.id for i in bravo] == ["STAGED-SF-12"]
    assert [i.title for i in alpha] == ["HOLD RIDGE", "PLANNED: POLAR-1 -> [500, 300]"]


def test_observer_sees_no_pending_items():
    store = make_store()
    assert pending_items(store.state, Observer()) == []


def test_staged_item_shape():
    store = make_store()
    item = next(i for i in pending_items(store.state, SquadLead("ALPHA")) if i.kind == "STAGED")
    assert item.status == "STAGED"
    assert item.squad_id == "ALPHA"
    assert item.priority is None
    assert (item.payload.x, item.payload.y) == (500, 300)


def test_roster_by_role_and_tab():
    store = make_store()
    store.update_unit_status("SD-05", UnitStatus.DESTROYED)

    assert [u.id for u in unit_roster(store.state, Commander())] == ["SC-01", "SF-12"]
    assert [u.id for u in unit_roster(store.state, Observer(), "LOSSES")] == ["SD-05"]
    assert [u.id for u in unit_roster(store.state, SquadLead("ALPHA"))] == ["SC-01"]
    assert [u.id for u in unit_roster(store.state, SquadLead("ALPHA"), "LOSSES")] == ["SD-05"]


def test_roster_status_reports_staged_plans():
    store = make_store()
    assert roster_status(store.state, store.get_unit("SC-01")) == "STAGED"
    assert roster_status(store.state, store.get_unit("SD-05")) == "ACTIVE"
