"""Role-scoped read models over SharedState.

Commander sees every task and every staged move, except that a staged move
is hidden once its unit has a pending request. A squad lead sees only its
own squad's tasks and staged moves, both at once. An observer sees no
pending items at all.
"""
from dataclasses import dataclass
from typing import List, Optional

from .model import MovePayload, Priority, SharedState, TaskStatus, TaskType, Unit, UnitStatus
from .roles import Commander, Observer, Role, SquadLead

@dataclass
class PendingItem:
    id: str
    kind: str  # TASK | STAGED
    title: str
    status: str
    squad_id: str
    priority: Optional[Priority] = None
    type: Optional[TaskType] = None
    payload: Optional[MovePayload] = None
    notification: bool = False
    timestamp: Optional[int] = None

def _task_items(state: SharedState, role: Role) -> List[PendingItem]:
    if isinstance(role, Commander):
        tasks = state.tasks
    elif isinstance(role, SquadLead):
        tasks = [t for t in state.tasks if t.squad_id == role.squad_id]
    elif isinstance(role, Observer):
        tasks = []
    else:
        raise TypeError(f"Not a role: {role!r}")
    return [PendingItem(id=t.id, kind="TASK", title=t.title, status=t.status.value,
                        squad_id=t.squad_id, priority=t.priority, type=t.type,
                        payload=t.payload, notification=t.notification,
                        timestamp=t.timestamp)
            for t in tasks]

def _staged_items(state: SharedState, role: Role) -> List[PendingItem]:
    if isinstance(role, Observer):
        return []
    units = {u.id: u for u in state.units}
    items: List[PendingItem] = []
    for m in state.staged_moves:
        unit = units.get(m.unit_id)
        if unit is None:
            continue
        if isinstance(role, SquadLead) and unit.squad != role.squad_id:
            continue
        if isinstance(role, Commander) and any(t.is_pending_request_for(m.unit_id)
                                               for t in state.tasks):
            continue
        items.append(PendingItem(
            id=f"STAGED-{m.unit_id}",
            kind="STAGED",
            title=f"PLANNED: {unit.callsign} -> [{m.x:.0f}, {m.y:.0f}]",
            status="STAGED",
            squad_id=unit.squad,
            payload=MovePayload(unit_id=unit.id, x=m.x, y=m.y),
        ))
    return items

def pending_items(state: SharedState, role: Role, tab: str = "ACTIVE") -> List[PendingItem]:
    """Tasks and staged moves for a role; tab is ACTIVE or HISTORY."""
    items = _task_items(state, role) + _staged_items(state, role)
    done = TaskStatus.COMPLETE.value
    if tab == "HISTORY":
        return [i for i in items if i.status == done]
    return [i for i in items if i.status != done]

def unit_roster(state: SharedState, role: Role, tab: str = "ACTIVE") -> List[Unit]:
    """Units listed for a role; tab is ACTIVE or LOSSES."""
    units = state.units
    if isinstance(role, SquadLead):
        units = [u for u in units if u.squad == role.squad_id]
    if tab == "LOSSES":
        return [u for u in units if u.status == UnitStatus.DESTROYED]
    return [u for u in units if u.status != UnitStatus.DESTROYED]

def roster_status(state: SharedState, unit: Unit) -> str:
    """STAGED while a plan is pending, otherwise the unit's own status."""
    if any(m.unit_id == unit.id for m in state.staged_moves):
        return "STAGED"
    return unit.status.value
