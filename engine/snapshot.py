"""Conversion between SharedState and the persisted JSON snapshot.

The snapshot keeps the camelCase keys of the shared storage format so that
every context on the same partition reads and writes the same document.
"""
from collections import deque
from typing import Any, Callable, Dict, List

from .model import (
    MovePayload, Position, Priority, SharedState, SpeedTier, Squad, StagedMove,
    Task, TaskStatus, TaskType, Unit, UnitStatus,
)
from .roles import Commander, parse_role, role_tag

SpeedSource = Callable[[], float]

def default_state(speed_source: SpeedSource) -> SharedState:
    """Starter picture: three units in two squads, nothing staged or tasked."""
    units = [
        Unit(id="SC-01", type="CORVETTE", x=200, y=300, callsign="POLAR-1", squad="ALPHA"),
        Unit(id="SF-12", type="FIGHTER-WG", x=450, y=150, callsign="RAPTOR-SQ", squad="BRAVO"),
        Unit(id="SD-05", type="DESTROYER", x=800, y=700, callsign="TITAN", squad="ALPHA"),
    ]
    for u in units:
        u.speed = speed_source()
    squads = [
        Squad(id="ALPHA", color="#00f2ff"),
        Squad(id="BRAVO", color="#ffb400"),
    ]
    return SharedState(tasks=[], staged_moves=[], units=units, squads=squads,
                       current_role=Commander())

def is_valid_snapshot(data: Any) -> bool:
    """Minimal structural check that rejects pre-squad schemas."""
    return (isinstance(data, dict)
            and isinstance(data.get("squads"), list)
            and isinstance(data.get("units"), list))

def _point(p: Position) -> Dict[str, float]:
    return {"x": p[0], "y": p[1]}

def _unpoint(d: Dict[str, Any]) -> Position:
    return (float(d["x"]), float(d["y"]))

def unit_to_dict(u: Unit) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": u.id,
        "type": u.type,
        "x": u.x,
        "y": u.y,
        "callsign": u.callsign,
        "squad": u.squad,
        "status": u.status.value,
        "name": u.name,
        "speed": u.speed,
    }
    if u.target is not None:
        out["target"] = _point(u.target)
        out["path"] = [_point(p) for p in u.path]
    return out

def unit_from_dict(d: Dict[str, Any], speed_source: SpeedSource) -> Unit:
    target = _unpoint(d["target"]) if d.get("target") else None
    status = UnitStatus(d.get("status") or UnitStatus.ACTIVE.value)
    path = deque(_unpoint(p) for p in d.get("path") or [])
    # A unit has a target if and only if it is MOVING
    if target is None and status == UnitStatus.MOVING:
        status = UnitStatus.ACTIVE
    elif target is not None and status != UnitStatus.MOVING:
        target = None
        path = deque()
    speed = d.get("speed")
    return Unit(
        id=str(d["id"]),
        type=str(d.get("type", "")),
        x=float(d["x"]),
        y=float(d["y"]),
        callsign=str(d.get("callsign", d["id"])),
        squad=str(d.get("squad", "ALPHA")),
        status=status,
        name=d.get("name"),
        speed=float(speed) if speed is not None else speed_source(),
        target=target,
        path=path,
    )

def task_to_dict(t: Task) -> Dict[str, Any]:
    return {
        "id": t.id,
        "title": t.title,
        "priority": t.priority.value if t.priority else None,
        "status": t.status.value,
        "squadId": t.squad_id,
        "type": t.type.value,
        "payload": ({"unitId": t.payload.unit_id, "x": t.payload.x, "y": t.payload.y}
                    if t.payload else None),
        "timestamp": t.timestamp,
        "notification": t.notification,
    }

def task_from_dict(d: Dict[str, Any]) -> Task:
    payload = d.get("payload")
    return Task(
        id=str(d["id"]),
        title=str(d.get("title", "")),
        priority=Priority(d["priority"]) if d.get("priority") else None,
        status=TaskStatus(d.get("status", TaskStatus.PENDING.value)),
        squad_id=str(d.get("squadId", "")),
        type=TaskType(d.get("type", TaskType.DIRECTIVE.value)),
        timestamp=int(d.get("timestamp", 0)),
        payload=(MovePayload(unit_id=str(payload["unitId"]), x=float(payload["x"]),
                             y=float(payload["y"])) if payload else None),
        notification=bool(d.get("notification", True)),
    )

def staged_to_dict(m: StagedMove) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "unitId": m.unit_id,
        "x": m.x,
        "y": m.y,
        "waypoints": [_point(p) for p in m.waypoints],
    }
    if m.speed is not None:
        out["speed"] = m.speed.value
    return out

def staged_from_dict(d: Dict[str, Any]) -> StagedMove:
    x, y = float(d["x"]), float(d["y"])
    waypoints: List[Position] = [_unpoint(p) for p in d.get("waypoints") or []]
    return StagedMove(
        unit_id=str(d["unitId"]),
        x=x,
        y=y,
        waypoints=waypoints or [(x, y)],
        speed=SpeedTier(d["speed"]) if d.get("speed") else None,
    )

def to_snapshot(state: SharedState) -> Dict[str, Any]:
    return {
        "tasks": [task_to_dict(t) for t in state.tasks],
        "units": [unit_to_dict(u) for u in state.units],
        "squads": [{"id": s.id, "color": s.color} for s in state.squads],
        "stagedMoves": [staged_to_dict(m) for m in state.staged_moves],
        "currentRole": role_tag(state.current_role),
    }

def _entries(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    """List of objects under key; TypeError when the list or an entry is not one."""
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(e, dict) for e in value):
        raise TypeError(f"{key} must be a list of objects")
    return value

def from_snapshot(data: Dict[str, Any], speed_source: SpeedSource) -> SharedState:
    """Build state from a snapshot that passed is_valid_snapshot.

    Raises KeyError, TypeError or ValueError on malformed entries.
    """
    role_value = data.get("currentRole")
    if role_value is not None and not isinstance(role_value, str):
        raise TypeError("currentRole must be a string")
    return SharedState(
        tasks=[task_from_dict(t) for t in _entries(data, "tasks")],
        staged_moves=[staged_from_dict(m) for m in _entries(data, "stagedMoves")],
        units=[unit_from_dict(u, speed_source) for u in _entries(data, "units")],
        squads=[Squad(id=str(s["id"]), color=str(s.get("color", "")))
                for s in _entries(data, "squads")],
        current_role=parse_role(role_value) if role_value else Commander(),
    )
