"""Role-aware command workflow layered on the shared state store.

Staged move -> request -> approve/deny, direct execution by the commander,
directive tasks, and unit administration. Nothing here raises for a
domain failure: every operation returns an Advisory and a rejected one
leaves state untouched.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from .model import (
    MAP_SIZE, SPEED_TIERS, Priority, SpeedTier, StagedMove, TaskStatus, TaskType, Unit,
    UnitStatus,
)
from .motion import MotionEngine
from .roles import Commander, Observer, Role, SquadLead, role_tag
from .store import SharedStateStore

logger = logging.getLogger(__name__)

@dataclass
class Advisory:
    """Outcome of a workflow operation, shown to whoever invoked it."""
    accepted: bool
    message: str
    level: str = "info"  # info | success | warning | danger
    reason: str = "ok"   # ok | forbidden | not_found | rejected
    data: Dict = field(default_factory=dict)

def _ok(message: str, level: str = "info", **data) -> Advisory:
    return Advisory(True, message, level, "ok", data)

def _forbidden(message: str) -> Advisory:
    return Advisory(False, message, "danger", "forbidden")

def _not_found(message: str) -> Advisory:
    return Advisory(False, message, "warning", "not_found")

def _rejected(message: str, level: str = "danger") -> Advisory:
    return Advisory(False, message, level, "rejected")

class CommandWorkflow:
    """Turns staged intentions into approved orders."""

    def __init__(self, store: SharedStateStore, motion: MotionEngine,
                 speed_tiers: Optional[Mapping[SpeedTier, float]] = None,
                 map_size: float = MAP_SIZE):
        self.store = store
        self.motion = motion
        self.speed_tiers = dict(speed_tiers or SPEED_TIERS)
        self.map_size = map_size

    # ------------------------------------------------------------------
    # Role gates
    # ------------------------------------------------------------------

    @staticmethod
    def _require_commander(role: Role) -> Optional[Advisory]:
        if isinstance(role, Commander):
            return None
        return _forbidden(f"[DENIED] {role_tag(role)} LACKS COMMAND AUTHORITY")

    @staticmethod
    def _require_writer(role: Role) -> Optional[Advisory]:
        if isinstance(role, Observer):
            return _forbidden("[DENIED] READ ONLY ACCESS")
        return None

    @staticmethod
    def _require_squad_lead(role: Role) -> Optional[Advisory]:
        if isinstance(role, SquadLead):
            return None
        return _forbidden(f"[DENIED] {role_tag(role)} IS NOT A SQUAD LEAD")

    def _unit_or_none(self, unit_id: str) -> Optional[Unit]:
        return self.store.get_unit(unit_id)

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def stage_move(self, role: Role, unit_id: str, x: float, y: float,
                   append: bool = False) -> Advisory:
        """Stage a destination for a unit, or append a waypoint to its plan."""
        denied = self._require_writer(role)
        if denied:
            return denied
        unit = self._unit_or_none(unit_id)
        if unit is None:
            return _not_found(f"[SYSTEM] UNKNOWN ASSET {unit_id}")
        if unit.status == UnitStatus.DESTROYED:
            return _rejected(f"[DENIED] UNIT {unit.callsign} IS DESTROYED")
        if unit.status == UnitStatus.MOVING:
            return _rejected(f"[DENIED] UNIT {unit.callsign} IS CURRENTLY IN TRANSIT")
        if not (0 <= x <= self.map_size and 0 <= y <= self.map_size):
            return _rejected(f"[DENIED] {x:.0f}, {y:.0f} IS OUTSIDE THE OPERATIONS AREA")

        self.store.update_staged_move(unit_id, x, y, append)
        move = self.store.get_staged_move(unit_id)
        note = "WAYPOINT ADDED" if append else "READY FOR DEPLOYMENT"
        return _ok(f"[STAGED] {unit.callsign} {note}", "warning",
                   unit_id=unit_id, waypoints=len(move.waypoints) if move else 0)

    def set_staged_speed(self, role: Role, unit_id: str, speed: SpeedTier) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        if self.store.get_staged_move(unit_id) is None:
            return _not_found(f"[SYSTEM] NO STAGED MOVE FOR {unit_id}")
        self.store.set_staged_speed(unit_id, speed)
        return _ok(f"[CMD] {unit_id} SPEED SET TO {speed.value}", unit_id=unit_id)

    def clear_unit_staged_move(self, role: Role, unit_id: str) -> Advisory:
        denied = self._require_writer(role)
        if denied:
            return denied
        if self.store.get_staged_move(unit_id) is None:
            return _not_found(f"[SYSTEM] NO STAGED MOVE FOR {unit_id}")
        self.store.clear_staged_move(unit_id)
        return _ok(f"[CMD] STAGED MOVE CLEARED FOR {unit_id}", unit_id=unit_id)

    def clear_all_staged_moves(self, role: Role) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        self.store.clear_all_staged_moves()
        return _ok("[SYSTEM] STAGED ORDERS CLEARED", "danger")

    def clear_squad_orders(self, role: Role) -> Advisory:
        """Drop every staged move belonging to the lead's own squad."""
        denied = self._require_squad_lead(role)
        if denied:
            return denied
        cleared = 0
        for move in list(self.store.state.staged_moves):
            unit = self._unit_or_none(move.unit_id)
            if unit is not None and unit.squad == role.squad_id:
                self.store.clear_staged_move(move.unit_id)
                cleared += 1
        return _ok(f"[OPS] CLEARED {cleared} PLANNED MOVE(S)", count=cleared)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request_unit_move(self, role: Role, unit_id: str) -> Advisory:
        """Submit one unit's staged move as a request; the plan stays staged."""
        denied = self._require_squad_lead(role)
        if denied:
            return denied
        move = self.store.get_staged_move(unit_id)
        unit = self._unit_or_none(unit_id)
        if move is None or unit is None:
            return _not_found(f"[SYSTEM] NO STAGED MOVE FOR {unit_id}")
        if unit.status == UnitStatus.DESTROYED:
            return _rejected(f"[DENIED] UNIT {unit.callsign} IS DESTROYED")
        task = self.store.add_move_request(unit, move.x, move.y)
        return _ok(f"[REQUEST] TRANSFER REQUEST SENT FOR {unit.callsign}", "warning",
                   task_id=task.id)

    def submit_squad_requests(self, role: Role) -> Advisory:
        """File one request per staged move of the lead's squad."""
        denied = self._require_squad_lead(role)
        if denied:
            return denied
        squad_units = {u.id: u for u in self.store.state.units if u.squad == role.squad_id}
        moves = [m for m in self.store.state.staged_moves if m.unit_id in squad_units]
        if not moves:
            return _rejected("[SYSTEM] NO PLANNED MOVES TO SUBMIT", "warning")

        task_ids = []
        for m in moves:
            unit = squad_units[m.unit_id]
            if unit.status == UnitStatus.DESTROYED:
                continue
            task_ids.append(self.store.add_move_request(unit, m.x, m.y).id)
        return _ok(f"[OPS] SUBMITTED {len(task_ids)} MOVEMENT REQUEST(S)", "success",
                   task_ids=task_ids)

    def approve_request(self, role: Role, task_id: str) -> Advisory:
        """Order the unit toward the requested point and retire the request."""
        denied = self._require_commander(role)
        if denied:
            return denied
        task = self.store.get_task(task_id)
        if task is None or task.type != TaskType.REQUEST or task.payload is None:
            return _not_found(f"[SYSTEM] NO MOVE REQUEST {task_id}")
        unit = self._unit_or_none(task.payload.unit_id)
        if unit is None:
            return _not_found(f"[SYSTEM] UNKNOWN ASSET {task.payload.unit_id}")
        if unit.status == UnitStatus.DESTROYED:
            return _rejected(f"[DENIED] UNIT {unit.callsign} IS DESTROYED")

        self.motion.set_target(unit, task.payload.x, task.payload.y)
        self.store.delete_task(task_id)
        self.store.clear_staged_move(unit.id)
        return _ok(f"[CMD] REQUEST APPROVED: {unit.callsign} EN ROUTE", unit_id=unit.id)

    def deny_request(self, role: Role, task_id: str) -> Advisory:
        """Drop the request; any staged move is left for the squad to rework."""
        denied = self._require_commander(role)
        if denied:
            return denied
        task = self.store.get_task(task_id)
        if task is None or task.type != TaskType.REQUEST:
            return _not_found(f"[SYSTEM] NO MOVE REQUEST {task_id}")
        self.store.delete_task(task_id)
        return _ok("[CMD] REQUEST DENIED", "danger", task_id=task_id)

    # ------------------------------------------------------------------
    # Direct execution
    # ------------------------------------------------------------------

    def _launch(self, unit: Unit, move: StagedMove) -> None:
        unit.speed = self.speed_tiers.get(move.speed or SpeedTier.NORMAL,
                                          self.speed_tiers[SpeedTier.NORMAL])
        if len(move.waypoints) > 1:
            self.motion.set_path(unit, move.waypoints)
        else:
            self.motion.set_target(unit, move.x, move.y)

    def execute_staged_move(self, role: Role, unit_id: str) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        move = self.store.get_staged_move(unit_id)
        unit = self._unit_or_none(unit_id)
        if move is None or unit is None:
            return _not_found(f"[SYSTEM] NO STAGED MOVE FOR {unit_id}")
        if unit.status == UnitStatus.DESTROYED:
            return _rejected(f"[DENIED] UNIT {unit.callsign} IS DESTROYED")

        self._launch(unit, move)
        self.store.clear_staged_move(unit_id)
        return _ok(f"[EXECUTE] {unit.callsign} MOVING TO STAGED COORDS",
                   unit_id=unit_id, speed=unit.speed)

    def execute_all_staged_moves(self, role: Role) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        if not self.store.state.staged_moves:
            return _rejected("[WARNING] NO ORDERS TO EXECUTE", "warning")

        launched = []
        for move in list(self.store.state.staged_moves):
            unit = self._unit_or_none(move.unit_id)
            if unit is None or unit.status == UnitStatus.DESTROYED:
                continue
            self._launch(unit, move)
            self.store.clear_staged_move(move.unit_id)
            launched.append(unit.id)
        return _ok(f"[EXECUTE] {len(launched)} ORDER(S) CONFIRMED - MOVING ASSETS",
                   unit_ids=launched)

    # ------------------------------------------------------------------
    # Directives
    # ------------------------------------------------------------------

    def issue_directive(self, role: Role, title: str, priority: Optional[Priority],
                        squad_id: str) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        title = title.strip()
        if not title:
            return _rejected("[SYSTEM] DIRECTIVE NEEDS A TITLE", "warning")
        task = self.store.add_task(title, priority, squad_id, TaskType.DIRECTIVE)
        return _ok(f"[CMD] DIRECTIVE ISSUED TO {squad_id}", task_id=task.id)

    def _advance_task(self, role: Role, task_id: str, expected: TaskStatus,
                      new_status: TaskStatus) -> Advisory:
        denied = self._require_squad_lead(role)
        if denied:
            return denied
        task = self.store.get_task(task_id)
        if task is None or task.squad_id != role.squad_id:
            return _not_found(f"[SYSTEM] NO TASK {task_id} FOR SQUAD {role.squad_id}")
        if task.status != expected:
            return _rejected(f"[DENIED] TASK {task_id} IS {task.status.value}", "warning")
        self.store.update_task_status(task_id, new_status)
        return _ok(f"[OPS] TASK {new_status.value}: {task.title}", "success", task_id=task_id)

    def acknowledge_task(self, role: Role, task_id: str) -> Advisory:
        return self._advance_task(role, task_id, TaskStatus.PENDING, TaskStatus.ACKNOWLEDGED)

    def complete_task(self, role: Role, task_id: str) -> Advisory:
        return self._advance_task(role, task_id, TaskStatus.ACKNOWLEDGED, TaskStatus.COMPLETE)

    def delete_task(self, role: Role, task_id: str) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        if self.store.get_task(task_id) is None:
            return _not_found(f"[SYSTEM] NO TASK {task_id}")
        self.store.delete_task(task_id)
        return _ok(f"[CMD] TASK {task_id} DELETED", "danger", task_id=task_id)

    # ------------------------------------------------------------------
    # Unit and squad administration
    # ------------------------------------------------------------------

    def add_unit(self, role: Role, unit_type: str = "SCOUT", x: float = 50, y: float = 50,
                 callsign: Optional[str] = None, squad: str = "BRAVO",
                 unit_id: Optional[str] = None, name: Optional[str] = None) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        unit_id = unit_id or self.store.new_unit_id()
        if self._unit_or_none(unit_id) is not None:
            return _rejected(f"[DENIED] ASSET {unit_id} ALREADY EXISTS", "warning")
        callsign = callsign or f"POLAR-{len(self.store.state.units) + 1}"
        self.store.add_unit(Unit(id=unit_id, type=unit_type, x=x, y=y, callsign=callsign,
                                 squad=squad, status=UnitStatus.ACTIVE, name=name))
        return _ok(f"[SYSTEM] NEW ASSET DEPLOYED: {callsign}", unit_id=unit_id)

    def delete_unit(self, role: Role, unit_id: str) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        if self._unit_or_none(unit_id) is None:
            return _not_found(f"[SYSTEM] UNKNOWN ASSET {unit_id}")
        self.store.delete_unit(unit_id)
        return _ok(f"[ADMIN] ASSET DELETED: {unit_id}", "danger", unit_id=unit_id)

    def set_unit_status(self, role: Role, unit_id: str, status: UnitStatus) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        if self._unit_or_none(unit_id) is None:
            return _not_found(f"[SYSTEM] UNKNOWN ASSET {unit_id}")
        if status == UnitStatus.MOVING:
            return _rejected("[DENIED] MOVING IS SET BY ORDERS ONLY", "warning")
        self.store.update_unit_status(unit_id, status)
        return _ok(f"[ADMIN] UNIT STATUS UPDATED: {status.value}", "danger", unit_id=unit_id)

    def update_unit_details(self, role: Role, unit_id: str, name: Optional[str] = None,
                            unit_type: Optional[str] = None,
                            callsign: Optional[str] = None) -> Advisory:
        """Edit any subset of name, type and callsign."""
        denied = self._require_commander(role)
        if denied:
            return denied
        unit = self._unit_or_none(unit_id)
        if unit is None:
            return _not_found(f"[SYSTEM] UNKNOWN ASSET {unit_id}")
        changed = [k for k, v in (("name", name), ("type", unit_type), ("callsign", callsign))
                   if v is not None]
        self.store.update_unit_details(
            unit_id,
            name if name is not None else unit.display_name,
            unit_type if unit_type is not None else unit.type,
            callsign if callsign is not None else unit.callsign,
        )
        return _ok(f"[ADMIN] UNIT DETAILS UPDATED: {', '.join(changed).upper() or 'NONE'}",
                   "warning", unit_id=unit_id)

    def reassign_unit_squad(self, role: Role, unit_id: str, squad_id: str) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        if self._unit_or_none(unit_id) is None:
            return _not_found(f"[SYSTEM] UNKNOWN ASSET {unit_id}")
        if self.store.get_squad(squad_id) is None:
            logger.warning("[Workflow] %s assigned to unregistered squad %s", unit_id, squad_id)
        self.store.set_unit_squad(unit_id, squad_id)
        return _ok(f"[CMD] ASSET {unit_id} REASSIGNED TO {squad_id}", "warning", unit_id=unit_id)

    def add_squad(self, role: Role, squad_id: str, color: str) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        if self.store.get_squad(squad_id) is not None:
            return _rejected(f"[DENIED] SQUAD {squad_id} ALREADY EXISTS", "warning")
        self.store.add_squad(squad_id, color)
        return _ok(f"[CMD] SQUAD {squad_id} FORMED", squad_id=squad_id)

    def set_squad_color(self, role: Role, squad_id: str, color: str) -> Advisory:
        denied = self._require_commander(role)
        if denied:
            return denied
        if self.store.get_squad(squad_id) is None:
            return _not_found(f"[SYSTEM] UNKNOWN SQUAD {squad_id}")
        self.store.set_squad_color(squad_id, color)
        return _ok(f"[CMD] SQUAD {squad_id} COLOR SET", squad_id=squad_id)
