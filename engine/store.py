import json
import logging
import time
from typing import Any, Callable, List, Optional, Protocol, Tuple

from .channel import StateChannel
from .model import (
    COMMAND_SQUAD, DEFAULT_SPEED_BAND, MovePayload, Position, Priority, SharedState,
    SpeedTier, Squad, StagedMove, Task, TaskStatus, TaskType, Unit, UnitStatus,
)
from .rng import DRNG
from .roles import Role, role_tag
from .snapshot import default_state, from_snapshot, is_valid_snapshot, to_snapshot

logger = logging.getLogger(__name__)

Listener = Callable[[SharedState], None]

class SnapshotPort(Protocol):
    """Durable slot shared with other contexts on the same storage partition."""

    def load_snapshot(self) -> Optional[str]: ...

    def publish_snapshot(self, snapshot: dict) -> None: ...

    def on_remote_snapshot(self, callback: Callable[[str], None]) -> None: ...

def _now_ms() -> int:
    return int(time.time() * 1000)

class SharedStateStore:
    """Single authoritative holder of the shared command picture.

    Every mutation persists the full snapshot through the port and then
    notifies subscribers. Operations on unknown ids are silent no-ops.
    """

    def __init__(self, sync: Optional[SnapshotPort] = None, rng: Optional[DRNG] = None,
                 speed_band: Tuple[float, float] = DEFAULT_SPEED_BAND,
                 clock: Callable[[], int] = _now_ms):
        self._sync = sync
        self._rng = rng or DRNG(0)
        self._speed_band = speed_band
        self._clock = clock
        self._last_task_ms = 0
        self._channel: StateChannel[SharedState] = StateChannel()
        self.state = self._load_state()
        if sync is not None:
            sync.on_remote_snapshot(self._apply_remote)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _new_speed(self) -> float:
        return self._rng.speed(self._speed_band)

    def _parse(self, raw: str) -> Optional[SharedState]:
        """Decode a raw snapshot, or None when it fails validation."""
        try:
            data: Any = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("[Store] Snapshot is not valid JSON: %s", e)
            return None
        if not is_valid_snapshot(data):
            logger.info("[Store] Snapshot lacks squads/units, ignoring it")
            return None
        try:
            return from_snapshot(data, self._new_speed)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("[Store] Snapshot has malformed entries: %r", e)
            return None

    def _load_state(self) -> SharedState:
        raw = self._sync.load_snapshot() if self._sync is not None else None
        if raw:
            state = self._parse(raw)
            if state is not None:
                return state
            logger.warning("[Store] Falling back to default state")
        return default_state(self._new_speed)

    def _apply_remote(self, raw: str) -> None:
        """Replace local state wholesale with another context's snapshot."""
        state = self._parse(raw)
        if state is None:
            return
        logger.info("[Store] Applied remote snapshot (%d units, %d tasks)",
                    len(state.units), len(state.tasks))
        self.state = state
        self._channel.publish(self.state)

    def save_state(self) -> None:
        if self._sync is not None:
            self._sync.publish_snapshot(to_snapshot(self.state))
        self._channel.publish(self.state)

    def reset(self) -> None:
        """Discard everything and restore the starter picture."""
        self.state = default_state(self._new_speed)
        self.save_state()

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Call back now with the current state and again after every change."""
        unsubscribe = self._channel.subscribe(callback)
        callback(self.state)
        return unsubscribe

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_unit(self, unit_id: str) -> Optional[Unit]:
        return next((u for u in self.state.units if u.id == unit_id), None)

    def get_squad(self, squad_id: str) -> Optional[Squad]:
        return next((s for s in self.state.squads if s.id == squad_id), None)

    def get_task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.state.tasks if t.id == task_id), None)

    def get_staged_move(self, unit_id: str) -> Optional[StagedMove]:
        return next((m for m in self.state.staged_moves if m.unit_id == unit_id), None)

    def get_tasks_for_squad(self, squad_id: str) -> List[Task]:
        return [t for t in self.state.tasks if t.squad_id == squad_id]

    def find_unit(self, query: str) -> Optional[Unit]:
        """First unit whose id, callsign or name contains query (case-insensitive)."""
        query = query.strip().upper()
        if not query:
            return None
        for u in self.state.units:
            if (query in u.id.upper() or query in u.callsign.upper()
                    or (u.name and query in u.name.upper())):
                return u
        return None

    def new_unit_id(self) -> str:
        while True:
            candidate = f"UN-{self._rng.integer(0, 1000)}"
            if self.get_unit(candidate) is None:
                return candidate

    # ------------------------------------------------------------------
    # Squads and roles
    # ------------------------------------------------------------------

    def add_squad(self, squad_id: str, color: str) -> None:
        if self.get_squad(squad_id) is not None:
            return
        self.state.squads.append(Squad(id=squad_id, color=color))
        self.save_state()

    def set_squad_color(self, squad_id: str, color: str) -> None:
        squad = self.get_squad(squad_id)
        if squad:
            squad.color = color
            self.save_state()

    def set_role(self, role: Role) -> None:
        self.state.current_role = role
        logger.info("[Store] Terminal re-configured for %s", role_tag(role))
        self.save_state()

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    def add_unit(self, unit: Unit) -> None:
        if self.get_unit(unit.id) is not None:
            logger.warning("[Store] Unit %s already exists", unit.id)
            return
        if not unit.name:
            unit.name = unit.id
        if unit.speed is None:
            unit.speed = self._new_speed()
        self.state.units.append(unit)
        self.save_state()

    def set_unit_squad(self, unit_id: str, squad_id: str) -> None:
        unit = self.get_unit(unit_id)
        if unit:
            unit.squad = squad_id
            self.save_state()

    def update_unit_position(self, unit_id: str, x: float, y: float) -> None:
        unit = self.get_unit(unit_id)
        if unit:
            unit.x = x
            unit.y = y
            self.save_state()

    def update_unit_details(self, unit_id: str, name: str, unit_type: str, callsign: str) -> None:
        unit = self.get_unit(unit_id)
        if unit:
            unit.name = name
            unit.type = unit_type
            unit.callsign = callsign
            self.save_state()

    def update_unit_status(self, unit_id: str, status: UnitStatus) -> None:
        """Set a unit's status; any status other than MOVING halts it."""
        unit = self.get_unit(unit_id)
        if not unit:
            return
        if status == UnitStatus.MOVING:
            if unit.target is None:
                logger.warning("[Store] Refusing MOVING for %s without a target", unit_id)
                return
        else:
            unit.target = None
            unit.path.clear()
        unit.status = status
        self.save_state()

    def delete_unit(self, unit_id: str) -> None:
        """Remove a unit along with its staged move and tasks referencing it."""
        before = (len(self.state.units), len(self.state.staged_moves), len(self.state.tasks))
        self.state.units = [u for u in self.state.units if u.id != unit_id]
        self.state.staged_moves = [m for m in self.state.staged_moves if m.unit_id != unit_id]
        self.state.tasks = [t for t in self.state.tasks
                            if t.payload is None or t.payload.unit_id != unit_id]
        after = (len(self.state.units), len(self.state.staged_moves), len(self.state.tasks))
        if before != after:
            self.save_state()

    # ------------------------------------------------------------------
    # Staged moves
    # ------------------------------------------------------------------

    def update_staged_move(self, unit_id: str, x: float, y: float, append: bool = False) -> None:
        """Stage (x, y) for a unit, or append it as a waypoint to its existing plan."""
        if self.get_unit(unit_id) is None:
            return
        existing = self.get_staged_move(unit_id)
        speed: Optional[SpeedTier] = None
        if append and existing:
            waypoints: List[Position] = list(existing.waypoints) or [(existing.x, existing.y)]
            waypoints.append((x, y))
            speed = existing.speed
        else:
            waypoints = [(x, y)]

        self.state.staged_moves = [m for m in self.state.staged_moves if m.unit_id != unit_id]
        self.state.staged_moves.append(
            StagedMove(unit_id=unit_id, x=x, y=y, waypoints=waypoints, speed=speed))
        self.save_state()

    def set_staged_speed(self, unit_id: str, speed: SpeedTier) -> None:
        move = self.get_staged_move(unit_id)
        if move:
            move.speed = speed
            self.save_state()

    def clear_staged_move(self, unit_id: str) -> None:
        if self.get_staged_move(unit_id) is None:
            return
        self.state.staged_moves = [m for m in self.state.staged_moves if m.unit_id != unit_id]
        self.save_state()

    def clear_all_staged_moves(self) -> None:
        self.state.staged_moves = []
        self.save_state()

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _next_task_ms(self) -> int:
        # Ids are derived from the clock, so bump on same-millisecond creation
        ms = max(self._clock(), self._last_task_ms + 1)
        while self.get_task(f"TASK-{ms}") is not None:
            ms += 1
        self._last_task_ms = ms
        return ms

    def add_task(self, title: str, priority: Optional[Priority], squad_id: str,
                 task_type: TaskType = TaskType.DIRECTIVE,
                 payload: Optional[MovePayload] = None) -> Task:
        ms = self._next_task_ms()
        task = Task(
            id=f"TASK-{ms}",
            title=title,
            priority=priority,
            status=TaskStatus.PENDING,
            squad_id=squad_id,
            type=task_type,
            timestamp=ms,
            payload=payload,
            notification=True,
        )
        self.state.tasks.append(task)
        self.save_state()
        return task

    def add_move_request(self, unit: Unit, x: float, y: float) -> Task:
        """File a move request, superseding any pending request for the unit."""
        self.state.tasks = [t for t in self.state.tasks if not t.is_pending_request_for(unit.id)]
        return self.add_task(
            f"REQUEST: MOVE {unit.callsign} TO {x:.0f}, {y:.0f}",
            Priority.MEDIUM,
            COMMAND_SQUAD,
            TaskType.REQUEST,
            MovePayload(unit_id=unit.id, x=x, y=y),
        )

    def update_task_status(self, task_id: str, status: TaskStatus) -> None:
        task = self.get_task(task_id)
        if task:
            task.status = status
            if status == TaskStatus.ACKNOWLEDGED:
                task.notification = False
            self.save_state()

    def delete_task(self, task_id: str) -> None:
        if self.get_task(task_id) is None:
            return
        self.state.tasks = [t for t in self.state.tasks if t.id != task_id]
        self.save_state()
