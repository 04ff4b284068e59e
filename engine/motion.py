import logging
import math
from collections import deque
from typing import Iterable, List

from .model import SNAP_THRESHOLD, Event, Position, Unit, UnitStatus
from .store import SharedStateStore

logger = logging.getLogger(__name__)

def distance_2d(pos1: Position, pos2: Position) -> float:
    """Calculate Euclidean distance between two 2D positions."""
    dx = pos2[0] - pos1[0]
    dy = pos2[1] - pos1[1]
    return math.sqrt(dx * dx + dy * dy)

class MotionEngine:
    """Per-tick kinematics for the units held by a store.

    Units are the store's own instances. Kinematic fields are mutated in
    place every tick; only arrival goes back through the store.
    """

    def __init__(self, store: SharedStateStore, snap_threshold: float = SNAP_THRESHOLD,
                 tick_ms: int = 100):
        self.store = store
        self.snap_threshold = snap_threshold
        self.tick_ms = tick_ms
        self.ts_ms = 0

    def set_target(self, unit: Unit, x: float, y: float) -> None:
        """Head straight for a single point, dropping any queued waypoints."""
        unit.path.clear()
        unit.target = (float(x), float(y))
        unit.status = UnitStatus.MOVING

    def set_path(self, unit: Unit, waypoints: Iterable[Position]) -> None:
        """Follow waypoints in the given order; an empty path is ignored."""
        queue = deque((float(px), float(py)) for px, py in waypoints)
        if not queue:
            return
        unit.target = queue.popleft()
        unit.path = queue
        unit.status = UnitStatus.MOVING

    def _advance(self, u: Unit) -> List[Event]:
        evts: List[Event] = []
        tx, ty = u.target
        dx = tx - u.x
        dy = ty - u.y
        dist = math.sqrt(dx * dx + dy * dy)

        if dist < self.snap_threshold:
            # Warp onto the point so no floating-point residue accumulates
            u.x, u.y = tx, ty
            if u.path:
                u.target = u.path.popleft()
                evts.append(Event("WaypointReached", self.ts_ms,
                                  {"unit_id": u.id, "at": [tx, ty], "remaining": len(u.path) + 1}))
            else:
                u.target = None
                evts.append(Event("Arrived", self.ts_ms, {"unit_id": u.id, "at": [tx, ty]}))
                logger.info("[Motion] %s positioned at (%.0f, %.0f)", u.callsign, tx, ty)
                self.store.update_unit_status(u.id, UnitStatus.POSITIONED)
            return evts

        step = min(u.speed, dist)
        u.x += (dx / dist) * step
        u.y += (dy / dist) * step
        return evts

    def step(self) -> List[Event]:
        """Advance every moving unit by one tick."""
        evts: List[Event] = []
        for u in list(self.store.state.units):
            if u.target is None:
                continue
            evts += self._advance(u)
        self.ts_ms += self.tick_ms
        return evts

    def run_until_idle(self, max_ticks: int = 100_000) -> int:
        """Step until nothing is moving; returns the number of ticks taken."""
        ticks = 0
        while ticks < max_ticks and any(u.target is not None for u in self.store.state.units):
            self.step()
            ticks += 1
        return ticks
