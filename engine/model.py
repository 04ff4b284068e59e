from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

from .roles import Commander, Role

Position = Tuple[float, float]  # (x, y) in map units

class UnitStatus(str, Enum):
    """Lifecycle status of a unit"""
    ACTIVE = "ACTIVE"
    MOVING = "MOVING"          # Only while a target is set
    POSITIONED = "POSITIONED"  # Arrived at the last ordered point
    DESTROYED = "DESTROYED"    # Reversible, unlike deletion

class TaskStatus(str, Enum):
    """Task lifecycle: PENDING -> ACKNOWLEDGED -> COMPLETE"""
    PENDING = "PENDING"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    COMPLETE = "COMPLETE"

class TaskType(str, Enum):
    """Direction of a task through the chain of command"""
    DIRECTIVE = "DIRECTIVE"  # Commander -> squad
    REQUEST = "REQUEST"      # Squad -> commander

class Priority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

class SpeedTier(str, Enum):
    """Speed override carried by a staged move"""
    SLOW = "SLOW"
    NORMAL = "NORMAL"
    FAST = "FAST"

# Distance units per tick applied when a staged move is executed
SPEED_TIERS: Dict[SpeedTier, float] = {
    SpeedTier.SLOW: 0.3,
    SpeedTier.NORMAL: 0.8,
    SpeedTier.FAST: 2.0,
}

MAP_SIZE = 1000.0  # Square operations area, origin at the top-left corner
SNAP_THRESHOLD = 2.0
DEFAULT_SPEED_BAND: Tuple[float, float] = (0.5, 1.0)
COMMAND_SQUAD = "COMMAND"

@dataclass
class Squad:
    id: str
    color: str

@dataclass
class Unit:
    id: str
    type: str
    x: float
    y: float
    callsign: str
    squad: str = "ALPHA"
    status: UnitStatus = UnitStatus.ACTIVE
    name: Optional[str] = None
    speed: Optional[float] = None  # Filled from the speed band by the store
    target: Optional[Position] = None
    path: Deque[Position] = field(default_factory=deque)  # Remaining waypoints, FIFO

    @property
    def pos(self) -> Position:
        return (self.x, self.y)

    @property
    def display_name(self) -> str:
        return self.name or self.id

@dataclass
class MovePayload:
    """Unit and destination attached to a move-related task"""
    unit_id: str
    x: float
    y: float

@dataclass
class Task:
    id: str
    title: str
    priority: Optional[Priority]
    status: TaskStatus
    squad_id: str
    type: TaskType
    timestamp: int
    payload: Optional[MovePayload] = None
    notification: bool = True  # Cleared on acknowledgement

    def is_pending_request_for(self, unit_id: str) -> bool:
        return (self.type == TaskType.REQUEST
                and self.status == TaskStatus.PENDING
                and self.payload is not None
                and self.payload.unit_id == unit_id)

@dataclass
class StagedMove:
    """Provisional, not yet ordered movement plan for one unit"""
    unit_id: str
    x: float
    y: float
    waypoints: List[Position] = field(default_factory=list)
    speed: Optional[SpeedTier] = None

@dataclass
class Event:
    kind: str
    ts_ms: int
    data: Dict

@dataclass
class SharedState:
    tasks: List[Task] = field(default_factory=list)
    staged_moves: List[StagedMove] = field(default_factory=list)
    units: List[Unit] = field(default_factory=list)
    squads: List[Squad] = field(default_factory=list)
    current_role: Role = field(default_factory=Commander)
