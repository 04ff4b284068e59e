from typing import Optional

from pydantic import BaseModel, Field

from engine.model import Priority, SpeedTier, UnitStatus

class StartRequest(BaseModel):
    """Session start request schema."""
    seed: Optional[int] = None
    reset: bool = False  # Replace whatever is in storage with the starter picture

class RoleIn(BaseModel):
    role: str  # COMMANDER, SQUAD-<id> or OBSERVER

class StageMoveIn(BaseModel):
    """Stage (or with append, extend) a move for one unit."""
    unit_id: str
    x: float
    y: float
    append: bool = False

class SpeedIn(BaseModel):
    speed: SpeedTier

class DirectiveIn(BaseModel):
    title: str = Field(min_length=1)
    priority: Optional[Priority] = None
    squad_id: str

class UnitIn(BaseModel):
    """New unit; omitted fields fall back to the deployment defaults."""
    id: Optional[str] = None
    type: str = "SCOUT"
    x: float = 50
    y: float = 50
    callsign: Optional[str] = None
    squad: str = "BRAVO"
    name: Optional[str] = None

class UnitDetailsIn(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    callsign: Optional[str] = None

class UnitStatusIn(BaseModel):
    status: UnitStatus

class SquadAssignIn(BaseModel):
    squad: str

class SquadIn(BaseModel):
    id: str = Field(min_length=1)
    color: str

class SquadColorIn(BaseModel):
    color: str

class AdvisoryOut(BaseModel):
    accepted: bool
    message: str
    level: str
    reason: str
    data: dict = Field(default_factory=dict)

class EventsResponse(BaseModel):
    """Events response schema."""
    next_offset: int
    events: list[dict]
