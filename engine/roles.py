"""Acting roles of a command context.

A role is one of three variants. The persisted form is a plain tag:
``COMMANDER``, ``SQUAD-<squad id>`` or ``OBSERVER``.
"""
from dataclasses import dataclass
from typing import Union

SQUAD_PREFIX = "SQUAD-"

@dataclass(frozen=True)
class Commander:
    """Central authority: approves, denies and executes orders."""

@dataclass(frozen=True)
class SquadLead:
    """Lead of a single squad: stages moves and submits requests."""
    squad_id: str

@dataclass(frozen=True)
class Observer:
    """Read-only view of the whole picture."""

Role = Union[Commander, SquadLead, Observer]

def parse_role(tag: str) -> Role:
    """Parse a persisted role tag, raising ValueError on anything unknown."""
    cleaned = tag.strip()
    upper = cleaned.upper()
    if upper == "COMMANDER":
        return Commander()
    if upper == "OBSERVER":
        return Observer()
    if upper.startswith(SQUAD_PREFIX) and len(cleaned) > len(SQUAD_PREFIX):
        return SquadLead(cleaned[len(SQUAD_PREFIX):])
    raise ValueError(f"Unknown role: {tag!r}")

def role_tag(role: Role) -> str:
    if isinstance(role, Commander):
        return "COMMANDER"
    if isinstance(role, SquadLead):
        return f"{SQUAD_PREFIX}{role.squad_id}"
    if isinstance(role, Observer):
        return "OBSERVER"
    raise TypeError(f"Not a role: {role!r}")

def role_title(role: Role) -> str:
    """Rank shown in the identity badge."""
    if isinstance(role, Commander):
        return "COMMANDER"
    if isinstance(role, SquadLead):
        return f"SQUAD {role.squad_id} LEADER"
    if isinstance(role, Observer):
        return "TACTICAL OBSERVER"
    raise TypeError(f"Not a role: {role!r}")

def can_write(role: Role) -> bool:
    if isinstance(role, (Commander, SquadLead)):
        return True
    if isinstance(role, Observer):
        return False
    raise TypeError(f"Not a role: {role!r}")
