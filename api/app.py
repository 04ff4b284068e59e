import logging
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from engine.roles import Role, parse_role, role_tag, role_title
from engine.snapshot import unit_to_dict
from engine.views import PendingItem, pending_items, roster_status, unit_roster
from runtime.config import load_settings
from runtime.session import Session, build_session
from .schemas import (
    AdvisoryOut, DirectiveIn, EventsResponse, RoleIn, SpeedIn, SquadAssignIn, SquadColorIn,
    SquadIn, StageMoveIn, StartRequest, UnitDetailsIn, UnitIn, UnitStatusIn,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Polar Ops Command API")
session: Session | None = None

# Enable CORS for development (map client runs on a different port)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:5174", "http://localhost:5175"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_FOR_REASON = {"forbidden": 403, "not_found": 404, "rejected": 409}

def _require_session() -> Session:
    if not session:
        raise HTTPException(400, "Session not started")
    return session

def acting_role(x_role: Optional[str] = Header(default=None)) -> Role:
    """Role from the X-Role header, else the context's current role."""
    s = _require_session()
    if x_role is None:
        return s.store.state.current_role
    try:
        return parse_role(x_role)
    except ValueError as e:
        raise HTTPException(400, str(e))

async def _run(command, *args, **kwargs) -> AdvisoryOut:
    """Run a workflow command and turn a rejected advisory into an HTTP error."""
    s = _require_session()
    advisory = await s.runner.run_command(command, *args, **kwargs)
    if not advisory.accepted:
        raise HTTPException(_STATUS_FOR_REASON.get(advisory.reason, 400), advisory.message)
    return AdvisoryOut(**asdict(advisory))

def _item_out(item: PendingItem) -> dict:
    return {
        "id": item.id,
        "kind": item.kind,
        "title": item.title,
        "status": item.status,
        "squadId": item.squad_id,
        "priority": item.priority.value if item.priority else None,
        "type": item.type.value if item.type else None,
        "payload": ({"unitId": item.payload.unit_id, "x": item.payload.x, "y": item.payload.y}
                    if item.payload else None),
        "notification": item.notification,
        "timestamp": item.timestamp,
    }

async def _start(seed: Optional[int] = None, reset: bool = False) -> None:
    global session
    s = build_session(load_settings(), seed=seed)
    if reset:
        s.store.reset()
    await s.runner.start()
    session = s
    logger.info("[API] Session started (seed=%s, reset=%s)", seed, reset)

@app.get("/")
async def root():
    """API root endpoint."""
    return {
        "message": "Polar Ops Command API",
        "docs": "/docs",
        "version": "1.0"
    }

@app.on_event("startup")
async def startup():
    """Build the session and start ticking on app startup."""
    await _start()

@app.on_event("shutdown")
async def shutdown():
    """Stop the tick loop on app shutdown."""
    if session:
        await session.runner.stop()

@app.post("/session/start")
async def start_session(req: StartRequest):
    """Restart the session, optionally with a new seed or a fresh picture."""
    await shutdown()
    await _start(req.seed, req.reset)
    return {"session_id": "local", "storage_key": session.settings.storage_key}

# ----------------------------------------------------------------------
# State and views
# ----------------------------------------------------------------------

@app.get("/state")
async def get_state():
    """Full shared state as a snapshot document."""
    s = _require_session()
    snap = await s.runner.snapshot()
    snap["tsMs"] = s.motion.ts_ms
    snap["roleTitle"] = role_title(s.store.state.current_role)
    return snap

@app.put("/state/role")
async def set_role(body: RoleIn):
    """Switch the acting role of this context."""
    s = _require_session()
    try:
        role = parse_role(body.role)
    except ValueError as e:
        raise HTTPException(400, str(e))
    s.store.set_role(role)
    return {"currentRole": role_tag(role), "roleTitle": role_title(role)}

@app.get("/tasks")
async def get_tasks(tab: str = "ACTIVE", role: Role = Depends(acting_role)):
    """Tasks and staged moves visible to the acting role."""
    s = _require_session()
    return [_item_out(i) for i in pending_items(s.store.state, role, tab)]

@app.get("/units")
async def get_units(tab: str = "ACTIVE", role: Role = Depends(acting_role)):
    """Unit roster for the acting role (tab ACTIVE or LOSSES)."""
    s = _require_session()
    state = s.store.state
    return [dict(unit_to_dict(u), rosterStatus=roster_status(state, u))
            for u in unit_roster(state, role, tab)]

@app.get("/units/search")
async def search_units(q: str):
    """Locate a unit by id, callsign or name."""
    s = _require_session()
    unit = s.store.find_unit(q)
    if unit is None:
        raise HTTPException(404, f"[SEARCH] SIGNAL TRACE FAILED: \"{q.upper()}\"")
    return unit_to_dict(unit)

# ----------------------------------------------------------------------
# Staged moves and requests
# ----------------------------------------------------------------------

@app.post("/staged-moves")
async def stage_move(body: StageMoveIn, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.stage_move, role, body.unit_id,
                      body.x, body.y, body.append)

@app.put("/staged-moves/{unit_id}/speed")
async def set_staged_speed(unit_id: str, body: SpeedIn, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.set_staged_speed, role, unit_id, body.speed)

@app.delete("/staged-moves/{unit_id}")
async def clear_staged_move(unit_id: str, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.clear_unit_staged_move, role, unit_id)

@app.delete("/staged-moves")
async def clear_all_staged_moves(role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.clear_all_staged_moves, role)

@app.delete("/squad/staged-moves")
async def clear_squad_orders(role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.clear_squad_orders, role)

@app.post("/staged-moves/execute")
async def execute_all(role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.execute_all_staged_moves, role)

@app.post("/staged-moves/{unit_id}/execute")
async def execute_staged_move(unit_id: str, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.execute_staged_move, role, unit_id)

@app.post("/staged-moves/{unit_id}/request")
async def request_unit_move(unit_id: str, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.request_unit_move, role, unit_id)

@app.post("/requests/submit")
async def submit_requests(role: Role = Depends(acting_role)):
    """Submit every staged move of the lead's squad as a request."""
    return await _run(_require_session().workflow.submit_squad_requests, role)

@app.post("/requests/{task_id}/approve")
async def approve_request(task_id: str, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.approve_request, role, task_id)

@app.post("/requests/{task_id}/deny")
async def deny_request(task_id: str, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.deny_request, role, task_id)

# ----------------------------------------------------------------------
# Directives
# ----------------------------------------------------------------------

@app.post("/tasks")
async def issue_directive(body: DirectiveIn, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.issue_directive, role, body.title,
                      body.priority, body.squad_id)

@app.post("/tasks/{task_id}/acknowledge")
async def acknowledge_task(task_id: str, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.acknowledge_task, role, task_id)

@app.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.complete_task, role, task_id)

@app.delete("/tasks/{task_id}")
async def delete_task(task_id: str, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.delete_task, role, task_id)

# ----------------------------------------------------------------------
# Units and squads
# ----------------------------------------------------------------------

@app.post("/units")
async def add_unit(body: UnitIn, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.add_unit, role, body.type, body.x, body.y,
                      body.callsign, body.squad, body.id, body.name)

@app.delete("/units/{unit_id}")
async def delete_unit(unit_id: str, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.delete_unit, role, unit_id)

@app.put("/units/{unit_id}/status")
async def set_unit_status(unit_id: str, body: UnitStatusIn, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.set_unit_status, role, unit_id, body.status)

@app.patch("/units/{unit_id}")
async def update_unit(unit_id: str, body: UnitDetailsIn, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.update_unit_details, role, unit_id,
                      body.name, body.type, body.callsign)

@app.put("/units/{unit_id}/squad")
async def reassign_unit(unit_id: str, body: SquadAssignIn, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.reassign_unit_squad, role, unit_id, body.squad)

@app.post("/squads")
async def add_squad(body: SquadIn, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.add_squad, role, body.id, body.color)

@app.put("/squads/{squad_id}/color")
async def set_squad_color(squad_id: str, body: SquadColorIn, role: Role = Depends(acting_role)):
    return await _run(_require_session().workflow.set_squad_color, role, squad_id, body.color)

# ----------------------------------------------------------------------
# Events and time
# ----------------------------------------------------------------------

@app.get("/events")
async def get_events(since: int = 0, limit: int = 500):
    """Get events since offset."""
    s = _require_session()
    evts, next_offset = s.runner.events.since(since, limit)
    return EventsResponse(
        next_offset=next_offset,
        events=[{"kind": e.kind, "ts_ms": e.ts_ms, "data": e.data} for e in evts]
    )

@app.get("/intel")
async def get_intel(limit: int = 50):
    """Recent operator advisories, newest first."""
    s = _require_session()
    return [{"ts_ms": e.ts_ms, **e.data} for e in s.runner.events.intel(limit)]

@app.post("/time-control")
async def set_time_control(time_compression: float):
    """Set simulation time compression (1.0 = real-time, higher = faster)."""
    s = _require_session()
    s.runner.set_time_compression(time_compression)
    return {"time_compression": s.runner.time_compression}

@app.get("/time-control")
async def get_time_control():
    """Get current time compression setting."""
    s = _require_session()
    return {"time_compression": s.runner.time_compression}
