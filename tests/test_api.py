"""Test the FastAPI endpoints."""
import asyncio
from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient

from api.app import app, shutdown

COMMANDER = {"X-Role": "COMMANDER"}
BRAVO = {"X-Role": "SQUAD-BRAVO"}
OBSERVER = {"X-Role": "OBSERVER"}


@asynccontextmanager
async def started_client(tmp_path, monkeypatch):
    """Client against a freshly started session stored under tmp_path."""
    monkeypatch.setenv("POLAROPS_STORAGE_DIR", str(tmp_path))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.post("/session/start", json={"seed": 7, "reset": True})
        assert response.status_code == 200
        try:
            yield ac
        finally:
            await shutdown()


async def unit_state(ac, unit_id):
    state = (await ac.get("/state")).json()
    return next(u for u in state["units"] if u["id"] == unit_id)


@pytest.mark.asyncio
async def test_start_session(tmp_path, monkeypatch):
    """Test starting a new session."""
    async with started_client(tmp_path, monkeypatch) as ac:
        response = await ac.post("/session/start", json={"seed": 123})
        assert response.status_code == 200
        assert response.json() == {"session_id": "local", "storage_key": "POLAR_OPS_DATA"}
    assert (tmp_path / "POLAR_OPS_DATA.json").exists()


@pytest.mark.asyncio
async def test_get_state(tmp_path, monkeypatch):
    """Test getting the shared state."""
    async with started_client(tmp_path, monkeypatch) as ac:
        response = await ac.get("/state")

    assert response.status_code == 200
    data = response.json()
    assert len(data["units"]) == 3
    assert len(data["squads"]) == 2
    assert data["tasks"] == []
    assert data["stagedMoves"] == []
    assert data["currentRole"] == "COMMANDER"
    assert "tsMs" in data


@pytest.mark.asyncio
async def test_request_and_deny(tmp_path, monkeypatch):
    """BRAVO requests a move for SF-12, the commander denies it."""
    async with started_client(tmp_path, monkeypatch) as ac:
        response = await ac.post("/staged-moves", headers=BRAVO,
                                 json={"unit_id": "SF-12", "x": 600, "y": 400})
        assert response.status_code == 200
        assert response.json()["accepted"] is True

        response = await ac.post("/requests/submit", headers=BRAVO)
        assert response.status_code == 200

        items = (await ac.get("/tasks", headers=COMMANDER)).json()
        assert len(items) == 1
        request = items[0]
        assert request["type"] == "REQUEST"
        assert request["squadId"] == "COMMAND"
        assert request["payload"] == {"unitId": "SF-12", "x": 600, "y": 400}

        response = await ac.post(f"/requests/{request['id']}/deny", headers=COMMANDER)
        assert response.status_code == 200

        assert (await ac.get("/tasks", headers=COMMANDER)).json()[0]["kind"] == "STAGED"
        bravo_items = (await ac.get("/tasks", headers=BRAVO)).json()
        assert [i["id"] for i in bravo_items] == ["STAGED-SF-12"]


@pytest.mark.asyncio
async def test_approve_request(tmp_path, monkeypatch):
    async with started_client(tmp_path, monkeypatch) as ac:
        await ac.post("/staged-moves", headers=BRAVO,
                      json={"unit_id": "SF-12", "x": 600, "y": 400})
        await ac.post("/requests/submit", headers=BRAVO)
        request = (await ac.get("/tasks", headers=COMMANDER)).json()[0]

        response = await ac.post(f"/requests/{request['id']}/approve", headers=COMMANDER)
        assert response.status_code == 200

        unit = await unit_state(ac, "SF-12")
        assert unit["status"] == "MOVING"
        assert unit["target"] == {"x": 600, "y": 400}
        state = (await ac.get("/state")).json()
        assert state["tasks"] == []
        assert state["stagedMoves"] == []


@pytest.mark.asyncio
async def test_policy_violations_map_to_http_errors(tmp_path, monkeypatch):
    async with started_client(tmp_path, monkeypatch) as ac:
        response = await ac.post("/staged-moves", headers=OBSERVER,
                                 json={"unit_id": "SC-01", "x": 1, "y": 1})
        assert response.status_code == 403

        response = await ac.put("/units/SD-05/status", headers=COMMANDER,
                                json={"status": "DESTROYED"})
        assert response.status_code == 200
        response = await ac.post("/staged-moves", headers=COMMANDER,
                                 json={"unit_id": "SD-05", "x": 1, "y": 1})
        assert response.status_code == 409
        assert "DESTROYED" in response.json()["detail"]

        response = await ac.post("/requests/TASK-0/approve", headers=COMMANDER)
        assert response.status_code == 404

        response = await ac.get("/tasks", headers={"X-Role": "GENERAL"})
        assert response.status_code == 400


@pytest.mark.asyncio
async def test_execute_fast_move_reaches_target(tmp_path, monkeypatch):
    """Stage SC-01, execute FAST, and let the tick loop carry it home."""
    async with started_client(tmp_path, monkeypatch) as ac:
        await ac.post("/time-control", params={"time_compression": 1000})
        await ac.post("/staged-moves", headers=COMMANDER,
                      json={"unit_id": "SC-01", "x": 500, "y": 300})
        response = await ac.put("/staged-moves/SC-01/speed", headers=COMMANDER,
                                json={"speed": "FAST"})
        assert response.status_code == 200
        response = await ac.post("/staged-moves/SC-01/execute", headers=COMMANDER)
        assert response.status_code == 200

        unit = await unit_state(ac, "SC-01")
        for _ in range(400):
            if unit["status"] == "POSITIONED":
                break
            await asyncio.sleep(0.01)
            unit = await unit_state(ac, "SC-01")

        assert unit["status"] == "POSITIONED"
        assert (unit["x"], unit["y"]) == (500, 300)

        events = (await ac.get("/events")).json()["events"]
        assert any(e["kind"] == "Arrived" and e["data"]["unit_id"] == "SC-01" for e in events)


@pytest.mark.asyncio
async def test_directive_flow(tmp_path, monkeypatch):
    async with started_client(tmp_path, monkeypatch) as ac:
        response = await ac.post("/tasks", headers=COMMANDER,
                                 json={"title": "SCREEN EAST", "priority": "HIGH",
                                       "squad_id": "BRAVO"})
        task_id = response.json()["data"]["task_id"]

        response = await ac.post(f"/tasks/{task_id}/acknowledge", headers=BRAVO)
        assert response.status_code == 200
        response = await ac.post(f"/tasks/{task_id}/complete", headers=BRAVO)
        assert response.status_code == 200

        history = (await ac.get("/tasks", headers=BRAVO, params={"tab": "HISTORY"})).json()
        assert [t["status"] for t in history] == ["COMPLETE"]

        response = await ac.delete(f"/tasks/{task_id}", headers=BRAVO)
        assert response.status_code == 403
        response = await ac.delete(f"/tasks/{task_id}", headers=COMMANDER)
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_units_roster_search_and_intel(tmp_path, monkeypatch):
    async with started_client(tmp_path, monkeypatch) as ac:
        response = await ac.post("/units", headers=COMMANDER,
                                 json={"id": "UN-77", "callsign": "POLAR-77"})
        assert response.status_code == 200

        roster = (await ac.get("/units", headers=BRAVO)).json()
        assert {u["id"] for u in roster} == {"SF-12", "UN-77"}

        found = (await ac.get("/units/search", params={"q": "polar-77"})).json()
        assert found["id"] == "UN-77"
        missing = await ac.get("/units/search", params={"q": "zzz"})
        assert missing.status_code == 404

        response = await ac.delete("/units/UN-77", headers=COMMANDER)
        assert response.status_code == 200

        intel = (await ac.get("/intel")).json()
        assert intel[0]["message"] == "[ADMIN] ASSET DELETED: UN-77"


@pytest.mark.asyncio
async def test_role_switch(tmp_path, monkeypatch):
    async with started_client(tmp_path, monkeypatch) as ac:
        response = await ac.put("/state/role", json={"role": "SQUAD-ALPHA"})
        assert response.json() == {"currentRole": "SQUAD-ALPHA",
                                   "roleTitle": "SQUAD ALPHA LEADER"}

        # Without a header the context's own role applies
        response = await ac.post("/staged-moves/execute")
        assert response.status_code == 403
