import uuid

import pytest
import requests
from fastapi.testclient import TestClient

import api
import evaluation_client
from api import app

client = TestClient(app)

@pytest.fixture
def identity():
    return f"player-{uuid.uuid4().hex[:8]}"

@pytest.fixture(autouse=True)
def offline_evaluator(monkeypatch):
    def refuse(*args, **kwargs):
        raise requests.ConnectionError("evaluator offline")
    monkeypatch.setattr(evaluation_client.requests, "post", refuse)

def test_connect(identity):
    resp = client.post("/v1/sessions", json={"identity": identity})
    assert resp.status_code == 200
    data = resp.json()
    assert data["identity"] == identity
    assert data["balance"] == 10
    assert data["streak"] == 0
    assert data["state"] == "IDLE"

def test_full_round_with_fallback_verdict(identity):
    client.post("/v1/sessions", json={"identity": identity})

    resp = client.post(f"/v1/sessions/{identity}/rounds")
    assert resp.status_code == 200
    rnd = resp.json()
    assert rnd["prompt"]
    assert rnd["deadline_seconds"] == api._settings.round_seconds

    state = client.get(f"/v1/sessions/{identity}").json()
    assert state["state"] == "QUESTION_ACTIVE"
    assert state["prompt"] == rnd["prompt"]
    assert state["seconds_left"] > 0

    resp = client.post(f"/v1/sessions/{identity}/answer", json={"text": "A bus timetable from 1987"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["verdict"]["used_fallback"] is True
    assert "evaluator offline" in data["verdict"]["diagnostics"]["error"]
    expected_balance = 19 if data["verdict"]["is_winner"] else 9
    assert data["balance"] == expected_balance

    resp = client.post(f"/v1/sessions/{identity}/acknowledge")
    assert resp.json()["state"] == "IDLE"
    assert client.get(f"/v1/sessions/{identity}/balance").json()["balance"] == expected_balance

def test_second_round_while_active_conflicts(identity):
    client.post("/v1/sessions", json={"identity": identity})
    assert client.post(f"/v1/sessions/{identity}/rounds").status_code == 200
    resp = client.post(f"/v1/sessions/{identity}/rounds")
    assert resp.status_code == 409

def test_empty_answer_is_bad_request(identity):
    client.post("/v1/sessions", json={"identity": identity})
    client.post(f"/v1/sessions/{identity}/rounds")
    resp = client.post(f"/v1/sessions/{identity}/answer", json={"text": ""})
    assert resp.status_code == 400

def test_draft_is_recorded(identity):
    client.post("/v1/sessions", json={"identity": identity})
    client.post(f"/v1/sessions/{identity}/rounds")
    resp = client.put(f"/v1/sessions/{identity}/draft", json={"text": "thinking..."})
    assert resp.status_code == 200
    assert resp.json()["state"] == "QUESTION_ACTIVE"

def test_force_reset_mid_round(identity):
    client.post("/v1/sessions", json={"identity": identity})
    client.post(f"/v1/sessions/{identity}/rounds")

    resp = client.post(f"/v1/sessions/{identity}/reset")

    assert resp.status_code == 200
    data = resp.json()
    assert data["state"] == "IDLE"
    assert data["outcome"] == "cleared"
    assert data["sentinels"][0].startswith("reset_game_state_")

def test_unknown_session_is_404():
    assert client.get("/v1/sessions/nobody-here").status_code == 404
    assert client.post("/v1/sessions/nobody-here/rounds").status_code == 404

def test_shutdown_then_round_conflicts(identity):
    client.post("/v1/sessions", json={"identity": identity})
    resp = client.delete(f"/v1/sessions/{identity}")
    assert resp.json()["state"] == "TERMINATED"
    assert client.post(f"/v1/sessions/{identity}/rounds").status_code == 409
