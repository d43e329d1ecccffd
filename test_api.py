"""
Tests for the CV Flow Engine REST API
=====================================
Drives the FastAPI application through its lifespan with the test client.
"""

import pytest
from fastapi.testclient import TestClient

from cvflow.api.rest.main import app


LOOPING_FLOW = {
    "nodes": [
        {"id": "s", "type": "start"},
        {"id": "loop", "type": "condition", "data": {"conditionType": "simple", "condition": {"rules": []}}}
    ],
    "edges": [
        {"id": "e1", "source": "s", "target": "loop"},
        {"id": "e2", "source": "loop", "target": "loop", "sourceHandle": "true"}
    ]
}


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _create(client, **body):
    response = client.post("/v1/sessions", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "total_sessions" in data["sessions"]


def test_flow_catalogue(client):
    assert "age_gate" in client.get("/v1/flows").json()
    assert client.get("/v1/flows/basic_cv").json()["name"] == "Basic CV Builder"
    assert client.get("/v1/flows/nope").status_code == 404


def test_validate_flow(client):
    response = client.post("/v1/flows/validate", json={"nodes": [], "edges": []})
    assert response.status_code == 200
    report = response.json()
    assert report["valid"] is False
    assert report["errors"][0]["kind"] == "missing_start_node"


def test_age_gate_session(client):
    session = _create(client, flow_name="age_gate")
    assert session["state"] == "awaiting_input"
    assert session["pending_question"]["node_id"] == "ask_age"
    assert [e["type"] for e in session["events"]] == ["question_presented"]

    response = client.post(f"/v1/sessions/{session['session_id']}/answer", json={"value": "25"})
    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "completed"
    assert data["variables"] == {"age": "25"}
    assert [e["type"] for e in data["events"]] == ["message_presented", "flow_completed"]
    assert data["events"][1]["end_node_id"] == "adult"

    response = client.post(f"/v1/sessions/{session['session_id']}/answer", json={"value": "30"})
    assert response.status_code == 409
    assert response.json()["detail"]["error"]["kind"] == "wrong_state"


def test_option_and_validation_errors(client):
    session = _create(client, flow_name="basic_cv")
    session_id = session["session_id"]

    response = client.post(f"/v1/sessions/{session_id}/answer", json={"value": ""})
    assert response.status_code == 422
    assert response.json()["detail"]["error"]["kind"] == "validation_failed"

    client.post(f"/v1/sessions/{session_id}/answer", json={"value": "Jane Doe"})
    client.post(f"/v1/sessions/{session_id}/answer", json={"value": "jane@example.com"})

    response = client.post(f"/v1/sessions/{session_id}/option", json={"value": "guru"})
    assert response.status_code == 422
    assert response.json()["detail"]["error"]["kind"] == "unknown_option"

    response = client.post(f"/v1/sessions/{session_id}/option", json={"value": "senior"})
    assert response.status_code == 200
    assert response.json()["variables"]["experienceLevel"] == "senior"


def test_create_session_request_validation(client):
    assert client.post("/v1/sessions", json={}).status_code == 422
    both = {"flow_name": "age_gate", "flow": {"nodes": [], "edges": []}}
    assert client.post("/v1/sessions", json=both).status_code == 422
    assert client.post("/v1/sessions", json={"flow_name": "nope"}).status_code == 404


def test_inline_flow_errors(client):
    response = client.post("/v1/sessions", json={"flow": {"nodes": [], "edges": []}})
    assert response.status_code == 422
    assert response.json()["detail"]["error"]["kind"] == "missing_start_node"

    response = client.post("/v1/sessions", json={"flow": LOOPING_FLOW})
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["error"]["kind"] == "cycle_without_input"
    assert detail["session"]["state"] == "aborted"


def test_initial_variables(client):
    session = _create(client, flow_name="loyalty_tier", initial_variables={"spend": 2000})
    assert session["variables"] == {"spend": "2000"}
    assert session["state"] == "awaiting_input"


def test_trace_reset_and_delete(client):
    session_id = _create(client, flow_name="age_gate")["session_id"]
    client.post(f"/v1/sessions/{session_id}/answer", json={"value": "10"})

    trace = client.get(f"/v1/sessions/{session_id}/trace").json()["trace"]
    assert any(entry["event_type"] == "edge_followed" for entry in trace)

    response = client.post(f"/v1/sessions/{session_id}/reset")
    assert response.status_code == 200
    assert response.json()["state"] == "idle"

    assert client.delete(f"/v1/sessions/{session_id}").status_code == 204
    assert client.get(f"/v1/sessions/{session_id}").status_code == 404
    assert client.delete(f"/v1/sessions/{session_id}").status_code == 404


def test_unknown_session(client):
    assert client.get("/v1/sessions/missing").status_code == 404
    assert client.post("/v1/sessions/missing/option", json={"value": "x"}).status_code == 404


def test_metrics_endpoint(client):
    _create(client, flow_name="age_gate")
    data = client.get("/v1/metrics").json()
    assert data["counters"]["sessions"]["started"] >= 1
