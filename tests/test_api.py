import pytest
from conftest import classification_json
from fastapi.testclient import TestClient

from support_triage.__version__ import __version__
from support_triage.intents import taxonomy
from support_triage.main import app, limiter

DRAFT = "Your order #4013 shipped with UPS, tracking 1Z999.\n\n– Lina"

INGEST = {
    "channel": "email",
    "external_id": "thread-api",
    "from_identifier": "jane@example.com",
    "subject": "Order",
    "body_text": "Where is order #4013?",
    "metadata": {"message_id": "msg-1"},
}


@pytest.fixture
def client(pipeline, llm):
    llm.classification = classification_json(taxonomy.ORDER_STATUS)
    llm.drafting = DRAFT
    limiter.reset()
    app.state.pipeline = pipeline
    with TestClient(app) as test_client:
        yield test_client
    app.state.pipeline = None


@pytest.fixture
def thread_id(client):
    resp = client.post("/api/ingest", json=INGEST)
    assert resp.status_code == 200
    return resp.json()["thread_id"]


def test_health_and_version(client):
    assert client.get("/api/health").json() == {"status": "ok"}
    data = client.get("/api/version").json()
    assert data["version"] == __version__
    assert set(data) == {"version", "build_date", "commit_sha"}


def test_ingest_returns_triage_result(client):
    resp = client.post("/api/ingest", json=INGEST)
    assert resp.status_code == 200
    data = resp.json()
    assert data["intent"] == taxonomy.ORDER_STATUS
    assert data["state"] == "IN_PROGRESS"
    assert data["previous_state"] == "NEW"
    assert data["verification_status"] == "verified"
    assert data["draft"] == DRAFT
    assert data["draft_id"]

    again = client.post("/api/ingest", json=INGEST).json()
    assert again["duplicate"] is True
    assert again["thread_id"] == data["thread_id"]


def test_ingest_rejects_missing_body(client):
    resp = client.post("/api/ingest", json={"subject": "no body"})
    assert resp.status_code == 422


def test_get_thread(client, thread_id):
    resp = client.get(f"/api/threads/{thread_id}")
    assert resp.status_code == 200
    data = resp.json()
    assert data["state"] == "IN_PROGRESS"
    assert data["sender"] == "jane@example.com"
    assert [event["type"] for event in data["events"]] == ["AUTO_TRIAGE"]
    assert [item["intent"] for item in data["intents"]] == [taxonomy.ORDER_STATUS]

    assert client.get("/api/threads/missing").status_code == 404


def test_manual_transition(client, thread_id):
    resp = client.post(
        f"/api/threads/{thread_id}/transition",
        json={"state": "RESOLVED", "reason": "Customer confirmed delivery", "actor": "sam"},
    )
    assert resp.status_code == 200
    assert resp.json()["state"] == "RESOLVED"

    resp = client.post(f"/api/threads/{thread_id}/transition", json={"state": "ESCALATED"})
    assert resp.status_code == 409

    resp = client.post("/api/threads/missing/transition", json={"state": "RESOLVED"})
    assert resp.status_code == 404


def test_takeover_and_release(client, thread_id):
    resp = client.post(f"/api/threads/{thread_id}/takeover", json={"handler": "lead@store.example"})
    assert resp.status_code == 201
    assert resp.json()["signal_type"] == "admin_takeover"
    assert client.get(f"/api/threads/{thread_id}").json()["state"] == "HUMAN_HANDLING"

    again = client.post(f"/api/threads/{thread_id}/takeover", json={"handler": "lead@store.example"})
    assert again.status_code == 409

    blocked = client.post(f"/api/threads/{thread_id}/transition", json={"state": "RESOLVED"})
    assert blocked.status_code == 409

    resolution = {"resolution_type": "returned_to_agent", "summary": "Refund issued"}
    resp = client.post(f"/api/threads/{thread_id}/release", json=resolution)
    assert resp.status_code == 200
    assert resp.json()["ended_at"] is not None
    assert client.get(f"/api/threads/{thread_id}").json()["state"] == "IN_PROGRESS"

    assert client.post(f"/api/threads/{thread_id}/release", json=resolution).status_code == 409


def test_outbound_human_reply(client, thread_id):
    resp = client.post(
        f"/api/threads/{thread_id}/outbound",
        json={"from_identifier": "sam@store.example", "body_text": "I'll call you today."},
    )
    assert resp.status_code == 200
    assert resp.json()["human_handling_mode"] is True
    assert resp.json()["human_handler"] == "sam@store.example"


def test_drafts_list_and_mark_sent(client, thread_id):
    drafts = client.get("/api/drafts", params={"thread_id": thread_id}).json()
    assert len(drafts) == 1
    draft_id = drafts[0]["id"]

    resp = client.post(f"/api/drafts/{draft_id}/sent", json={"was_edited": True, "edit_distance": 4})
    assert resp.status_code == 200
    assert resp.json()["was_sent"] is True
    assert resp.json()["edit_distance"] == 4

    assert client.post(f"/api/drafts/{draft_id}/sent", json={}).status_code == 409
    assert client.post("/api/drafts/missing/sent", json={}).status_code == 404


def test_cache_endpoints(client):
    assert client.post("/api/intents/refresh").status_code == 204
    assert client.post("/api/instructions/invalidate").status_code == 204


def test_pipeline_not_initialised():
    limiter.reset()
    app.state.pipeline = None
    client = TestClient(app)
    assert client.post("/api/ingest", json=INGEST).status_code == 503
    assert client.get("/api/health").status_code == 200
