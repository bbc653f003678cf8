"""
Conflict threads: participants, messages, status transitions and AI helpers.
"""
import pytest

from backend.coupleclarity.models import db, Memory, ConflictThread
from backend.coupleclarity.models.conflict import InvalidTransition

from conftest import make_user, auth_headers


def open_thread(client, user, topic="Chores"):
    resp = client.post("/api/conflict-threads", json={"topic": topic}, headers=auth_headers(user))
    assert resp.status_code == 201
    return resp.get_json()


def test_thread_defaults_to_partner(client, couple):
    alice, bob, _ = couple
    thread = open_thread(client, alice)
    assert thread["partnerId"] == bob.id
    assert thread["status"] == "active"

    listed = client.get("/api/conflict-threads", headers=auth_headers(bob)).get_json()
    assert [t["id"] for t in listed] == [thread["id"]]


def test_thread_requires_partnership(client, alice, bob):
    resp = client.post("/api/conflict-threads", json={"topic": "Money"}, headers=auth_headers(alice))
    assert resp.status_code == 400

    resp = client.post("/api/conflict-threads", json={"topic": "Money", "partnerId": bob.id},
                       headers=auth_headers(alice))
    assert resp.status_code == 400


def test_only_participants_can_read(client, couple):
    alice, bob, _ = couple
    outsider = make_user("mallory")
    thread = open_thread(client, alice)
    assert client.get(f"/api/conflict-threads/{thread['id']}", headers=auth_headers(outsider)).status_code == 403
    assert client.get("/api/conflict-threads/999", headers=auth_headers(alice)).status_code == 404
    assert client.get(f"/api/conflict-threads/{thread['id']}", headers=auth_headers(bob)).status_code == 200


def test_messages_update_activity_and_close_with_thread(client, couple):
    alice, bob, _ = couple
    thread = open_thread(client, alice)
    url = f"/api/conflict-threads/{thread['id']}/messages"

    resp = client.post(url, json={"content": "I feel the chores are uneven."}, headers=auth_headers(alice))
    assert resp.status_code == 201
    client.post(url, json={"content": "Let's make a schedule.", "emotionalTone": "calm"},
                headers=auth_headers(bob))

    messages = client.get(url, headers=auth_headers(bob)).get_json()
    assert [m["userId"] for m in messages] == [alice.id, bob.id]
    stored = db.session.get(ConflictThread, thread["id"])
    assert stored.last_activity_at >= stored.created_at

    client.patch(f"/api/conflict-threads/{thread['id']}/status", json={"status": "abandoned"},
                 headers=auth_headers(alice))
    resp = client.post(url, json={"content": "one more thing"}, headers=auth_headers(bob))
    assert resp.status_code == 409


def test_resolve_records_memory(client, couple):
    alice, bob, partnership = couple
    thread = open_thread(client, alice)

    resp = client.post(f"/api/conflict-threads/{thread['id']}/resolve",
                       json={"summary": "We split chores by week.", "insights": "Plan ahead"},
                       headers=auth_headers(bob))
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "resolved"
    assert data["resolvedAt"] is not None
    assert data["resolutionSummary"] == "We split chores by week."

    memory = Memory.query.filter_by(type="conflict_resolution").one()
    assert memory.partnership_id == partnership.id
    assert memory.linked_item_id == thread["id"]


def test_terminal_status_cannot_change(client, couple):
    alice, bob, _ = couple
    thread = open_thread(client, alice)
    url = f"/api/conflict-threads/{thread['id']}/status"

    assert client.patch(url, json={"status": "resolved", "summary": "done"},
                        headers=auth_headers(alice)).status_code == 200
    assert client.patch(url, json={"status": "active"}, headers=auth_headers(alice)).status_code == 409
    assert client.patch(url, json={"status": "abandoned"}, headers=auth_headers(bob)).status_code == 409
    assert client.patch(url, json={"status": "paused"}, headers=auth_headers(bob)).status_code == 400


def test_transition_rules_on_model(couple):
    alice, bob, _ = couple
    thread = ConflictThread(alice.id, bob.id, "Holidays")
    with pytest.raises(InvalidTransition):
        thread.transition("active")
    thread.transition("abandoned")
    assert thread.resolved_at is None
    with pytest.raises(InvalidTransition):
        thread.transition("resolved")


def test_request_help(client, couple):
    alice, bob, _ = couple
    thread = open_thread(client, alice)
    resp = client.post(f"/api/conflict-threads/{thread['id']}/request-help",
                       json={"reason": "We keep going in circles"}, headers=auth_headers(bob))
    assert resp.status_code == 200
    assert resp.get_json()["needsExtraHelp"] is True
    assert resp.get_json()["stuckReason"] == "We keep going in circles"


def test_analyze_without_key_uses_basic_strategies(client, couple):
    alice, bob, _ = couple
    thread = open_thread(client, alice)
    resp = client.post(f"/api/conflict-threads/{thread['id']}/analyze", json={}, headers=auth_headers(alice))
    assert resp.status_code == 200
    data = resp.get_json()
    assert "not available" in data["insights"]
    assert len(data["strategies"]) == 3


def test_transform_conflict_fallback(client, alice):
    resp = client.post("/api/transform-conflict", json={"message": "You never listen!"},
                       headers=auth_headers(alice))
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["transformedMessage"]
    assert data["emotionalTone"] == "neutral"
