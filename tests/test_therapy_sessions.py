"""
Therapy sessions generated from journals and conflict discussions.
"""
import json
from unittest.mock import patch, MagicMock

from backend.coupleclarity.models import db, ConflictThread, ConflictMessage, TherapySession
from backend.coupleclarity.utils.ai_service import THERAPY_SESSION_FALLBACK
from backend.coupleclarity.ws import socketio

from conftest import make_user, auth_headers, connect, token_for, envelopes

POST = "backend.coupleclarity.utils.ai_service.requests.post"


def create_session(client, user):
    resp = client.post("/api/therapy-sessions", json={}, headers=auth_headers(user))
    assert resp.status_code == 201
    return resp.get_json()


def test_session_requires_active_partnership(client, alice, bob):
    connect(alice, bob, status="pending")
    assert client.post("/api/therapy-sessions", json={}, headers=auth_headers(alice)).status_code == 400
    loner = make_user("loner")
    assert client.get("/api/therapy-sessions", headers=auth_headers(loner)).status_code == 400
    assert TherapySession.query.count() == 0


def test_session_falls_back_without_ai_and_notifies_partner(app, client, couple):
    alice, bob, partnership = couple
    ws_bob = socketio.test_client(app, auth={"token": token_for(bob)})
    envelopes(ws_bob)

    session = create_session(client, alice)
    assert session["partnershipId"] == partnership.id
    assert session["transcript"] == THERAPY_SESSION_FALLBACK["transcript"]
    assert session["recommendations"] == THERAPY_SESSION_FALLBACK["summary"]["recommendations"]
    assert session["isReviewed"] is False

    received = envelopes(ws_bob)
    assert {"type": "therapy_session", "data": {"sessionId": session["id"], "createdBy": "Alice"}} in received
    ws_bob.disconnect()


def test_session_material_respects_privacy(app, client, couple):
    alice, bob, _ = couple
    client.post("/api/journal", json={"title": "Mine", "content": "I felt alone on Sunday."},
                headers=auth_headers(alice))
    client.post("/api/journal", json={"title": "Bob private", "content": "Secret worries."},
                headers=auth_headers(bob))
    client.post("/api/journal", json={"title": "Bob shared", "content": "I miss our walks.", "isShared": True},
                headers=auth_headers(bob))

    thread = ConflictThread(alice.id, bob.id, "Weekend plans")
    empty = ConflictThread(bob.id, alice.id, "Nothing said yet")
    db.session.add_all([thread, empty])
    db.session.flush()
    db.session.add_all([
        ConflictMessage(thread_id=thread.id, user_id=alice.id, content="I wanted a quiet day."),
        ConflictMessage(thread_id=thread.id, user_id=bob.id, content="I had already invited friends."),
    ])
    db.session.commit()

    app.extensions["ai_service"].openai_api_key = "test-key"
    generated = {"transcript": "Therapist: Let's begin.",
                 "summary": {"emotionalPatterns": ["Loneliness"], "coreIssues": ["Planning weekends"]}}
    reply = MagicMock()
    reply.raise_for_status.return_value = None
    reply.json.return_value = {"choices": [{"message": {"content": json.dumps(generated)}}]}
    with patch(POST, return_value=reply) as post:
        session = create_session(client, alice)

    sent = json.loads(post.call_args.kwargs["json"]["messages"][1]["content"])
    assert [e["title"] for e in sent["userEntries"]] == ["Mine"]
    assert [e["title"] for e in sent["partnerSharedEntries"]] == ["Bob shared"]
    assert [t["topic"] for t in sent["conflictThreads"]] == ["Weekend plans"]
    assert [m["author"] for m in sent["conflictThreads"][0]["messages"]] == ["Alice", "Partner"]

    assert session["transcript"] == "Therapist: Let's begin."
    assert session["coreIssues"] == ["Planning weekends"]
    assert session["recommendations"] == THERAPY_SESSION_FALLBACK["summary"]["recommendations"]


def test_sessions_listed_for_both_partners(client, couple):
    alice, bob, _ = couple
    first = create_session(client, alice)
    second = create_session(client, bob)

    for user in (alice, bob):
        listed = client.get("/api/therapy-sessions", headers=auth_headers(user)).get_json()
        assert [s["id"] for s in listed] == [second["id"], first["id"]]


def test_review_and_notes(client, couple):
    alice, bob, _ = couple
    session = create_session(client, alice)
    url = f"/api/therapy-sessions/{session['id']}"

    resp = client.put(url, json={"userNotes": "Try the reflection exercise", "isReviewed": True},
                      headers=auth_headers(bob))
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["userNotes"] == "Try the reflection exercise"
    assert data["isReviewed"] is True
    assert data["reviewedAt"] is not None

    data = client.put(url, json={"isReviewed": False}, headers=auth_headers(alice)).get_json()
    assert data["reviewedAt"] is None
    assert data["userNotes"] == "Try the reflection exercise"

    assert client.put(url, json={"isReviewed": "maybe"}, headers=auth_headers(alice)).status_code == 400


def test_outsiders_cannot_read_or_update(client, couple):
    alice, _, _ = couple
    session = create_session(client, alice)
    url = f"/api/therapy-sessions/{session['id']}"
    carol, dave = make_user("carol"), make_user("dave")
    connect(carol, dave)

    assert client.get(url, headers=auth_headers(alice)).status_code == 200
    assert client.get(url, headers=auth_headers(carol)).status_code == 403
    assert client.put(url, json={"userNotes": "hi"}, headers=auth_headers(carol)).status_code == 403
    assert client.get("/api/therapy-sessions/999", headers=auth_headers(alice)).status_code == 404
