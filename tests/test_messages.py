"""
Emotional message transformation, shared messages, direct messages and appreciations.
"""
import json
from unittest.mock import patch, MagicMock

from backend.coupleclarity.models import db, Message, Memory, DirectMessage, UserPreferences
from backend.coupleclarity.utils.ai_service import TRANSFORM_FALLBACK

from conftest import make_user, auth_headers


def chat_completion(payload):
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = {"choices": [{"message": {"content": json.dumps(payload)}}]}
    return response


def anthropic_reply(text):
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = {"content": [{"type": "text", "text": text}]}
    return response


def test_transform_without_key_returns_fallback_and_saves(client, alice):
    resp = client.post("/api/transform", json={"emotion": "frustrated", "rawMessage": "You never help!"},
                       headers=auth_headers(alice))
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["transformedMessage"] == TRANSFORM_FALLBACK["transformedMessage"]
    assert data["messageId"] is not None
    assert Message.query.one().raw_message == "You never help!"


def test_transform_uses_openai_response(app, client, alice):
    app.extensions["ai_service"].openai_api_key = "test-key"
    completion = chat_completion({
        "transformedMessage": "I feel overwhelmed and would love some help.",
        "communicationElements": ["I statements"],
        "deliveryTips": ["Pick a calm moment"],
    })
    with patch("backend.coupleclarity.utils.ai_service.requests.post", return_value=completion) as post:
        resp = client.post("/api/transform", json={
            "emotion": "overwhelmed", "rawMessage": "You never help!", "saveToHistory": False,
        }, headers=auth_headers(alice))

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["transformedMessage"] == "I feel overwhelmed and would love some help."
    assert data["messageId"] is None
    assert Message.query.count() == 0
    payload = post.call_args.kwargs["json"]
    assert payload["response_format"] == {"type": "json_object"}


def test_transform_uses_anthropic_when_preferred(app, client, alice):
    db.session.add(UserPreferences(user_id=alice.id, preferred_ai_model="anthropic"))
    db.session.commit()
    app.extensions["ai_service"].anthropic_api_key = "test-key"

    with patch("backend.coupleclarity.utils.ai_service.requests.post",
               return_value=anthropic_reply("I'd like us to share the load.")):
        resp = client.post("/api/transform", json={"emotion": "tired", "rawMessage": "Do the dishes."},
                           headers=auth_headers(alice))

    data = resp.get_json()
    assert data["transformedMessage"] == "I'd like us to share the load."
    assert data["communicationElements"]["iStatements"] is True


def test_transform_validation(client, alice):
    resp = client.post("/api/transform", json={"emotion": "sad", "rawMessage": "x" * 501},
                       headers=auth_headers(alice))
    assert resp.status_code == 400


def test_shared_message_and_responses(client, couple):
    alice, bob, _ = couple
    outsider = make_user("mallory")
    resp = client.post("/api/transform", json={
        "emotion": "hurt", "rawMessage": "You forgot our plans.", "shareWithPartner": True,
    }, headers=auth_headers(alice))
    message_id = resp.get_json()["messageId"]

    shared = client.get(f"/api/partners/{alice.id}/shared-messages", headers=auth_headers(bob)).get_json()
    assert [m["id"] for m in shared] == [message_id]
    assert client.get(f"/api/partners/{alice.id}/shared-messages",
                      headers=auth_headers(outsider)).status_code == 403

    url = f"/api/messages/{message_id}/responses"
    resp = client.post(url, json={"content": "I'm sorry, let's reschedule."}, headers=auth_headers(bob))
    assert resp.status_code == 201
    assert resp.get_json()["aiSummary"] == "Your partner responded to your message."

    assert client.post(url, json={"content": "hi"}, headers=auth_headers(outsider)).status_code == 403
    assert client.get("/api/messages/999/responses", headers=auth_headers(bob)).status_code == 404
    responses = client.get(url, headers=auth_headers(alice)).get_json()
    assert len(responses) == 1


def test_share_with_non_partner_is_forbidden(client, alice, bob):
    resp = client.post("/api/transform", json={
        "emotion": "hurt", "rawMessage": "Hello", "shareWithPartner": True, "partnerId": bob.id,
    }, headers=auth_headers(alice))
    assert resp.status_code == 403


def test_message_history_is_per_user(client, couple):
    alice, bob, _ = couple
    client.post("/api/transform", json={"emotion": "calm", "rawMessage": "one"}, headers=auth_headers(alice))
    client.post("/api/transform", json={"emotion": "calm", "rawMessage": "two"}, headers=auth_headers(alice))
    history = client.get("/api/messages", headers=auth_headers(alice)).get_json()
    assert [m["rawMessage"] for m in history] == ["two", "one"]
    assert client.get("/api/messages", headers=auth_headers(bob)).get_json() == []


def test_direct_messages_between_partners(client, couple):
    alice, bob, _ = couple
    for text in ("Hi", "How was work?"):
        resp = client.post("/api/direct-messages", json={"recipientId": bob.id, "content": text},
                           headers=auth_headers(alice))
        assert resp.status_code == 201

    assert client.get("/api/direct-messages/unread/count", headers=auth_headers(bob)).get_json() == {"count": 2}

    conversation = client.get(f"/api/direct-messages/{alice.id}", headers=auth_headers(bob)).get_json()
    assert [m["content"] for m in conversation] == ["Hi", "How was work?"]

    first = conversation[0]["id"]
    assert client.patch(f"/api/direct-messages/{first}/read", json={},
                        headers=auth_headers(alice)).status_code == 403
    resp = client.patch(f"/api/direct-messages/{first}/read", json={}, headers=auth_headers(bob))
    assert resp.get_json()["isRead"] is True
    assert client.get("/api/direct-messages/unread/count", headers=auth_headers(bob)).get_json() == {"count": 1}


def test_direct_messages_require_partnership(client, alice, bob):
    resp = client.post("/api/direct-messages", json={"recipientId": bob.id, "content": "Hi"},
                       headers=auth_headers(alice))
    assert resp.status_code == 403
    assert client.get(f"/api/direct-messages/{bob.id}", headers=auth_headers(alice)).status_code == 403
    assert DirectMessage.query.count() == 0


def test_appreciations(client, couple):
    alice, bob, partnership = couple
    resp = client.post("/api/appreciations", json={"content": "Thanks for dinner!"}, headers=auth_headers(alice))
    assert resp.status_code == 201
    assert resp.get_json()["partnerId"] == bob.id

    memory = Memory.query.filter_by(type="appreciation").one()
    assert memory.partnership_id == partnership.id

    for i in range(6):
        client.post("/api/appreciations", json={"content": f"note {i}"}, headers=auth_headers(bob))
    received = client.get("/api/appreciations", headers=auth_headers(alice)).get_json()
    assert len(received) == 5
    assert received[0]["content"] == "note 5"

    assert client.post("/api/appreciations", json={"content": ""}, headers=auth_headers(alice)).status_code == 400


def test_appreciation_needs_partner(client, alice):
    resp = client.post("/api/appreciations", json={"content": "Thanks"}, headers=auth_headers(alice))
    assert resp.status_code == 400
