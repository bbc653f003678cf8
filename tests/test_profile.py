"""
User profile, onboarding, check-ins, current emotions and notification preferences.
"""
from backend.coupleclarity.models import db, User, CheckInPrompt, CheckInResponse, PushSubscription
from backend.coupleclarity.models.check_in import week_start
from backend.coupleclarity.ws import socketio

from conftest import make_user, auth_headers, connect, token_for, envelopes

ONBOARDING = {
    "loveLanguage": "quality_time",
    "conflictStyle": "talk_calmly",
    "communicationStyle": "direct",
    "repairStyle": "talking",
}


def add_prompts(count=4):
    prompts = [CheckInPrompt(prompt=f"Prompt {i}", category="general", active=True) for i in range(count)]
    db.session.add_all(prompts)
    db.session.commit()
    return prompts


def test_ai_model_preference(client, alice):
    assert client.get("/api/user/ai-model-preference", headers=auth_headers(alice)).get_json() == {"model": "openai"}
    resp = client.post("/api/user/ai-model-preference", json={"model": "anthropic"}, headers=auth_headers(alice))
    assert resp.get_json() == {"model": "anthropic"}
    assert client.get("/api/user/ai-model-preference",
                      headers=auth_headers(alice)).get_json() == {"model": "anthropic"}
    assert client.post("/api/user/ai-model-preference", json={"model": "gemini"},
                       headers=auth_headers(alice)).status_code == 400


def test_partner_profile(client, alice, bob):
    assert client.get("/api/user/partner", headers=auth_headers(alice)).get_json() is None

    connect(alice, bob)
    client.post("/api/user/preferences", json=ONBOARDING, headers=auth_headers(bob))
    data = client.get("/api/user/partner", headers=auth_headers(alice)).get_json()
    assert data["id"] == bob.id
    assert data["preferences"]["loveLanguage"] == "quality_time"
    assert data["startDate"] is not None
    assert "email" not in data


def test_update_profile_checks_uniqueness(client, alice, bob):
    resp = client.patch("/api/user/profile", json={"displayName": "Ally", "lastName": "Smith"},
                        headers=auth_headers(alice))
    assert resp.status_code == 200
    assert resp.get_json()["displayName"] == "Ally"

    assert client.patch("/api/user/profile", json={"email": "BOB@example.com"},
                        headers=auth_headers(alice)).status_code == 400
    assert client.patch("/api/user/profile", json={"username": "bob"},
                        headers=auth_headers(alice)).status_code == 400
    assert client.patch("/api/user/username", json={"username": "al"},
                        headers=auth_headers(alice)).status_code == 400

    resp = client.patch("/api/user/username", json={"username": "alicia"}, headers=auth_headers(alice))
    assert resp.get_json()["username"] == "alicia"


def test_change_password(client, alice):
    resp = client.post("/api/user/change-password", json={"currentPassword": "wrong", "newPassword": "newpass123"},
                       headers=auth_headers(alice))
    assert resp.status_code == 400

    resp = client.post("/api/user/change-password",
                       json={"currentPassword": "password123", "newPassword": "newpass123"},
                       headers=auth_headers(alice))
    assert resp.status_code == 200
    assert db.session.get(User, alice.id).verify_password("newpass123")


def test_enhanced_onboarding(client, alice):
    body = dict(ONBOARDING, relationshipGoals="Talk more openly", challengeAreas="Busy schedules",
                communicationFrequency="weekly")
    resp = client.post("/api/user/enhanced-onboarding", json=body, headers=auth_headers(alice))
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["user"]["onboardingCompleted"] is True
    assert data["user"]["communicationFrequency"] == "weekly"
    assert data["preferences"]["repairStyle"] == "talking"

    short = dict(body, relationshipGoals="hi")
    assert client.post("/api/user/enhanced-onboarding", json=short, headers=auth_headers(alice)).status_code == 400


def test_check_in_prompts_and_latest(client, couple):
    alice, bob, _ = couple
    prompts = add_prompts()
    listed = client.get("/api/check-in/prompts", headers=auth_headers(alice)).get_json()
    assert [p["id"] for p in listed] == [p.id for p in prompts[:3]]

    latest = client.get("/api/check-in/latest", headers=auth_headers(alice)).get_json()
    assert latest["needsNewCheckIn"] is True
    assert latest["responses"] == []

    resp = client.post("/api/check-in/responses", json={
        "responses": [{"promptId": prompts[0].id, "response": "You made dinner"}],
    }, headers=auth_headers(alice))
    assert resp.status_code == 201
    assert resp.get_json()[0]["weekOf"] == week_start().isoformat()

    latest = client.get("/api/check-in/latest", headers=auth_headers(alice)).get_json()
    assert latest["needsNewCheckIn"] is False

    # private answers are hidden from the partner
    partner_view = client.get(f"/api/check-in/latest?userId={alice.id}", headers=auth_headers(bob)).get_json()
    assert partner_view["responses"] == []

    client.post("/api/check-in/responses", json={
        "responses": [{"promptId": prompts[1].id, "response": "Our budget"}], "isShared": True,
    }, headers=auth_headers(alice))
    partner_view = client.get(f"/api/check-in/latest?userId={alice.id}", headers=auth_headers(bob)).get_json()
    assert [r["response"] for r in partner_view["responses"]] == ["Our budget"]


def test_check_in_validation_and_access(client, alice):
    prompts = add_prompts(1)
    outsider = make_user("mallory")
    assert client.post("/api/check-in/responses", json={"responses": [{"promptId": 999, "response": "x"}]},
                       headers=auth_headers(alice)).status_code == 400
    assert client.post("/api/check-in/responses", json={"responses": [{"promptId": prompts[0].id,
                                                                       "response": "   "}]},
                       headers=auth_headers(alice)).status_code == 400
    assert client.get(f"/api/check-in/latest?userId={alice.id}",
                      headers=auth_headers(outsider)).status_code == 403
    assert CheckInResponse.query.count() == 0


def test_current_emotion(client, couple):
    alice, bob, _ = couple
    assert client.get("/api/current-emotion", headers=auth_headers(alice)).status_code == 404
    assert client.get("/api/partner/current-emotion", headers=auth_headers(bob)).status_code == 404

    resp = client.post("/api/current-emotion", json={"emotion": "hopeful"}, headers=auth_headers(alice))
    assert resp.get_json()["intensity"] == 5
    client.post("/api/current-emotion", json={"emotion": "tired", "intensity": 8, "note": "long day"},
                headers=auth_headers(alice))

    mine = client.get("/api/current-emotion", headers=auth_headers(alice)).get_json()
    assert (mine["emotion"], mine["intensity"]) == ("tired", 8)
    partner = client.get("/api/partner/current-emotion", headers=auth_headers(bob)).get_json()
    assert partner["note"] == "long day"

    assert client.post("/api/current-emotion", json={"emotion": "angry", "intensity": 11},
                       headers=auth_headers(alice)).status_code == 400


def test_partner_emotion_requires_active_partnership(client, alice):
    assert client.get("/api/partner/current-emotion", headers=auth_headers(alice)).status_code == 404


def test_notification_preferences_gate_notifications(app, client, couple):
    alice, bob, _ = couple
    prefs = client.get("/api/notifications/preferences", headers=auth_headers(bob)).get_json()
    assert prefs["partnerEmotions"] is True

    resp = client.post("/api/notifications/preferences", json={"partnerEmotions": False},
                       headers=auth_headers(bob))
    assert resp.get_json()["partnerEmotions"] is False
    assert resp.get_json()["directMessages"] is True

    ws_bob = socketio.test_client(app, auth={"token": token_for(bob)})
    envelopes(ws_bob)

    client.post("/api/current-emotion", json={"emotion": "calm"}, headers=auth_headers(alice))
    types = [e["type"] for e in envelopes(ws_bob)]
    assert types == ["emotion_update"]
    ws_bob.disconnect()


def test_push_subscriptions(client, alice, bob):
    body = {"endpoint": "https://push.example/abc", "keys": {"p256dh": "key", "auth": "secret"}}
    assert client.post("/api/notifications/subscribe", json=body, headers=auth_headers(alice)).status_code == 201
    again = client.post("/api/notifications/subscribe", json=body, headers=auth_headers(alice))
    assert again.status_code == 200
    assert again.get_json()["message"] == "Subscription already exists"

    # the endpoint moves to the user who registered it last
    assert client.post("/api/notifications/subscribe", json=body, headers=auth_headers(bob)).status_code == 201
    assert PushSubscription.query.one().user_id == bob.id

    assert client.delete("/api/notifications/unsubscribe", json={"endpoint": body["endpoint"]},
                         headers=auth_headers(alice)).status_code == 404
    assert client.delete("/api/notifications/unsubscribe", json={"endpoint": body["endpoint"]},
                         headers=auth_headers(bob)).status_code == 200
    assert PushSubscription.query.count() == 0

    assert client.post("/api/notifications/subscribe", json={"endpoint": "x"},
                       headers=auth_headers(alice)).status_code == 400
