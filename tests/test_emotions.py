"""
Emotional expression log, journal emotion trends and pattern summaries.
"""
import datetime
import json
from unittest.mock import patch, MagicMock

from backend.coupleclarity.models import db, EmotionalExpression, JournalEntry, utcnow
from backend.coupleclarity.utils.ai_service import EMOTION_PATTERNS_NO_DATA

from conftest import make_user, auth_headers

POST = "backend.coupleclarity.utils.ai_service.requests.post"


def express(client, user, **overrides):
    body = {"emotion": "anxious", "context": "Money talk at dinner"}
    body.update(overrides)
    resp = client.post("/api/emotional-expressions", json=body, headers=auth_headers(user))
    assert resp.status_code == 201
    return resp.get_json()


def journal(user, days_ago, score=None, emotions=None, title="entry"):
    entry = JournalEntry(user_id=user.id, title=title, content="Some thoughts.", emotions=emotions,
                         emotional_score=score)
    entry.created_at = utcnow() - datetime.timedelta(days=days_ago)
    db.session.add(entry)
    db.session.commit()
    return entry


def test_expression_defaults_and_validation(client, alice):
    expression = express(client, alice, tags=["money"])
    assert expression["intensity"] == 5
    assert expression["tags"] == ["money"]
    assert expression["aiProcessed"] is False
    assert expression["relatedItemId"] is None

    resp = client.post("/api/emotional-expressions", json={"emotion": "sad"}, headers=auth_headers(alice))
    assert resp.status_code == 400
    assert "context" in resp.get_json()["details"]
    assert client.post("/api/emotional-expressions", json={"emotion": "sad", "context": "x", "intensity": 0},
                       headers=auth_headers(alice)).status_code == 400


def test_expressions_list_newest_first_with_limit(client, alice, bob):
    first = express(client, alice, emotion="calm")
    second = express(client, alice, emotion="hopeful")
    express(client, bob)

    listed = client.get("/api/emotional-expressions", headers=auth_headers(alice)).get_json()
    assert [e["id"] for e in listed] == [second["id"], first["id"]]
    limited = client.get("/api/emotional-expressions?limit=1", headers=auth_headers(alice)).get_json()
    assert [e["emotion"] for e in limited] == ["hopeful"]


def test_expression_update_and_delete_are_owner_only(client, alice, bob):
    expression = express(client, alice)
    url = f"/api/emotional-expressions/{expression['id']}"

    assert client.get(url, headers=auth_headers(bob)).status_code == 403
    assert client.put(url, json={"emotion": "calm"}, headers=auth_headers(bob)).status_code == 403
    assert client.delete(url, headers=auth_headers(bob)).status_code == 403
    assert client.get("/api/emotional-expressions/999", headers=auth_headers(alice)).status_code == 404

    resp = client.put(url, json={"intensity": 8, "aiProcessed": True, "aiInsight": "Money stress"},
                      headers=auth_headers(alice))
    assert resp.status_code == 200
    updated = resp.get_json()
    assert (updated["emotion"], updated["intensity"], updated["aiInsight"]) == ("anxious", 8, "Money stress")
    assert client.put(url, json={"intensity": 12}, headers=auth_headers(alice)).status_code == 400

    resp = client.delete(url, headers=auth_headers(alice))
    assert resp.status_code == 204
    assert EmotionalExpression.query.count() == 0


def test_trends_without_entries(client, alice):
    journal(alice, days_ago=30, score=9, emotions=["joy"])
    data = client.get("/api/emotions/trends", headers=auth_headers(alice)).get_json()
    assert data == {"dominant": None, "trend": "neutral", "insight": "Start journaling to receive emotional insights"}


def test_trends_compare_older_and_newer_halves(client, alice):
    journal(alice, days_ago=10, score=3, emotions=["hopeful"])
    journal(alice, days_ago=8, score=3, emotions=["anxious"])
    journal(alice, days_ago=4, score=8, emotions=["hopeful"])
    journal(alice, days_ago=1, score=8, emotions=["hopeful", "calm"])

    data = client.get("/api/emotions/trends", headers=auth_headers(alice)).get_json()
    assert data["dominant"] == "hopeful"
    assert data["trend"] == "improving"
    assert "improving" in data["insight"]


def test_trends_decline_and_stable(client, alice, bob):
    journal(alice, days_ago=5, score=8)
    journal(alice, days_ago=2, score=2, emotions=["tired"])
    data = client.get("/api/emotions/trends", headers=auth_headers(alice)).get_json()
    assert (data["dominant"], data["trend"]) == ("tired", "declining")

    # missing scores count as the midpoint
    journal(bob, days_ago=3)
    journal(bob, days_ago=1, score=5)
    data = client.get("/api/emotions/trends", headers=auth_headers(bob)).get_json()
    assert (data["dominant"], data["trend"]) == ("neutral", "stable")


def test_patterns_without_data(client, alice):
    data = client.get("/api/emotions/patterns", headers=auth_headers(alice)).get_json()
    assert data == EMOTION_PATTERNS_NO_DATA


def test_patterns_fall_back_to_frequencies(client, alice):
    express(client, alice, emotion="anxious", intensity=8)
    express(client, alice, emotion="anxious", intensity=6)
    journal(alice, days_ago=2, emotions=["hopeful"])

    data = client.get("/api/emotions/patterns", headers=auth_headers(alice)).get_json()
    top = data["dominantEmotions"][0]
    assert (top["emotion"], top["frequency"], top["intensity"]) == ("anxious", 2, 7)
    assert [d["emotion"] for d in data["dominantEmotions"]] == ["anxious", "hopeful"]
    assert data["personalizedRecommendations"] == EMOTION_PATTERNS_NO_DATA["personalizedRecommendations"]


def test_patterns_include_partner_summary(app, client, couple):
    alice, bob, _ = couple
    express(client, alice)
    express(client, bob, emotion="lonely")
    app.extensions["ai_service"].openai_api_key = "test-key"

    analysis = {"dominantEmotions": [{"emotion": "anxious", "frequency": 6, "intensity": 7,
                                      "description": "Money conversations raise anxiety."}],
                "patterns": [{"trigger": "budget", "response": "withdraw", "suggestion": "plan ahead"}]}
    reply = MagicMock()
    reply.raise_for_status.return_value = None
    reply.json.return_value = {"choices": [{"message": {"content": json.dumps(analysis)}}]}
    with patch(POST, return_value=reply) as post:
        data = client.get("/api/emotions/patterns", headers=auth_headers(alice)).get_json()

    sent = json.loads(post.call_args.kwargs["json"]["messages"][1]["content"])
    assert sent["partner"]["dominantEmotions"] == ["lonely"]
    assert [e["emotion"] for e in sent["emotionalExpressions"]] == ["anxious"]
    assert data["dominantEmotions"] == analysis["dominantEmotions"]
    assert data["patterns"] == analysis["patterns"]
    # keys the model left out are filled in
    assert data["relationshipInsights"] == EMOTION_PATTERNS_NO_DATA["relationshipInsights"]


def test_patterns_skip_partner_without_active_partnership(app, client):
    loner = make_user("loner")
    express(client, loner)
    app.extensions["ai_service"].openai_api_key = "test-key"
    reply = MagicMock()
    reply.raise_for_status.return_value = None
    reply.json.return_value = {"choices": [{"message": {"content": "{}"}}]}
    with patch(POST, return_value=reply) as post:
        client.get("/api/emotions/patterns", headers=auth_headers(loner))
    assert json.loads(post.call_args.kwargs["json"]["messages"][1]["content"])["partner"] is None
