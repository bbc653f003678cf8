"""
Guided communication exercises: templates, turn-taking and completion.
"""
from backend.coupleclarity.models import db, CommunicationExercise, ExerciseResponse

from conftest import make_user, auth_headers

TEMPLATE = {
    "title": "Listen and Reflect",
    "description": "Share, reflect, then both appreciate.",
    "type": "active_listening",
    "steps": [
        {"title": "Share", "promptText": "What is on your mind?", "userRole": "initiator"},
        {"title": "Appreciate", "promptText": "What did you appreciate?", "userRole": "both"},
        {"title": "Reflect", "promptText": "Summarize what you heard.", "userRole": "partner"},
    ],
}


def create_template(client, user):
    resp = client.post("/api/exercises/templates", json=TEMPLATE, headers=auth_headers(user))
    assert resp.status_code == 201
    return resp.get_json()


def start_exercise(client, user, template_id):
    resp = client.post("/api/exercises", json={"templateId": template_id}, headers=auth_headers(user))
    assert resp.status_code == 201
    return resp.get_json()


def step_ids(client, user, exercise_id):
    steps = client.get(f"/api/exercises/{exercise_id}/steps", headers=auth_headers(user)).get_json()
    return [s["id"] for s in steps]


def respond(client, user, exercise_id, step_id, text="answer"):
    return client.post(f"/api/exercises/{exercise_id}/responses",
                       json={"stepId": step_id, "responseText": text}, headers=auth_headers(user))


def test_template_crud_and_filters(client, alice):
    template = create_template(client, alice)
    assert template["totalSteps"] == 3
    assert template["steps"][0]["promptText"] == "What is on your mind?"
    assert template["difficultyLevel"] == "beginner"

    listed = client.get("/api/exercises/templates?type=active_listening", headers=auth_headers(alice)).get_json()
    assert [t["id"] for t in listed] == [template["id"]]
    assert client.get("/api/exercises/templates?type=future_planning",
                      headers=auth_headers(alice)).get_json() == []
    assert client.get("/api/exercises/templates/999", headers=auth_headers(alice)).status_code == 404

    bad = dict(TEMPLATE, type="mind_reading")
    assert client.post("/api/exercises/templates", json=bad, headers=auth_headers(alice)).status_code == 400


def test_exercise_from_template(client, couple):
    alice, bob, partnership = couple
    template = create_template(client, alice)
    exercise = start_exercise(client, alice, template["id"])

    assert exercise["status"] == "not_started"
    assert exercise["currentUserId"] == alice.id
    assert exercise["partnerId"] == bob.id
    assert exercise["partnershipId"] == partnership.id
    assert exercise["title"] == TEMPLATE["title"]

    steps = client.get(f"/api/exercises/{exercise['id']}/steps", headers=auth_headers(bob)).get_json()
    assert [s["userRole"] for s in steps] == ["initiator", "both", "partner"]
    assert [s["stepNumber"] for s in steps] == [1, 2, 3]


def test_exercise_with_inline_steps(client, couple):
    alice, bob, _ = couple
    resp = client.post("/api/exercises", json={
        "title": "Quick gratitude", "type": "appreciation_sharing",
        "steps": [{"title": "Thanks", "promptText": "Name one thing you're thankful for."}],
    }, headers=auth_headers(bob))
    assert resp.status_code == 201
    assert resp.get_json()["totalSteps"] == 1


def test_exercise_creation_errors(client, couple):
    alice, _, _ = couple
    loner = make_user("loner")
    assert client.post("/api/exercises", json={"title": "Solo"}, headers=auth_headers(alice)).status_code == 400
    assert client.post("/api/exercises", json={"templateId": 999}, headers=auth_headers(alice)).status_code == 404
    resp = client.post("/api/exercises", json={
        "title": "Solo", "type": "empathy_building",
        "steps": [{"title": "Reflect", "promptText": "What did you notice?"}],
    }, headers=auth_headers(loner))
    assert resp.status_code == 404


def test_turns_follow_step_roles_until_completion(client, couple):
    alice, bob, _ = couple
    template = create_template(client, alice)
    exercise_id = start_exercise(client, alice, template["id"])["id"]
    share, appreciate, reflect = step_ids(client, alice, exercise_id)
    url = f"/api/exercises/{exercise_id}"

    assert respond(client, bob, exercise_id, share).status_code == 403

    # initiator-only step hands the shared step to the other participant
    assert respond(client, alice, exercise_id, share).status_code == 201
    state = client.get(url, headers=auth_headers(alice)).get_json()
    assert (state["currentStepNumber"], state["currentUserId"], state["status"]) == (2, bob.id, "in_progress")

    # shared step waits for both answers
    assert respond(client, bob, exercise_id, appreciate).status_code == 201
    state = client.get(url, headers=auth_headers(alice)).get_json()
    assert (state["currentStepNumber"], state["currentUserId"], state["status"]) == (2, alice.id, "partner_turn")

    assert respond(client, alice, exercise_id, appreciate).status_code == 201
    state = client.get(url, headers=auth_headers(alice)).get_json()
    assert (state["currentStepNumber"], state["currentUserId"]) == (3, bob.id)

    assert respond(client, bob, exercise_id, reflect).status_code == 201
    state = client.get(url, headers=auth_headers(alice)).get_json()
    assert state["status"] == "completed"
    assert state["completedAt"] is not None

    assert respond(client, bob, exercise_id, reflect, "again").status_code == 400
    responses = client.get(f"{url}/responses", headers=auth_headers(bob)).get_json()
    assert [r["stepId"] for r in responses] == [share, appreciate, appreciate, reflect]


def test_duplicate_response_and_step_jump(client, couple):
    alice, bob, _ = couple
    template = create_template(client, alice)
    exercise_id = start_exercise(client, alice, template["id"])["id"]
    share, _, _ = step_ids(client, alice, exercise_id)
    respond(client, alice, exercise_id, share)

    resp = client.patch(f"/api/exercises/{exercise_id}/step", json={"stepNumber": 1}, headers=auth_headers(bob))
    assert resp.status_code == 200
    assert resp.get_json()["currentUserId"] == alice.id

    assert respond(client, alice, exercise_id, share).status_code == 400
    assert ExerciseResponse.query.count() == 1

    assert client.patch(f"/api/exercises/{exercise_id}/step", json={"stepNumber": 9},
                        headers=auth_headers(bob)).status_code == 404
    assert respond(client, alice, exercise_id, 999).status_code == 404


def test_status_updates_and_access(client, couple):
    alice, bob, _ = couple
    outsider = make_user("mallory")
    template = create_template(client, alice)
    exercise_id = start_exercise(client, alice, template["id"])["id"]
    url = f"/api/exercises/{exercise_id}"

    assert client.get(url, headers=auth_headers(outsider)).status_code == 403
    assert client.get("/api/exercises/999", headers=auth_headers(alice)).status_code == 404
    assert client.patch(f"{url}/status", json={"status": "paused"}, headers=auth_headers(bob)).status_code == 400

    resp = client.patch(f"{url}/status", json={"status": "completed"}, headers=auth_headers(bob))
    assert resp.status_code == 200
    assert db.session.get(CommunicationExercise, exercise_id).completed_at is not None

    done = client.get("/api/exercises?status=completed", headers=auth_headers(alice)).get_json()
    assert [e["id"] for e in done] == [exercise_id]
    assert client.get("/api/exercises?status=in_progress", headers=auth_headers(alice)).get_json() == []


def test_only_the_current_step_can_be_answered(client, couple):
    alice, bob, _ = couple
    template = create_template(client, alice)
    exercise_id = start_exercise(client, alice, template["id"])["id"]
    share, appreciate, reflect = step_ids(client, alice, exercise_id)

    assert respond(client, alice, exercise_id, reflect).status_code == 409
    assert respond(client, alice, exercise_id, appreciate).status_code == 409

    state = client.get(f"/api/exercises/{exercise_id}", headers=auth_headers(alice)).get_json()
    assert (state["status"], state["currentStepNumber"], state["currentUserId"]) == ("not_started", 1, alice.id)
    assert ExerciseResponse.query.count() == 0


def test_inline_exercise_needs_steps(client, couple):
    alice, _, _ = couple
    resp = client.post("/api/exercises", json={"title": "Empty", "type": "empathy_building"},
                       headers=auth_headers(alice))
    assert resp.status_code == 400
    assert "steps" in resp.get_json()["details"]
    assert CommunicationExercise.query.count() == 0
