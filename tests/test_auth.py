"""
Registration, login, password reset and the request guard.
"""
from backend.coupleclarity.models import db, User, Invite, Partnership, PasswordResetToken
from backend.coupleclarity.utils import auth_adapter

from conftest import make_user, auth_headers, connect

REGISTRATION = {
    "username": "casey",
    "password": "password123",
    "firstName": "Casey",
    "lastName": "Jones",
    "email": "casey@example.com",
}


def test_register_returns_user_and_token(client):
    resp = client.post("/api/register", json=REGISTRATION)
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["user"]["username"] == "casey"
    assert data["user"]["displayName"] == "Casey Jones"
    assert "access_token" in data
    assert "password" not in data["user"]

    me = client.get("/api/user", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.get_json()["email"] == "casey@example.com"


def test_register_with_partner_details_creates_invite(client):
    body = dict(REGISTRATION, partnerFirstName="Riley", partnerEmail="riley@example.com")
    resp = client.post("/api/register", json=body)
    assert resp.status_code == 201

    invite = Invite.query.one()
    assert invite.partner_email == "riley@example.com"
    assert invite.partner_first_name == "Riley"
    assert not invite.is_used


def test_register_rejects_duplicates_and_bad_input(client):
    make_user("casey")
    resp = client.post("/api/register", json=REGISTRATION)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Username already exists"

    resp = client.post("/api/register", json=dict(REGISTRATION, username="other", email="CASEY@example.com"))
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Email already exists"

    resp = client.post("/api/register", json=dict(REGISTRATION, username="ab", password="123"))
    assert resp.status_code == 400
    details = resp.get_json()["details"]
    assert "username" in details and "password" in details


def test_register_through_invite_connects_partners(client, alice):
    invite = Invite(alice.id, partner_email="casey@example.com", partner_first_name="Casey")
    db.session.add(invite)
    db.session.commit()

    resp = client.post("/api/register/invite", json=dict(REGISTRATION, inviteToken=invite.invite_token))
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["partnership"]["status"] == "active"
    assert invite.is_used

    # A second redemption of the same token is refused
    again = client.post("/api/register/invite", json=dict(
        REGISTRATION, username="someone", email="someone@example.com", inviteToken=invite.invite_token))
    assert again.status_code == 400
    assert again.get_json()["showConnectOption"] is True


def test_used_invite_reconnects_existing_account_with_password(client, alice):
    casey = make_user("casey", email="casey@example.com")
    invite = Invite(alice.id, partner_email="casey@example.com")
    invite.mark_accepted()
    db.session.add(invite)
    connect(alice, casey, status="inactive")

    wrong = client.post("/api/register/invite", json=dict(
        REGISTRATION, password="not-the-password", inviteToken=invite.invite_token))
    assert wrong.status_code == 401

    resp = client.post("/api/register/invite", json=dict(REGISTRATION, inviteToken=invite.invite_token))
    assert resp.status_code == 200
    assert Partnership.between(alice.id, casey.id).status == "active"


def test_unknown_invite_token(client):
    resp = client.post("/api/register/invite", json=dict(REGISTRATION, inviteToken="nope"))
    assert resp.status_code == 400


def test_login_with_username_or_email(client, alice):
    resp = client.post("/api/login", json={"username": "alice", "password": "password123"})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["id"] == alice.id

    resp = client.post("/api/login", json={"username": "alice@example.com", "password": "password123"})
    assert resp.status_code == 200


def test_login_with_invalid_credentials(client, alice):
    resp = client.post("/api/login", json={"username": "alice", "password": "wrong"})
    assert resp.status_code == 401
    resp = client.post("/api/login", json={"username": "nobody", "password": "password123"})
    assert resp.status_code == 401


def test_protected_route_requires_token(client):
    resp = client.get("/api/user")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Not authenticated"


def test_current_user_is_only_exposed_on_g(client, alice):
    assert not hasattr(auth_adapter, "current_user")
    assert not hasattr(auth_adapter, "get_current_user")
    resp = client.get("/api/user", headers=auth_headers(alice))
    assert resp.get_json()["id"] == alice.id


def test_login_cookie_authenticates_and_logout_clears_it(client, alice):
    client.post("/api/login", json={"username": "alice", "password": "password123"})
    assert client.get("/api/user").status_code == 200

    client.post("/api/logout", json={})
    assert client.get("/api/user").status_code == 401


def test_password_reset_flow(client, alice):
    resp = client.post("/api/forgot-password", json={"email": "alice@example.com"})
    assert resp.status_code == 200
    token = PasswordResetToken.query.filter_by(user_id=alice.id).one()

    assert client.get(f"/api/reset-password/{token.token}").get_json() == {"valid": True}
    assert client.get("/api/reset-password/bogus").status_code == 400

    resp = client.post("/api/reset-password", json={"token": token.token, "newPassword": "newpassword"})
    assert resp.status_code == 200
    assert db.session.get(User, alice.id).verify_password("newpassword")
    assert PasswordResetToken.query.count() == 0

    # Tokens are single use
    resp = client.post("/api/reset-password", json={"token": token.token, "newPassword": "another"})
    assert resp.status_code == 400


def test_forgot_password_does_not_reveal_accounts(client):
    resp = client.post("/api/forgot-password", json={"email": "ghost@example.com"})
    assert resp.status_code == 200
    assert PasswordResetToken.query.count() == 0


def test_form_posts_without_guard_header_are_rejected(client, alice):
    resp = client.post("/api/login", data={"username": "alice", "password": "password123"})
    assert resp.status_code == 403

    resp = client.post("/api/logout", headers={"X-Requested-With": "CoupleClarity"})
    assert resp.status_code == 200


def test_safe_methods_and_non_api_paths_pass_the_guard(client, alice):
    assert client.get("/api/user", headers=auth_headers(alice)).status_code == 200
    assert client.get("/api/health").status_code == 200
    assert client.post("/not-api", data={"x": "1"}).status_code == 404


def test_login_burst_is_rate_limited(client, alice):
    for _ in range(15):
        assert client.post("/api/login", json={"username": "alice", "password": "wrong"}).status_code == 401

    resp = client.post("/api/login", json={"username": "alice", "password": "password123"})
    assert resp.status_code == 429
    assert resp.get_json()["error"] == "Too many attempts. Please try again later."

    # registration draws from the same allowance
    assert client.post("/api/register", json=REGISTRATION).status_code == 429
    assert User.query.filter_by(username="casey").first() is None


def test_password_reset_requests_are_rate_limited(client, alice):
    for _ in range(5):
        assert client.post("/api/forgot-password", json={"email": "alice@example.com"}).status_code == 200
    resp = client.post("/api/forgot-password", json={"email": "alice@example.com"})
    assert resp.status_code == 429
    assert "password reset" in resp.get_json()["error"]

    # logins keep their own allowance
    assert client.post("/api/login", json={"username": "alice", "password": "password123"}).status_code == 200
