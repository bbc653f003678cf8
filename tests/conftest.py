import pytest
from flask_jwt_extended import create_access_token

from backend.coupleclarity import create_app
from backend.coupleclarity.models import db, User, Partnership
from backend.coupleclarity.utils.rate_limit import limiter


@pytest.fixture
def app(tmp_path):
    app = create_app("testing", overrides={"UPLOAD_FOLDER": str(tmp_path / "uploads")})
    with app.app_context():
        limiter.reset()
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(username, password="password123", email=None, first_name=None, last_name="Tester"):
    user = User(
        username=username,
        email=email or f"{username}@example.com",
        password=password,
        first_name=first_name or username.capitalize(),
        last_name=last_name,
    )
    db.session.add(user)
    db.session.commit()
    return user


def auth_headers(user):
    token = create_access_token(identity=str(user.id))
    return {"Authorization": f"Bearer {token}", "X-Requested-With": "CoupleClarity"}


def token_for(user):
    return create_access_token(identity=str(user.id))


def envelopes(ws_client):
    """Envelopes received on the ``message`` event since the last call."""
    result = []
    for packet in ws_client.get_received():
        if packet["name"] != "message":
            continue
        args = packet["args"]
        result.append(args[0] if isinstance(args, list) else args)
    return result


def connect(user_a, user_b, status="active"):
    partnership = Partnership(user_a.id, user_b.id, status=status)
    db.session.add(partnership)
    db.session.commit()
    return partnership


@pytest.fixture
def alice(app):
    return make_user("alice")


@pytest.fixture
def bob(app):
    return make_user("bob")


@pytest.fixture
def couple(alice, bob):
    """Alice and Bob with an active partnership."""
    return alice, bob, connect(alice, bob)
