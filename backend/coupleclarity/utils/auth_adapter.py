"""
Authentication adapter module.
Wraps Flask-JWT-Extended so routes work with either the access cookie or a
bearer token, and exposes the loaded user on ``g.current_user``.
"""
import logging
from typing import Dict, Any, Optional, Tuple
from functools import wraps

from flask import request, g, jsonify
from flask_jwt_extended import (verify_jwt_in_request, get_jwt_identity, create_access_token,
                                set_access_cookies, unset_jwt_cookies)

from ..models import db, User

logger = logging.getLogger(__name__)


def auth_required(f):
    """
    Decorator for routes that require authentication.
    Accepts the JWT from the Authorization header or the access cookie.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        # Allow OPTIONS requests to pass through without authentication
        if request.method == 'OPTIONS':
            return f(*args, **kwargs)

        try:
            verify_jwt_in_request()
            user_id = get_jwt_identity()
        except Exception as e:
            logger.info(f"JWT auth rejected: {str(e)}")
            return jsonify({"error": "Not authenticated"}), 401

        try:
            user = db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            user = None
        if not user:
            logger.warning(f"Token identity {user_id} has no matching user")
            return jsonify({"error": "Not authenticated"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated


def issue_token(user: User) -> str:
    """Create an access token whose identity is the user id as a string."""
    return create_access_token(identity=str(user.id))


def login_response(user: User, status: int = 200, **extra: Any) -> Tuple[Any, int]:
    """Build the JSON login response and attach the access cookie.

    Args:
        user: The authenticated user.
        status: HTTP status code of the response.
        **extra: Additional top-level keys for the body.

    Returns:
        Tuple of (response, status).
    """
    access_token = issue_token(user)
    body: Dict[str, Any] = {"user": user.to_dict(), "access_token": access_token}
    body.update(extra)
    response = jsonify(body)
    set_access_cookies(response, access_token)
    return response, status


def logout_response() -> Any:
    response = jsonify({"message": "Logged out successfully"})
    unset_jwt_cookies(response)
    return response


def find_user_for_login(identifier: str) -> Optional[User]:
    """Look a user up by username, falling back to email."""
    user = User.query.filter_by(username=identifier).first()
    if not user and '@' in identifier:
        user = User.query.filter(db.func.lower(User.email) == identifier.lower()).first()
    return user


def login_user(identifier: str, password: str) -> User:
    """
    Check credentials for a username or email.

    Args:
        identifier: Username or email
        password: Password

    Returns:
        User: The authenticated user.

    Raises:
        ValueError: If the credentials do not match.
    """
    logger.debug(f"Login attempt for: {identifier}")
    user = find_user_for_login(identifier)
    if not user or not user.verify_password(password):
        raise ValueError("Invalid username or password")
    return user
