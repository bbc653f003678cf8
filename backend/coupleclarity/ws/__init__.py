"""
WebSocket relay.

Clients exchange ``{type, data}`` envelopes on the ``message`` event. An
envelope addressed through ``data.recipientId`` (or ``data.partnerId``) goes to
that user's room; anything else is broadcast to every other socket. Nothing is
persisted or retried.
"""
import logging
from typing import Dict, Any, Optional

from flask import Flask, request
from flask_jwt_extended import decode_token, verify_jwt_in_request, get_jwt_identity
from flask_socketio import SocketIO, emit, join_room

logger = logging.getLogger(__name__)

socketio = SocketIO()

# sid -> user id for authenticated sockets
connected_sockets: Dict[str, int] = {}

EVENT = 'message'


def init_socketio(app: Flask) -> SocketIO:
    """Bind the relay to the app."""
    socketio.init_app(
        app,
        path=app.config.get('SOCKETIO_PATH', 'ws'),
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE'),
        cors_allowed_origins=app.config.get('CORS_ORIGINS', '*'),
        manage_session=False,
    )
    logger.info(f"Relay mounted at /{app.config.get('SOCKETIO_PATH', 'ws')}")
    return socketio


def envelope(event_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": event_type, "data": data or {}}


def room_for(user_id: int) -> str:
    return f"user_{user_id}"


def connected_users() -> set:
    """Ids of users with at least one open socket."""
    return set(connected_sockets.values())


def notify_user(user_id: int, event_type: str, data: Optional[Dict[str, Any]] = None) -> None:
    """Send an envelope to every socket of one user; dropped if the user is offline."""
    socketio.emit(EVENT, envelope(event_type, data), to=room_for(user_id))
    logger.debug(f"Relayed {event_type} to user {user_id}")


def broadcast(event_type: str, data: Optional[Dict[str, Any]] = None) -> None:
    socketio.emit(EVENT, envelope(event_type, data))


def _authenticate(auth) -> Optional[int]:
    """Resolve the connecting user from the auth payload, query string or cookie."""
    token = None
    if isinstance(auth, dict):
        token = auth.get('token')
    token = token or request.args.get('token')

    try:
        if token:
            if token.startswith('Bearer '):
                token = token[7:]
            identity = decode_token(token)['sub']
        else:
            verify_jwt_in_request(optional=True)
            identity = get_jwt_identity()
    except Exception as e:
        logger.info(f"Relay connection with invalid token: {e}")
        return None

    try:
        return int(identity) if identity is not None else None
    except (TypeError, ValueError):
        return None


def _target_user(data: Any) -> Optional[int]:
    if not isinstance(data, dict):
        return None
    for key in ('recipientId', 'partnerId'):
        value = data.get(key)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
    return None


@socketio.on('connect')
def handle_connect(auth=None):
    user_id = _authenticate(auth)
    if user_id is not None:
        connected_sockets[request.sid] = user_id
        join_room(room_for(user_id))
        logger.info(f"User {user_id} connected to relay ({request.sid})")
    else:
        logger.debug(f"Anonymous relay connection {request.sid}")
    emit(EVENT, envelope('connected', {"userId": user_id, "authenticated": user_id is not None}))


@socketio.on('disconnect')
def handle_disconnect(*args):
    user_id = connected_sockets.pop(request.sid, None)
    if user_id is not None:
        logger.info(f"User {user_id} disconnected from relay ({request.sid})")


@socketio.on(EVENT)
def handle_message(message):
    if not isinstance(message, dict) or not isinstance(message.get('type'), str) or not message['type']:
        emit(EVENT, envelope('error', {"message": "Invalid message format"}))
        return

    data = message.get('data')
    if data is not None and not isinstance(data, dict):
        data = {"value": data}
    outgoing = envelope(message['type'], dict(data or {}))

    # the sender id is stamped from the socket, never taken from the client
    sender = connected_sockets.get(request.sid)
    if sender is not None:
        outgoing['data']['senderId'] = sender
    else:
        outgoing['data'].pop('senderId', None)

    target = _target_user(data)
    if target is not None and target in connected_users():
        emit(EVENT, outgoing, to=room_for(target))
    else:
        emit(EVENT, outgoing, broadcast=True, include_self=False)
