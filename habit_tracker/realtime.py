import logging
import threading
from collections import defaultdict

from flask import has_request_context, request
from flask_socketio import emit, join_room

from . import socketio
from .auth import verify_token
from .errors import AuthError

logger = logging.getLogger(__name__)


def user_room(user_id):
    return f"user_{user_id}"


class SessionRegistry:
    """Maps user ids to their connected socket sessions.

    Lives in process memory only; it starts empty and is rebuilt as clients
    reconnect after a restart.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions = defaultdict(set)
        self._owners = {}

    def add(self, user_id, sid):
        with self._lock:
            self._sessions[user_id].add(sid)
            self._owners[sid] = user_id

    def remove(self, sid):
        with self._lock:
            user_id = self._owners.pop(sid, None)
            if user_id is not None:
                sessions = self._sessions.get(user_id)
                if sessions is not None:
                    sessions.discard(sid)
                    if not sessions:
                        del self._sessions[user_id]
            return user_id

    def sessions(self, user_id):
        with self._lock:
            return set(self._sessions.get(user_id, ()))

    def clear(self):
        with self._lock:
            self._sessions.clear()
            self._owners.clear()


registry = SessionRegistry()


def _user_from_token(token):
    try:
        return verify_token(token)
    except AuthError as e:
        logger.warning(f"Socket authentication failed: {e.message}")
        return None


def _join(user_id):
    join_room(user_room(user_id))
    registry.add(user_id, request.sid)
    logger.info(f"User {user_id} joined their room: {user_room(user_id)}")


@socketio.on("connect")
def on_connect(auth=None):
    token = auth.get("token") if isinstance(auth, dict) else None
    if token is None:
        logger.debug(f"Client connected without token: {request.sid}")
        return None
    user_id = _user_from_token(token)
    if user_id is None:
        return False
    _join(user_id)
    return None


@socketio.on("joinUser")
def on_join_user(data):
    token = data.get("token") if isinstance(data, dict) else None
    user_id = _user_from_token(token) if token else None
    if user_id is None:
        emit("joinError", {"message": "Invalid token"})
        return
    _join(user_id)
    emit("joined", {"userId": user_id})


@socketio.on("disconnect")
def on_disconnect(reason=None):
    user_id = registry.remove(request.sid)
    logger.info(f"Client disconnected: {request.sid} (user {user_id})")


def notify_user(user_id, event_name, payload):
    """Push a change event to the user's sessions; failures are only logged."""
    if not registry.sessions(user_id):
        return
    try:
        skip_sid = request.headers.get("X-Socket-Id") if has_request_context() else None
        socketio.emit(event_name, payload, to=user_room(user_id), skip_sid=skip_sid or None)
        logger.debug(f"Emitted {event_name} to user {user_id}")
    except Exception as e:
        logger.warning(f"Failed to emit {event_name} to user {user_id}: {str(e)}")
