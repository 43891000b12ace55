"""
Socket.IO relay.

Clients authenticate on connect with ``auth={"token": <jwt>}``. Each socket may join its own
user room (direct messages) and the rooms of tasks it is allowed to chat on. Nothing here is
durable: messages are persisted by the caller before they are relayed.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, request
from flask_socketio import ConnectionRefusedError, SocketIO, emit, join_room

from app.lms.db import db_session

logger = logging.getLogger(__name__)

socketio = SocketIO()

# sid -> user id for the sockets currently connected to this process.
_connected: dict[str, int] = {}


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def task_room(task_id: int) -> str:
    return f"task:{task_id}"


def _socket_user():
    from app.lms.models import User

    user_id = _connected.get(request.sid)  # type: ignore[attr-defined]
    if user_id is None:
        return None
    user = db_session().get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def relay_direct_message(payload: dict[str, Any], sender_id: int, recipient_id: int) -> None:
    socketio.emit("new_global_message", payload, to=user_room(recipient_id))
    if sender_id != recipient_id:
        socketio.emit("new_global_message", payload, to=user_room(sender_id))


def relay_task_message(task_id: int, payload: dict[str, Any]) -> None:
    socketio.emit("new_message", payload, to=task_room(task_id))


def broadcast(event: str, payload: dict[str, Any]) -> None:
    socketio.emit(event, payload)


@socketio.on("connect")
def on_connect(auth=None):
    from app.lms.auth import user_from_token

    token = auth.get("token") if isinstance(auth, dict) else None
    user = user_from_token(token) if token else None
    if user is None:
        logger.warning("Socket connection refused: missing or invalid token (sid=%s)", request.sid)  # type: ignore[attr-defined]
        raise ConnectionRefusedError("unauthorized")
    _connected[request.sid] = user.id  # type: ignore[attr-defined]
    logger.info("Socket connected: user=%s sid=%s", user.id, request.sid)  # type: ignore[attr-defined]


@socketio.on("disconnect")
def on_disconnect(*_args):
    user_id = _connected.pop(request.sid, None)  # type: ignore[attr-defined]
    logger.info("Socket disconnected: user=%s sid=%s", user_id, request.sid)  # type: ignore[attr-defined]


@socketio.on("join_chat")
def on_join_chat(*_args):
    user = _socket_user()
    if user is None:
        return {"success": False, "message": "Not authorized"}
    join_room(user_room(user.id))
    return {"success": True, "room": user_room(user.id)}


@socketio.on("join_task")
def on_join_task(task_id):
    from app.lms.errors import ApiError
    from app.lms.modules.chat.service import can_access_task, get_task_or_404

    user = _socket_user()
    try:
        task = get_task_or_404(db_session(), task_id)
    except ApiError as e:
        return {"success": False, "message": e.message}
    if not can_access_task(task, user):
        logger.warning("Socket join_task denied: user=%s task=%s", getattr(user, "id", None), task.id)
        return {"success": False, "message": "Not authorized"}
    join_room(task_room(task.id))
    return {"success": True, "room": task_room(task.id)}


@socketio.on("send_message")
def on_send_message(data):
    from app.lms.errors import ApiError
    from app.lms.modules.chat.service import get_task_or_404, post_task_message, task_message_payload

    user = _socket_user()
    if user is None:
        logger.warning("Socket send_message refused: no active user for sid=%s", request.sid)  # type: ignore[attr-defined]
        emit("chat_error", {"message": "Not authorized"})
        return {"success": False, "message": "Not authorized"}
    data = data if isinstance(data, dict) else {}
    s = db_session()
    try:
        task = get_task_or_404(s, data.get("task_id"))
        msg = post_task_message(s, task, user, data.get("text"))
    except ApiError as e:
        s.rollback()
        emit("chat_error", {"message": e.message})
        return {"success": False, "message": e.message}
    s.commit()
    payload = {"task_id": task.id, **task_message_payload(msg)}
    relay_task_message(task.id, payload)
    return {"success": True, "message": payload}


def init_realtime(app: Flask) -> SocketIO:
    socketio.init_app(
        app,
        cors_allowed_origins=app.config.get("CLIENT_URLS") or "*",
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE") or "threading",
    )
    return socketio
