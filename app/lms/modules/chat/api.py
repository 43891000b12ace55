from __future__ import annotations

from flask import Blueprint, current_app, request

from app.lms.auth import request_payload
from app.lms.db import db_session
from app.lms.errors import ApiError, ok
from app.lms.models import User
from app.lms.modules.chat.service import (
    admin_conversations,
    check_task_access,
    clear_history,
    conversation,
    get_task_or_404,
    mark_read,
    mark_task_read,
    message_payload,
    post_task_message,
    search_users,
    send_direct_message,
    student_course_contacts,
    task_message_payload,
    teacher_course_contacts,
    unread_count,
)
from app.lms.rbac import current_user, require_login, require_roles
from app.lms.realtime import relay_direct_message, relay_task_message

bp = Blueprint("chat", __name__)
tasks_bp = Blueprint("task_chat", __name__)


def _send(course_id: int | None):
    s = db_session()
    user = current_user()
    data = request_payload()
    msg = send_direct_message(s, user, data.get("recipient_id"), data.get("text"), course_id=course_id)
    s.commit()
    payload = message_payload(msg)
    relay_direct_message(payload, msg.sender_id, msg.recipient_id)
    return ok(201, data=payload)


# ---------- Admin support channel ----------
@bp.get("/messages/<int:other_id>")
@require_login
def messages_with(other_id: int):
    s = db_session()
    return ok(data=[message_payload(m) for m in conversation(s, current_user().id, other_id)])


@bp.post("/messages")
@require_login
def send_message():
    return _send(None)


@bp.get("/conversations")
@require_roles("admin")
def conversations():
    return ok(data=admin_conversations(db_session(), current_user()))


@bp.put("/read/<int:sender_id>")
@require_login
def read(sender_id: int):
    s = db_session()
    mark_read(s, current_user().id, sender_id)
    s.commit()
    return ok(message="Messages marked as read")


@bp.get("/unread")
@require_login
def unread():
    return ok(count=unread_count(db_session(), current_user().id))


@bp.post("/action/clear-messages/<int:user_id>")
@require_roles("admin")
def clear_messages(user_id: int):
    s = db_session()
    admin = current_user()
    other = s.get(User, user_id)
    if not other:
        raise ApiError(404, "User not found")
    removed = clear_history(s, admin, other)
    s.commit()
    current_app.logger.info("Admin %s cleared %s messages with user %s", admin.id, removed, other.id)
    return ok(message="Chat history cleared successfully. User account was NOT affected.", messages_removed=removed)


# ---------- Course chat ----------
@bp.get("/course/<int:course_id>/messages/<int:user_id>")
@require_login
def course_messages(course_id: int, user_id: int):
    s = db_session()
    return ok(data=[message_payload(m) for m in conversation(s, current_user().id, user_id, course_id=course_id)])


@bp.post("/course/<int:course_id>/send")
@require_login
def course_send(course_id: int):
    return _send(course_id)


@bp.put("/course/<int:course_id>/read/<int:sender_id>")
@require_login
def course_read(course_id: int, sender_id: int):
    s = db_session()
    mark_read(s, current_user().id, sender_id, course_id=course_id)
    s.commit()
    return ok(message="Messages marked as read")


@bp.get("/teacher/courses")
@require_roles("teacher")
def teacher_courses():
    return ok(data=teacher_course_contacts(db_session(), current_user()))


@bp.get("/student/courses")
@require_roles("student", "intern")
def student_courses():
    return ok(data=student_course_contacts(db_session(), current_user()))


@bp.get("/search")
@require_roles("admin", "teacher")
def search():
    course_id = request.args.get("course_id", type=int)
    users = search_users(db_session(), current_user(), request.args.get("email") or "", course_id)
    return ok(data=[{"id": u.id, "name": u.name, "email": u.email, "role": u.role} for u in users])


# ---------- Task chat ----------
@tasks_bp.get("/<int:task_id>/messages")
@require_login
def task_messages(task_id: int):
    s = db_session()
    task = get_task_or_404(s, task_id)
    check_task_access(task, current_user())
    return ok(messages=[task_message_payload(m) for m in task.messages])


@tasks_bp.post("/<int:task_id>/messages")
@require_login
def post_task_chat(task_id: int):
    s = db_session()
    task = get_task_or_404(s, task_id)
    msg = post_task_message(s, task, current_user(), request_payload().get("text"))
    s.commit()
    payload = {"task_id": task.id, **task_message_payload(msg)}
    relay_task_message(task.id, payload)
    return ok(message=payload)


@tasks_bp.put("/<int:task_id>/read")
@require_login
def task_read(task_id: int):
    s = db_session()
    task = get_task_or_404(s, task_id)
    mark_task_read(task, current_user())
    s.commit()
    return ok(message="Messages marked as read")
