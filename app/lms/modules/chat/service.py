from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, case, delete, func, or_, select, update

from app.lms.audit import record_event
from app.lms.errors import ApiError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.lms.models import User
    from app.lms.modules.chat.models import DirectMessage, PaidTask, TaskMessage

SEARCH_LIMIT = 10
CHAT_ENROLLMENT_STATUSES = ("pending", "enrolled")


def _between(a: int, b: int):
    from app.lms.modules.chat.models import DirectMessage

    return or_(
        and_(DirectMessage.sender_id == a, DirectMessage.recipient_id == b),
        and_(DirectMessage.sender_id == b, DirectMessage.recipient_id == a),
    )


def _course_filter(course_id: int | None):
    from app.lms.modules.chat.models import DirectMessage

    if course_id is None:
        return DirectMessage.course_id.is_(None)
    return DirectMessage.course_id == course_id


def message_payload(m: "DirectMessage") -> dict[str, Any]:
    data = m.to_dict()
    data["sender"] = {"id": m.sender.id, "name": m.sender.name, "role": m.sender.role} if m.sender else None
    data["recipient"] = {"id": m.recipient.id, "name": m.recipient.name, "role": m.recipient.role} if m.recipient else None
    return data


def send_direct_message(
    s: "Session",
    sender: "User",
    recipient_id: Any,
    text: Any,
    *,
    course_id: int | None = None,
) -> "DirectMessage":
    from app.lms.models import User
    from app.lms.modules.chat.models import DirectMessage

    text = (text or "").strip() if isinstance(text, str) else ""
    if not text:
        raise ApiError(400, "Message text is required")
    try:
        recipient = s.get(User, int(recipient_id))
    except (TypeError, ValueError):
        recipient = None
    if recipient is None:
        raise ApiError(404, "Recipient not found")
    if course_id is not None:
        from app.lms.modules.courses.service import get_course_or_404

        get_course_or_404(s, course_id)

    msg = DirectMessage(
        sender_id=sender.id,
        recipient_id=recipient.id,
        course_id=course_id,
        text=text,
        is_read=False,
        created_at=datetime.utcnow(),
    )
    s.add(msg)
    s.flush()
    return msg


def conversation(s: "Session", me_id: int, other_id: int, *, course_id: int | None = None) -> list["DirectMessage"]:
    """Both directions between two users, oldest first, scoped to one channel."""
    from app.lms.modules.chat.models import DirectMessage

    stmt = (
        select(DirectMessage)
        .where(_between(me_id, other_id), _course_filter(course_id))
        .order_by(DirectMessage.created_at.asc(), DirectMessage.id.asc())
    )
    return list(s.execute(stmt).scalars().all())


def mark_read(s: "Session", recipient_id: int, sender_id: int, *, course_id: int | None = None) -> int:
    from app.lms.modules.chat.models import DirectMessage

    result = s.execute(
        update(DirectMessage)
        .where(
            DirectMessage.sender_id == sender_id,
            DirectMessage.recipient_id == recipient_id,
            DirectMessage.is_read.is_(False),
            _course_filter(course_id),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


def unread_count(s: "Session", user_id: int) -> int:
    from app.lms.modules.chat.models import DirectMessage

    return int(
        s.scalar(
            select(func.count())
            .select_from(DirectMessage)
            .where(DirectMessage.recipient_id == user_id, DirectMessage.is_read.is_(False))
        )
        or 0
    )


def _unread_from(s: "Session", sender_id: int, recipient_id: int, course_id: int | None) -> int:
    from app.lms.modules.chat.models import DirectMessage

    return int(
        s.scalar(
            select(func.count())
            .select_from(DirectMessage)
            .where(
                DirectMessage.sender_id == sender_id,
                DirectMessage.recipient_id == recipient_id,
                DirectMessage.is_read.is_(False),
                _course_filter(course_id),
            )
        )
        or 0
    )


def admin_conversations(s: "Session", admin: "User") -> list[dict[str, Any]]:
    """
    One row per counterpart of the admin support channel: last message, its time and the
    number of unread messages sent to the admin. Newest conversation first.
    """
    from app.lms.models import User
    from app.lms.modules.chat.models import DirectMessage

    other_id = case(
        (DirectMessage.sender_id == admin.id, DirectMessage.recipient_id),
        else_=DirectMessage.sender_id,
    )
    unread = case(
        (and_(DirectMessage.recipient_id == admin.id, DirectMessage.is_read.is_(False)), DirectMessage.id),
    )
    summary = (
        select(
            other_id.label("other_id"),
            func.max(DirectMessage.created_at).label("last_at"),
            func.max(DirectMessage.id).label("last_id"),
            func.count(unread).label("unread_count"),
        )
        .where(
            or_(DirectMessage.sender_id == admin.id, DirectMessage.recipient_id == admin.id),
            DirectMessage.course_id.is_(None),
        )
        .group_by(other_id)
        .subquery()
    )
    rows = s.execute(
        select(User, DirectMessage.text, DirectMessage.created_at, summary.c.unread_count)
        .join(summary, User.id == summary.c.other_id)
        .join(DirectMessage, DirectMessage.id == summary.c.last_id)
        .order_by(summary.c.last_at.desc(), summary.c.last_id.desc())
    ).all()
    return [
        {
            "user": {"id": other.id, "name": other.name, "email": other.email, "role": other.role},
            "last_message": text,
            "last_message_at": created_at.isoformat(),
            "unread_count": int(unread_count or 0),
        }
        for other, text, created_at, unread_count in rows
    ]


def clear_history(s: "Session", admin: "User", other: "User") -> int:
    """Delete every message exchanged between the admin and `other`. The user row is untouched."""
    from app.lms.modules.chat.models import DirectMessage

    result = s.execute(
        delete(DirectMessage).where(_between(admin.id, other.id)).execution_options(synchronize_session=False)
    )
    removed = int(result.rowcount or 0)
    record_event(
        s,
        actor=admin,
        action="chat.clear_history",
        entity_type="User",
        entity_id=str(other.id),
        metadata={"messages_removed": removed},
    )
    return removed


def teacher_course_contacts(s: "Session", teacher: "User") -> list[dict[str, Any]]:
    from app.lms.modules.courses.service import courses_taught_by
    from app.lms.modules.enrollments.models import Enrollment

    out = []
    for course in courses_taught_by(s, teacher):
        enrollments = s.execute(
            select(Enrollment)
            .where(Enrollment.course_id == course.id, Enrollment.status.in_(CHAT_ENROLLMENT_STATUSES))
            .order_by(Enrollment.id)
        ).scalars().all()
        students = []
        for e in enrollments:
            if e.user is None:
                continue
            students.append(
                {
                    "id": e.user.id,
                    "name": e.user.name,
                    "email": e.user.email,
                    "role": e.user.role,
                    "unread_count": _unread_from(s, e.user.id, teacher.id, course.id),
                }
            )
        out.append(
            {
                "id": course.id,
                "title": course.title,
                "students": students,
                "total_unread": sum(st["unread_count"] for st in students),
            }
        )
    return out


def student_course_contacts(s: "Session", student: "User") -> list[dict[str, Any]]:
    from app.lms.modules.enrollments.models import Enrollment

    enrollments = s.execute(
        select(Enrollment)
        .where(Enrollment.user_id == student.id, Enrollment.status.in_(CHAT_ENROLLMENT_STATUSES))
        .order_by(Enrollment.id)
    ).scalars().all()
    out = []
    for e in enrollments:
        if e.course is None:
            continue
        teachers = [
            {
                "id": t.id,
                "name": t.name,
                "email": t.email,
                "unread_count": _unread_from(s, t.id, student.id, e.course.id),
            }
            for t in e.course.teachers
        ]
        out.append(
            {
                "id": e.course.id,
                "title": e.course.title,
                "teachers": teachers,
                "total_unread": sum(t["unread_count"] for t in teachers),
            }
        )
    return out


def search_users(s: "Session", actor: "User", email: str, course_id: int | None = None) -> list["User"]:
    """
    Case-insensitive email substring search. Teachers only see learners enrolled in the given
    course, or in any course they teach when no course is given.
    """
    from app.lms.models import User
    from app.lms.modules.courses.models import CourseTeacher
    from app.lms.modules.enrollments.models import Enrollment

    email = (email or "").strip().lower()
    if not email:
        raise ApiError(400, "Email is required")
    stmt = select(User).where(func.lower(User.email).contains(email, autoescape=True))
    if actor.role == "teacher":
        scope = select(Enrollment.user_id).where(Enrollment.status.in_(CHAT_ENROLLMENT_STATUSES))
        if course_id is not None:
            scope = scope.where(Enrollment.course_id == course_id)
        else:
            taught = select(CourseTeacher.course_id).where(CourseTeacher.teacher_id == actor.id)
            scope = scope.where(Enrollment.course_id.in_(taught))
        stmt = stmt.where(User.id.in_(scope))
    stmt = stmt.order_by(User.email.asc()).limit(SEARCH_LIMIT)
    return list(s.execute(stmt).scalars().all())


# ---------- Task chat ----------
def get_task_or_404(s: "Session", task_id: Any) -> "PaidTask":
    from app.lms.modules.chat.models import PaidTask

    try:
        task = s.get(PaidTask, int(task_id))
    except (TypeError, ValueError):
        task = None
    if task is None:
        raise ApiError(404, "Task not found")
    return task


def can_access_task(task: "PaidTask", user: "User | None") -> bool:
    if user is None:
        return False
    return user.role == "admin" or (task.assigned_to_user_id is not None and task.assigned_to_user_id == user.id)


def check_task_access(task: "PaidTask", user: "User") -> None:
    if not can_access_task(task, user):
        raise ApiError(403, "Not authorized to chat on this task")


def post_task_message(s: "Session", task: "PaidTask", user: "User", text: Any) -> "TaskMessage":
    from app.lms.modules.chat.models import TaskMessage

    check_task_access(task, user)
    text = (text or "").strip() if isinstance(text, str) else ""
    if not text:
        raise ApiError(400, "Message text is required")
    msg = TaskMessage(sender_id=user.id, text=text, created_at=datetime.utcnow())
    task.messages.append(msg)
    s.flush()
    record_event(
        s,
        actor=user,
        action="task.message",
        entity_type="PaidTask",
        entity_id=str(task.id),
        metadata={"message_id": msg.id},
    )
    return msg


def mark_task_read(task: "PaidTask", user: "User") -> None:
    check_task_access(task, user)
    if user.role == "admin":
        task.last_read_by_admin = datetime.utcnow()
    else:
        task.last_read_by_assignee = datetime.utcnow()


def task_message_payload(m: "TaskMessage") -> dict[str, Any]:
    data = m.to_dict()
    data["sender"] = {"id": m.sender.id, "name": m.sender.name, "role": m.sender.role} if m.sender else None
    return data
