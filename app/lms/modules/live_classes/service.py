from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.lms.errors import ApiError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.lms.models import User
    from app.lms.modules.live_classes.models import LiveClass

VISIBILITIES = ("all", "student", "intern")


def create_live_class(s: "Session", payload: dict[str, Any], user: "User") -> "LiveClass":
    from app.lms.modules.courses.service import get_course_or_404
    from app.lms.modules.live_classes.models import LiveClass

    title = (payload.get("title") or "").strip()
    link = (payload.get("link") or "").strip()
    if not title or not link:
        raise ApiError(400, "Title and link are required")
    visibility = (payload.get("visibility") or "all").strip().lower()
    if visibility not in VISIBILITIES:
        raise ApiError(400, f"Invalid visibility. Must be one of: {', '.join(VISIBILITIES)}")
    course_id = payload.get("course_id")
    if course_id not in (None, ""):
        try:
            course_id = get_course_or_404(s, int(course_id)).id
        except (TypeError, ValueError):
            raise ApiError(400, "Invalid course_id")
    else:
        course_id = None

    now = datetime.utcnow()
    live = LiveClass(
        title=title,
        link=link,
        description=(payload.get("description") or "").strip(),
        visibility=visibility,
        course_id=course_id,
        is_active=True,
        start_time=now,
        created_by_user_id=user.id,
        created_at=now,
    )
    s.add(live)
    s.flush()
    return live


def visible_visibilities(role: str) -> tuple[str, ...]:
    if role == "student":
        return ("all", "student")
    if role == "intern":
        return ("all", "intern")
    return ("all",)


def active_for_user(s: "Session", user: "User") -> list["LiveClass"]:
    """Active classes the caller may join; nothing unless they hold a pending or enrolled enrollment."""
    from app.lms.modules.enrollments.models import Enrollment
    from app.lms.modules.live_classes.models import LiveClass

    has_enrollment = s.scalar(
        select(Enrollment.id).where(Enrollment.user_id == user.id, Enrollment.status.in_(("pending", "enrolled"))).limit(1)
    )
    if has_enrollment is None:
        return []
    stmt = (
        select(LiveClass)
        .where(LiveClass.is_active.is_(True), LiveClass.visibility.in_(visible_visibilities(user.role)))
        .order_by(LiveClass.created_at.desc(), LiveClass.id.desc())
    )
    return list(s.execute(stmt).scalars().all())


def check_owner(live: "LiveClass", user: "User") -> None:
    if user.role != "admin" and live.created_by_user_id != user.id:
        raise ApiError(403, "Not authorized")


def update_live_class(live: "LiveClass", payload: dict[str, Any], user: "User") -> bool:
    """
    Apply a partial update. Returns True when this update ended the class.
    """
    check_owner(live, user)
    for field in ("title", "link"):
        if field in payload:
            value = payload[field]
            if not isinstance(value, str) or not value.strip():
                raise ApiError(400, f"{field.capitalize()} cannot be empty")
            setattr(live, field, value.strip())
    if "description" in payload:
        live.description = str(payload.get("description") or "").strip()
    if "visibility" in payload:
        visibility = str(payload.get("visibility") or "").strip().lower()
        if visibility not in VISIBILITIES:
            raise ApiError(400, f"Invalid visibility. Must be one of: {', '.join(VISIBILITIES)}")
        live.visibility = visibility

    if "is_active" not in payload:
        return False
    is_active = payload["is_active"]
    if not isinstance(is_active, bool):
        raise ApiError(400, "is_active must be true or false")
    ended = live.is_active and not is_active
    live.is_active = is_active
    if ended:
        live.end_time = datetime.utcnow()
    return ended


def end_live_class(live: "LiveClass", user: "User") -> "LiveClass":
    check_owner(live, user)
    live.is_active = False
    live.end_time = datetime.utcnow()
    return live


def live_class_payload(live: "LiveClass") -> dict[str, Any]:
    data = live.to_dict()
    data["created_by"] = {"id": live.created_by.id, "name": live.created_by.name} if live.created_by else None
    data["course"] = {"id": live.course.id, "title": live.course.title} if live.course else None
    return data
