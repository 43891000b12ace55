from __future__ import annotations

from flask import Blueprint, current_app
from sqlalchemy import select

from app.lms.auth import request_payload
from app.lms.db import db_session
from app.lms.errors import ApiError, ok
from app.lms.modules.courses.service import course_payload, get_course_or_404
from app.lms.modules.enrollments.models import Enrollment
from app.lms.modules.enrollments.service import complete_enrollment, enroll, enrollment_payload, progress_fields
from app.lms.rbac import current_user, require_login, require_roles

bp = Blueprint("enrollments", __name__)


@bp.post("/")
@require_login
def create_enrollment():
    s = db_session()
    user = current_user()
    try:
        course_id = int(request_payload().get("course_id"))
    except (TypeError, ValueError):
        raise ApiError(400, "course_id is required")
    course = get_course_or_404(s, course_id)
    enrollment = enroll(s, user, course, due_days=int(current_app.config.get("DEFAULT_INSTALLMENT_DUE_DAYS") or 7))
    s.commit()
    current_app.logger.info("User %s enrolled in course %s (pending fee)", user.email, course.id)
    return ok(201, enrollment=enrollment_payload(enrollment))


@bp.get("/my")
@require_login
def my_enrollments():
    s = db_session()
    user = current_user()
    rows = s.execute(
        select(Enrollment).where(Enrollment.user_id == user.id).order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
    ).scalars().all()
    data = []
    for e in rows:
        item = e.to_dict()
        item["course"] = course_payload(e.course) if e.course else None
        item.update(progress_fields(s, e))
        data.append(item)
    return ok(data=data)


@bp.put("/<int:enrollment_id>/complete")
@require_roles("admin")
def complete(enrollment_id: int):
    s = db_session()
    enrollment = s.get(Enrollment, enrollment_id)
    if not enrollment:
        raise ApiError(404, "Enrollment not found")
    data = request_payload()
    complete_enrollment(s, enrollment, current_user(), grade=data.get("grade"), percentage=data.get("percentage"))
    s.commit()
    return ok(enrollment=enrollment_payload(enrollment))


@bp.get("/all")
@require_roles("admin", "teacher")
def all_enrollments():
    s = db_session()
    rows = s.execute(select(Enrollment).order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())).scalars().all()
    return ok(count=len(rows), data=[enrollment_payload(e) for e in rows])
