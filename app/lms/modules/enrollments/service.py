from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from app.lms.audit import record_event
from app.lms.errors import ApiError
from app.lms.modules.attendance.service import attendance_counts
from app.lms.modules.fees.service import create_fee

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.lms.models import User
    from app.lms.modules.courses.models import Course
    from app.lms.modules.enrollments.models import Enrollment


def find_enrollment(s: "Session", user_id: int, course_id: int) -> "Enrollment | None":
    from app.lms.modules.enrollments.models import Enrollment

    return s.execute(
        select(Enrollment).where(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
    ).scalar_one_or_none()


def enroll(s: "Session", user: "User", course: "Course", *, due_days: int = 7) -> "Enrollment":
    """
    Create a pending enrollment plus its fee (one installment of the full course fee).
    """
    from app.lms.modules.courses.models import Course
    from app.lms.modules.enrollments.models import Enrollment

    if find_enrollment(s, user.id, course.id) is not None:
        raise ApiError(400, "Already enrolled in this course")

    # Claim a seat only while the stored count is below capacity.
    claimed = s.execute(
        update(Course)
        .where(Course.id == course.id, Course.enrolled_count < Course.max_students)
        .values(enrolled_count=Course.enrolled_count + 1)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        raise ApiError(400, "Course is full")
    s.refresh(course)

    enrollment = Enrollment(user_id=user.id, course_id=course.id, status="pending", enrolled_at=datetime.utcnow())
    try:
        with s.begin_nested():
            s.add(enrollment)
    except IntegrityError:
        raise ApiError(400, "Already enrolled in this course")
    fee = create_fee(s, user, course, due_days=due_days)
    s.flush()

    record_event(
        s,
        actor=user,
        action="enrollment.create",
        entity_type="Enrollment",
        entity_id=str(enrollment.id),
        metadata={"course_id": course.id, "fee_id": fee.id, "total_fee": fee.total_fee},
    )
    return enrollment


def complete_enrollment(s: "Session", enrollment: "Enrollment", admin: "User", *, grade: Any, percentage: Any) -> "Enrollment":
    if percentage not in (None, ""):
        try:
            percentage = float(percentage)
        except (TypeError, ValueError):
            raise ApiError(400, f"Invalid percentage: {percentage!r}")
        if not 0 <= percentage <= 100:
            raise ApiError(400, "Percentage must be between 0 and 100")
    else:
        percentage = None
    enrollment.status = "completed"
    enrollment.grade = (str(grade).strip() or None) if grade is not None else None
    enrollment.percentage = percentage
    enrollment.completed_at = datetime.utcnow()
    record_event(
        s,
        actor=admin,
        action="enrollment.complete",
        entity_type="Enrollment",
        entity_id=str(enrollment.id),
        metadata={"grade": enrollment.grade, "percentage": enrollment.percentage},
    )
    return enrollment


def progress_fields(s: "Session", enrollment: "Enrollment") -> dict[str, int]:
    total, attended = attendance_counts(s, enrollment.course_id, enrollment.user_id)
    progress = round(attended / total * 100) if total else 0
    return {"total_classes": total, "attended_classes": attended, "progress": progress}


def enrollment_payload(enrollment: "Enrollment") -> dict[str, Any]:
    data = enrollment.to_dict()
    data["user"] = enrollment.user.summary() if enrollment.user else None
    data["course"] = enrollment.course.summary() if enrollment.course else None
    return data
