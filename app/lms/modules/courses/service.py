from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.lms.errors import ApiError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.lms.models import User
    from app.lms.modules.courses.models import Course


def course_status(course: "Course", today: date | None = None) -> str:
    """upcoming before start_date, active through end_date (inclusive), completed after."""
    today = today or date.today()
    if today < course.start_date:
        return "upcoming"
    if today <= course.end_date:
        return "active"
    return "completed"


def get_course_or_404(s: "Session", course_id: int) -> "Course":
    from app.lms.modules.courses.models import Course

    course = s.get(Course, course_id)
    if not course:
        raise ApiError(404, "Course not found")
    return course


def courses_taught_by(s: "Session", teacher: "User") -> list["Course"]:
    from app.lms.modules.courses.models import Course, CourseTeacher

    stmt = (
        select(Course)
        .join(CourseTeacher, CourseTeacher.course_id == Course.id)
        .where(CourseTeacher.teacher_id == teacher.id)
        .order_by(Course.title.asc())
    )
    return list(s.execute(stmt).scalars().all())


def course_payload(course: "Course", today: date | None = None) -> dict:
    data = course.to_dict()
    data["status"] = course_status(course, today)
    data["teachers"] = [{"id": t.id, "name": t.name} for t in course.teachers]
    return data
