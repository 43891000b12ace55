from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from app.lms.errors import ApiError
from app.lms.rbac import user_has_role

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.lms.models import User
    from app.lms.modules.courses.models import Course
    from app.lms.modules.daily_tasks.models import DailyTask

TASK_STATUSES = ("submitted", "graded", "verified", "rejected")


def submit_task(s: "Session", user: "User", course: "Course", content: str | None, work_link: str | None) -> "DailyTask":
    from app.lms.modules.daily_tasks.models import DailyTask

    content = (content or "").strip()
    if not content:
        raise ApiError(400, "Task description is required")
    now = datetime.utcnow()
    task = DailyTask(
        user_id=user.id,
        course_id=course.id,
        content=content,
        work_link=(work_link or "").strip() or None,
        date=date.today(),
        marks=0,
        feedback="",
        status="submitted",
        created_at=now,
        updated_at=now,
    )
    s.add(task)
    s.flush()
    return task


def resubmit_task(task: "DailyTask", user: "User", content: str | None, work_link: str | None) -> "DailyTask":
    """Only a rejected task can go back to submitted; grading is wiped."""
    if task.user_id != user.id:
        raise ApiError(404, "Task not found or unauthorized")
    if task.status != "rejected":
        raise ApiError(400, "Only rejected tasks can be resubmitted")
    task.content = (content or "").strip() or task.content
    if work_link is not None:
        task.work_link = work_link.strip() or None
    task.status = "submitted"
    task.marks = 0
    task.feedback = ""
    task.graded_by_user_id = None
    task.graded_at = None
    task.updated_at = datetime.utcnow()
    return task


def grade_task(task: "DailyTask", grader: "User", *, marks: Any = None, feedback: str | None = None, status: str | None = None) -> "DailyTask":
    status = (status or "graded").strip().lower()
    if status not in TASK_STATUSES[1:]:
        raise ApiError(400, f"Invalid status. Must be one of: {', '.join(TASK_STATUSES[1:])}")
    if marks not in (None, ""):
        try:
            task.marks = float(marks)
        except (TypeError, ValueError):
            raise ApiError(400, "marks must be a number")
        if task.marks < 0:
            raise ApiError(400, "marks cannot be negative")
    if feedback is not None:
        task.feedback = str(feedback).strip()
    task.status = status
    task.graded_by_user_id = grader.id
    task.graded_at = datetime.utcnow()
    task.updated_at = task.graded_at
    return task


def check_can_delete(task: "DailyTask", user: "User") -> None:
    if user_has_role(user, "teacher", "admin"):
        return
    if task.user_id != user.id:
        raise ApiError(403, "Unauthorized")
    if task.status == "verified":
        raise ApiError(400, "Cannot delete a verified task")
