from __future__ import annotations

from flask import Blueprint
from sqlalchemy import select

from app.lms.auth import request_payload
from app.lms.db import db_session
from app.lms.errors import ApiError, ok
from app.lms.modules.courses.service import get_course_or_404
from app.lms.modules.daily_tasks.models import DailyTask
from app.lms.modules.daily_tasks.service import check_can_delete, grade_task, resubmit_task, submit_task
from app.lms.rbac import current_user, require_login, require_roles

bp = Blueprint("daily_tasks", __name__)


def _task_payload(task: DailyTask) -> dict:
    data = task.to_dict()
    data["user"] = task.user.summary() if task.user else None
    return data


@bp.post("/")
@require_roles("student", "intern")
def submit():
    s = db_session()
    user = current_user()
    data = request_payload()
    try:
        course_id = int(data.get("course_id"))
    except (TypeError, ValueError):
        raise ApiError(400, "course_id is required")
    course = get_course_or_404(s, course_id)

    task_id = data.get("task_id")
    if task_id:
        try:
            task = s.get(DailyTask, int(task_id))
        except (TypeError, ValueError):
            raise ApiError(400, "Invalid task_id")
        if not task:
            raise ApiError(404, "Task not found or unauthorized")
        resubmit_task(task, user, data.get("content"), data.get("work_link"))
        s.commit()
        return ok(data=_task_payload(task))

    task = submit_task(s, user, course, data.get("content"), data.get("work_link"))
    s.commit()
    return ok(201, data=_task_payload(task))


@bp.get("/course/<int:course_id>")
@require_roles("teacher", "admin")
def course_tasks(course_id: int):
    s = db_session()
    rows = s.execute(
        select(DailyTask).where(DailyTask.course_id == course_id).order_by(DailyTask.created_at.desc(), DailyTask.id.desc())
    ).scalars().all()
    return ok(count=len(rows), data=[_task_payload(t) for t in rows])


@bp.get("/my/<int:course_id>")
@require_roles("student", "intern")
def my_tasks(course_id: int):
    s = db_session()
    user = current_user()
    rows = s.execute(
        select(DailyTask)
        .where(DailyTask.course_id == course_id, DailyTask.user_id == user.id)
        .order_by(DailyTask.created_at.desc(), DailyTask.id.desc())
    ).scalars().all()
    return ok(count=len(rows), data=[t.to_dict() for t in rows])


@bp.put("/<int:task_id>/grade")
@require_roles("teacher", "admin")
def grade(task_id: int):
    s = db_session()
    task = s.get(DailyTask, task_id)
    if not task:
        raise ApiError(404, "Task not found")
    data = request_payload()
    grade_task(task, current_user(), marks=data.get("marks"), feedback=data.get("feedback"), status=data.get("status"))
    s.commit()
    return ok(data=_task_payload(task))


@bp.delete("/<int:task_id>")
@require_login
def delete(task_id: int):
    s = db_session()
    task = s.get(DailyTask, task_id)
    if not task:
        raise ApiError(404, "Task not found")
    check_can_delete(task, current_user())
    s.delete(task)
    s.commit()
    return ok(message="Task deleted successfully")
