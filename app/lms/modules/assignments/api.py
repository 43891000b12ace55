from __future__ import annotations

from flask import Blueprint, current_app, request
from sqlalchemy import select

from app.lms.auth import request_payload
from app.lms.db import db_session
from app.lms.errors import ApiError, ok
from app.lms.modules.assignments.models import Assignment, Submission
from app.lms.modules.assignments.service import (
    assignment_payload,
    assignments_for_user,
    create_assignment,
    grade_submission,
    is_assigned,
    submit_assignment,
)
from app.lms.modules.courses.service import get_course_or_404
from app.lms.rbac import current_user, require_login, require_roles, user_has_role
from app.lms.storage import sanitize_upload_filename, storage_from_config

bp = Blueprint("assignments", __name__)


def _get_assignment_or_404(s, assignment_id: int) -> Assignment:
    assignment = s.get(Assignment, assignment_id)
    if not assignment:
        raise ApiError(404, "Assignment not found")
    return assignment


@bp.post("/")
@require_roles("teacher", "admin")
def create():
    s = db_session()
    data = request_payload()
    try:
        course_id = int(data.get("course_id"))
    except (TypeError, ValueError):
        raise ApiError(400, "course_id is required")
    course = get_course_or_404(s, course_id)
    assignment = create_assignment(s, course, data, current_user())
    s.commit()
    return ok(201, assignment=assignment_payload(assignment))


@bp.get("/course/<int:course_id>")
@require_login
def course_assignments(course_id: int):
    s = db_session()
    user = current_user()
    rows = s.execute(
        select(Assignment).where(Assignment.course_id == course_id).order_by(Assignment.created_at.desc(), Assignment.id.desc())
    ).scalars().all()
    if user_has_role(user, "teacher", "admin"):
        return ok(assignments=[assignment_payload(a) for a in rows])
    # Learners only see what was assigned to them, and only their own submission.
    visible = [a for a in rows if is_assigned(s, a, user)]
    return ok(assignments=[assignment_payload(a, viewer=user) for a in visible])


@bp.get("/my")
@require_login
def my_assignments():
    s = db_session()
    user = current_user()
    return ok(assignments=[assignment_payload(a, viewer=user) for a in assignments_for_user(s, user)])


@bp.post("/<int:assignment_id>/submit")
@require_login
def submit(assignment_id: int):
    s = db_session()
    user = current_user()
    assignment = _get_assignment_or_404(s, assignment_id)
    if not is_assigned(s, assignment, user):
        raise ApiError(403, "Not assigned to this assignment")
    if any(sub.user_id == user.id for sub in assignment.submissions):
        raise ApiError(400, "Already submitted")

    file_key = None
    f = request.files.get("file")
    if f and f.filename:
        filename = sanitize_upload_filename(f.filename, default="submission.bin")
        file_key = f"assignments/{assignment.id}/{user.id}/{filename}"
        storage_from_config(current_app.config).put_bytes(file_key, f.read(), content_type=f.mimetype)

    submit_assignment(s, assignment, user, notes=request_payload().get("notes"), file_key=file_key)
    s.commit()
    return ok(message="Assignment submitted")


@bp.put("/<int:assignment_id>/grade/<int:submission_id>")
@require_roles("teacher", "admin")
def grade(assignment_id: int, submission_id: int):
    s = db_session()
    assignment = _get_assignment_or_404(s, assignment_id)
    submission = s.get(Submission, submission_id)
    if not submission or submission.assignment_id != assignment.id:
        raise ApiError(404, "Submission not found")
    data = request_payload()
    grade_submission(s, assignment, submission, current_user(), marks=data.get("marks"), feedback=data.get("feedback"))
    s.commit()
    return ok(assignment=assignment_payload(assignment))
