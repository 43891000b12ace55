from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import exists, or_, select

from app.lms.audit import record_event
from app.lms.errors import ApiError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.lms.models import User
    from app.lms.modules.assignments.models import Assignment, Submission
    from app.lms.modules.courses.models import Course


def _parse_user_ids(raw: Any) -> list[int]:
    if raw in (None, ""):
        return []
    if isinstance(raw, str):
        raw = [p for p in raw.split(",") if p.strip()]
    if not isinstance(raw, list):
        raise ApiError(400, "assigned_users must be a list of user ids")
    try:
        return sorted({int(v) for v in raw})
    except (TypeError, ValueError):
        raise ApiError(400, "assigned_users must be a list of user ids")


def create_assignment(s: "Session", course: "Course", payload: dict[str, Any], user: "User") -> "Assignment":
    from app.lms.auth import parse_date_field
    from app.lms.modules.assignments.models import Assignment, AssignmentTarget
    from app.lms.modules.enrollments.models import Enrollment

    title = (payload.get("title") or "").strip()
    if not title:
        raise ApiError(400, "Title is required")
    due = parse_date_field(payload.get("due_date"), "due_date")
    if due is None:
        raise ApiError(400, "due_date is required")
    assign_to = (payload.get("assign_to") or "all").strip().lower()
    if assign_to not in ("all", "selected"):
        raise ApiError(400, "assign_to must be 'all' or 'selected'")
    try:
        raw_marks = payload.get("total_marks")
        total_marks = 100.0 if raw_marks in (None, "") else float(raw_marks)
    except (TypeError, ValueError):
        raise ApiError(400, "total_marks must be a number")
    if total_marks <= 0:
        raise ApiError(400, "total_marks must be greater than 0")

    if assign_to == "all":
        # Pending enrollments count as assigned.
        user_ids = list(s.execute(select(Enrollment.user_id).where(Enrollment.course_id == course.id)).scalars().all())
    else:
        user_ids = _parse_user_ids(payload.get("assigned_users"))

    assignment = Assignment(
        course_id=course.id,
        title=title,
        description=(payload.get("description") or "").strip() or None,
        due_date=due,
        total_marks=total_marks,
        assign_to=assign_to,
        created_by_user_id=user.id,
        created_at=datetime.utcnow(),
    )
    assignment.targets = [AssignmentTarget(user_id=uid) for uid in user_ids]
    s.add(assignment)
    s.flush()
    record_event(
        s,
        actor=user,
        action="assignment.create",
        entity_type="Assignment",
        entity_id=str(assignment.id),
        metadata={"course_id": course.id, "assign_to": assign_to, "targets": len(user_ids)},
    )
    return assignment


def is_assigned(s: "Session", assignment: "Assignment", user: "User") -> bool:
    from app.lms.modules.enrollments.models import Enrollment

    if any(t.user_id == user.id for t in assignment.targets):
        return True
    if assignment.assign_to != "all":
        return False
    enrolled = s.scalar(
        select(Enrollment.id).where(Enrollment.course_id == assignment.course_id, Enrollment.user_id == user.id)
    )
    return enrolled is not None


def submit_assignment(
    s: "Session",
    assignment: "Assignment",
    user: "User",
    *,
    notes: str | None,
    file_key: str | None,
) -> "Submission":
    from app.lms.modules.assignments.models import Submission

    if not is_assigned(s, assignment, user):
        raise ApiError(403, "Not assigned to this assignment")
    if any(sub.user_id == user.id for sub in assignment.submissions):
        raise ApiError(400, "Already submitted")
    sub = Submission(
        user_id=user.id,
        notes=(notes or "").strip() or None,
        file_key=file_key,
        submitted_at=datetime.utcnow(),
    )
    assignment.submissions.append(sub)
    s.flush()
    return sub


def grade_submission(
    s: "Session",
    assignment: "Assignment",
    submission: "Submission",
    grader: "User",
    *,
    marks: Any,
    feedback: str | None,
) -> "Submission":
    try:
        value = float(marks)
    except (TypeError, ValueError):
        raise ApiError(400, "marks must be a number")
    if not 0 <= value <= float(assignment.total_marks):
        raise ApiError(400, f"marks must be between 0 and {assignment.total_marks:g}")
    submission.marks = value
    submission.feedback = (feedback or "").strip() or None
    submission.graded_by_user_id = grader.id
    submission.graded_at = datetime.utcnow()
    record_event(
        s,
        actor=grader,
        action="assignment.grade",
        entity_type="Submission",
        entity_id=str(submission.id),
        metadata={"assignment_id": assignment.id, "marks": value},
    )
    return submission


def assignments_for_user(s: "Session", user: "User") -> list["Assignment"]:
    """Assignments in the caller's enrolled courses that are open to everyone or targeted at them."""
    from app.lms.modules.assignments.models import Assignment, AssignmentTarget
    from app.lms.modules.enrollments.models import Enrollment

    course_ids = select(Enrollment.course_id).where(Enrollment.user_id == user.id)
    targeted = exists().where(AssignmentTarget.assignment_id == Assignment.id, AssignmentTarget.user_id == user.id)
    stmt = (
        select(Assignment)
        .where(Assignment.course_id.in_(course_ids), or_(Assignment.assign_to == "all", targeted))
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
    )
    return list(s.execute(stmt).scalars().all())


def assignment_payload(assignment: "Assignment", *, viewer: "User | None" = None, with_submissions: bool = True) -> dict[str, Any]:
    data = assignment.to_dict()
    data["course"] = {"id": assignment.course.id, "title": assignment.course.title} if assignment.course else None
    data["created_by"] = {"id": assignment.created_by.id, "name": assignment.created_by.name} if assignment.created_by else None
    data["assigned_users"] = [t.user_id for t in assignment.targets]
    subs = assignment.submissions
    if viewer is not None:
        subs = [sub for sub in subs if sub.user_id == viewer.id]
    if with_submissions:
        data["submissions"] = [
            {**sub.to_dict(exclude=("assignment_id",)), "user": sub.user.summary() if sub.user else None} for sub in subs
        ]
    return data
