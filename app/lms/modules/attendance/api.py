from __future__ import annotations

from datetime import date, datetime

import click
from flask import Blueprint, current_app
from flask.cli import with_appcontext
from sqlalchemy import select

from app.lms.auth import parse_date_field, request_payload
from app.lms.db import db_session, session_scope
from app.lms.errors import ApiError, ok
from app.lms.modules.attendance.models import AttendanceSheet
from app.lms.modules.attendance.service import (
    can_edit,
    find_sheet,
    lock_attendance,
    mark_attendance,
    sheet_payload,
    user_history,
)
from app.lms.modules.courses.service import get_course_or_404
from app.lms.modules.settings.service import holiday_dates
from app.lms.rbac import current_user, require_login, require_roles

bp = Blueprint("attendance", __name__)


def _parse_day(value: str) -> date:
    day = parse_date_field(value, "date")
    if day is None:
        raise ApiError(400, "date is required")
    return day


@bp.post("/")
@require_roles("teacher", "admin")
def mark():
    s = db_session()
    data = request_payload()
    try:
        course_id = int(data.get("course_id"))
    except (TypeError, ValueError):
        raise ApiError(400, "course_id is required")
    course = get_course_or_404(s, course_id)
    day = _parse_day(data.get("date"))
    sheet = mark_attendance(s, course, day, data.get("records") or [], current_user(), holidays=holiday_dates(s))
    s.commit()
    return ok(attendance=sheet_payload(sheet))


@bp.get("/my/<int:course_id>")
@require_login
def my_history(course_id: int):
    s = db_session()
    return ok(attendances=user_history(s, course_id, current_user().id))


@bp.get("/report/<int:course_id>")
@require_roles("teacher", "admin")
def report(course_id: int):
    s = db_session()
    sheets = s.execute(
        select(AttendanceSheet).where(AttendanceSheet.course_id == course_id).order_by(AttendanceSheet.date.asc())
    ).scalars().all()
    return ok(attendances=[sheet_payload(sh) for sh in sheets])


@bp.get("/<int:course_id>/<day>")
@require_roles("teacher", "admin")
def get_sheet(course_id: int, day: str):
    s = db_session()
    parsed = _parse_day(day)
    sheet = find_sheet(s, course_id, parsed)
    if sheet is not None:
        payload = sheet_payload(sheet)
    else:
        payload = {"course_id": course_id, "date": parsed.isoformat(), "records": [], "is_locked": False, "is_holiday": False}
    cutoff = int(current_app.config.get("ATTENDANCE_EDIT_CUTOFF_HOUR") or 12)
    return ok(attendance=payload, can_edit=can_edit(sheet, parsed, datetime.now(), cutoff))


@click.command("lock-attendance")
@click.option("--date", "day", default=None, help="Day to lock (YYYY-MM-DD). Defaults to yesterday.")
@with_appcontext
def lock_attendance_command(day: str | None) -> None:
    """Auto-mark absentees and lock a day's attendance sheets."""
    try:
        parsed = date.fromisoformat(day) if day else None
    except ValueError:
        raise click.BadParameter(f"{day!r} is not a YYYY-MM-DD date", param_hint="--date")
    with session_scope(current_app) as s:
        processed, created = lock_attendance(s, parsed, holidays=holiday_dates(s))
    click.echo(f"Locked {processed} attendance sheets ({created} new)")
