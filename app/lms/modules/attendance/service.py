from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.lms.audit import record_event
from app.lms.errors import ApiError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.lms.models import User
    from app.lms.modules.attendance.models import AttendanceSheet
    from app.lms.modules.courses.models import Course

logger = logging.getLogger(__name__)

ATTENDANCE_STATUSES = ("present", "absent")
ACTIVE_ENROLLMENT_STATUSES = ("enrolled",)


def find_sheet(s: "Session", course_id: int, day: date) -> "AttendanceSheet | None":
    from app.lms.modules.attendance.models import AttendanceSheet

    return s.execute(
        select(AttendanceSheet).where(AttendanceSheet.course_id == course_id, AttendanceSheet.date == day)
    ).scalar_one_or_none()


def can_edit(sheet: "AttendanceSheet | None", day: date, now: datetime, cutoff_hour: int) -> bool:
    """Editable only on the day itself, before the cutoff hour, while unlocked."""
    if sheet is not None and sheet.is_locked:
        return False
    return day == now.date() and now.hour < cutoff_hour


def mark_attendance(
    s: "Session",
    course: "Course",
    day: date,
    records: list[dict[str, Any]],
    marker: "User",
    *,
    holidays: set[date] | None = None,
) -> "AttendanceSheet":
    """Upsert one record per user on the course's sheet for `day`."""
    from app.lms.models import User
    from app.lms.modules.attendance.models import AttendanceRecord, AttendanceSheet

    if holidays and day in holidays:
        raise ApiError(400, f"{day.isoformat()} is a holiday; attendance cannot be marked")
    if not isinstance(records, list):
        raise ApiError(400, "records must be a list")

    sheet = find_sheet(s, course.id, day)
    if sheet is not None and sheet.is_locked:
        raise ApiError(400, "Attendance for this date is locked")

    now = datetime.utcnow()
    if sheet is None:
        sheet = AttendanceSheet(course_id=course.id, date=day, is_locked=False, is_holiday=False, created_at=now)
        s.add(sheet)

    parsed: list[tuple[int, str]] = []
    for row in records:
        status = (row.get("status") or "").strip().lower() if isinstance(row, dict) else ""
        if status not in ATTENDANCE_STATUSES:
            raise ApiError(400, f"Invalid attendance status: {status!r}")
        try:
            parsed.append((int(row.get("user_id")), status))
        except (TypeError, ValueError):
            raise ApiError(400, "Each record needs a user_id")
    wanted = {user_id for user_id, _ in parsed}
    known = set(s.execute(select(User.id).where(User.id.in_(wanted))).scalars().all()) if wanted else set()
    if wanted - known:
        raise ApiError(400, f"Unknown user id(s): {sorted(wanted - known)}")

    by_user = {r.user_id: r for r in sheet.records}
    for user_id, status in parsed:
        rec = by_user.get(user_id)
        if rec is None:
            rec = AttendanceRecord(user_id=user_id)
            sheet.records.append(rec)
            by_user[user_id] = rec
        rec.status = status
        rec.marked_by_user_id = marker.id
        rec.marked_at = now
        rec.auto_marked = False
    sheet.updated_at = now
    s.flush()

    record_event(
        s,
        actor=marker,
        action="attendance.mark",
        entity_type="AttendanceSheet",
        entity_id=str(sheet.id),
        metadata={"course_id": course.id, "date": day, "records": len(records)},
    )
    return sheet


def user_history(s: "Session", course_id: int, user_id: int) -> list[dict[str, Any]]:
    from app.lms.modules.attendance.models import AttendanceRecord, AttendanceSheet

    rows = s.execute(
        select(AttendanceSheet.date, AttendanceRecord.status)
        .join(AttendanceRecord, AttendanceRecord.sheet_id == AttendanceSheet.id)
        .where(AttendanceSheet.course_id == course_id, AttendanceRecord.user_id == user_id)
        .order_by(AttendanceSheet.date.asc())
    ).all()
    return [{"date": d.isoformat(), "status": status} for d, status in rows]


def attendance_counts(s: "Session", course_id: int, user_id: int) -> tuple[int, int]:
    """(total class days, days the user was present). Holiday sheets are not class days."""
    from app.lms.modules.attendance.models import AttendanceRecord, AttendanceSheet

    total = s.scalar(
        select(func.count())
        .select_from(AttendanceSheet)
        .where(AttendanceSheet.course_id == course_id, AttendanceSheet.is_holiday.is_(False))
    ) or 0
    attended = s.scalar(
        select(func.count())
        .select_from(AttendanceRecord)
        .join(AttendanceSheet, AttendanceRecord.sheet_id == AttendanceSheet.id)
        .where(
            AttendanceSheet.course_id == course_id,
            AttendanceSheet.is_holiday.is_(False),
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.status == "present",
        )
    ) or 0
    return int(total), int(attended)


def sheet_payload(sheet: "AttendanceSheet") -> dict[str, Any]:
    data = sheet.to_dict()
    data["records"] = [
        {
            **r.to_dict(exclude=("sheet_id",)),
            "user": {"id": r.user.id, "name": r.user.name, "roll_no": r.user.roll_no, "role": r.user.role} if r.user else None,
        }
        for r in sheet.records
    ]
    return data


def lock_attendance(s: "Session", day: date | None = None, *, holidays: set[date] | None = None) -> tuple[int, int]:
    """
    Close out a day's attendance for every active course.

    Enrolled users without a record are auto-marked absent and the sheet is locked. Missing
    sheets are created first. Returns (sheets processed, sheets created). On a holiday the
    sheet is flagged and locked without marking anyone absent.
    """
    from app.lms.modules.attendance.models import AttendanceRecord, AttendanceSheet
    from app.lms.modules.courses.models import Course
    from app.lms.modules.enrollments.models import Enrollment

    day = day or (date.today() - timedelta(days=1))
    is_holiday = bool(holidays and day in holidays)
    now = datetime.utcnow()
    processed = created = 0

    courses = s.execute(select(Course).where(Course.is_active.is_(True)).order_by(Course.id)).scalars().all()
    for course in courses:
        sheet = find_sheet(s, course.id, day)
        if sheet is None:
            sheet = AttendanceSheet(course_id=course.id, date=day, created_at=now)
            s.add(sheet)
            created += 1
        elif sheet.is_locked:
            continue

        if is_holiday:
            sheet.is_holiday = True
        else:
            marked = {r.user_id for r in sheet.records}
            user_ids = s.execute(
                select(Enrollment.user_id).where(
                    Enrollment.course_id == course.id,
                    Enrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
                )
            ).scalars().all()
            for user_id in user_ids:
                if user_id not in marked:
                    sheet.records.append(AttendanceRecord(user_id=user_id, status="absent", marked_at=now, auto_marked=True))

        sheet.is_locked = True
        sheet.locked_at = now
        sheet.updated_at = now
        processed += 1

    s.flush()
    record_event(
        s,
        actor=None,
        action="attendance.lock",
        entity_type="AttendanceSheet",
        entity_id=day.isoformat(),
        metadata={"processed": processed, "created": created, "holiday": is_holiday},
    )
    logger.info("Locked attendance for %s: %s sheets processed (%s new)", day.isoformat(), processed, created)
    return processed, created
