from __future__ import annotations

import calendar
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any

from sqlalchemy import exists, func, select
from sqlalchemy.orm import aliased

from app.lms.errors import ApiError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

RECENT_SUBMISSIONS_LIMIT = 50


def parse_range(start: str | None, end: str | None, month: str | None) -> tuple[datetime, datetime] | None:
    """
    Inclusive verification-time window from start_date/end_date, or a YYYY-MM month.
    None means unfiltered.
    """
    try:
        if start and end:
            lo = date.fromisoformat(start.strip()[:10])
            hi = date.fromisoformat(end.strip()[:10])
        elif month:
            year_s, month_s = month.strip().split("-", 1)
            year, mon = int(year_s), int(month_s)
            lo = date(year, mon, 1)
            hi = date(year, mon, calendar.monthrange(year, mon)[1])
        else:
            return None
    except ValueError:
        raise ApiError(400, "Invalid date filter; use start_date/end_date (YYYY-MM-DD) or month (YYYY-MM)")
    if hi < lo:
        raise ApiError(400, "end_date must not be before start_date")
    return datetime.combine(lo, time.min), datetime.combine(hi, time.max)


def admin_dashboard(s: "Session", window: tuple[datetime, datetime] | None = None) -> dict[str, Any]:
    from app.lms.models import LEARNER_ROLES, User
    from app.lms.modules.enrollments.models import Enrollment
    from app.lms.modules.fees.models import Fee, Installment

    revenue_q = select(func.coalesce(func.sum(Installment.amount), 0)).where(Installment.status == "verified")
    if window is not None:
        revenue_q = revenue_q.where(Installment.verified_at >= window[0], Installment.verified_at <= window[1])
    total_revenue = float(s.scalar(revenue_q) or 0)

    learner_ids = set(s.execute(select(User.id).where(User.role.in_(LEARNER_ROLES))).scalars().all())
    statuses_by_user: dict[int, set[str]] = {}
    for user_id, status in s.execute(select(Enrollment.user_id, Enrollment.status)).all():
        statuses_by_user.setdefault(user_id, set()).add(status)
    registered = passout = 0
    for user_id in learner_ids:
        statuses = statuses_by_user.get(user_id, set())
        if statuses & {"pending", "enrolled"}:
            registered += 1
        elif "completed" in statuses:
            passout += 1

    recent_q = (
        select(Installment, Fee)
        .join(Fee, Installment.fee_id == Fee.id)
        .where(Installment.receipt_key.is_not(None))
    )
    if window is not None:
        # Same window as revenue: fees with an installment verified inside it.
        verified_in_window = aliased(Installment)
        recent_q = recent_q.where(
            exists().where(
                verified_in_window.fee_id == Fee.id,
                verified_in_window.verified_at >= window[0],
                verified_in_window.verified_at <= window[1],
            )
        )
    rows = s.execute(
        recent_q
        .order_by(func.coalesce(Installment.paid_at, Fee.created_at).desc(), Installment.id.desc())
        .limit(RECENT_SUBMISSIONS_LIMIT)
    ).all()
    recent = [
        {
            "id": inst.id,
            "fee_id": fee.id,
            "student": fee.user.name if fee.user else "Unknown",
            "course": fee.course.title if fee.course else "Unknown Course",
            "amount": inst.amount,
            "date": (inst.paid_at or fee.created_at).isoformat(),
            "status": "pending" if inst.status == "submitted" else inst.status,
        }
        for inst, fee in rows
    ]

    counts = dict(s.execute(select(Installment.status, func.count()).group_by(Installment.status)).all())
    fee_status = {
        "verified": int(counts.get("verified", 0)),
        "pending": int(counts.get("pending", 0)) + int(counts.get("submitted", 0)),
        "rejected": int(counts.get("rejected", 0)),
    }

    return {
        "total_revenue": total_revenue,
        "student_stats": {"total": len(learner_ids), "registered": registered, "passout": passout},
        "recent_submissions": recent,
        "fee_status": fee_status,
    }
