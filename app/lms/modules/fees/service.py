from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.lms.audit import record_event
from app.lms.errors import ApiError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.lms.models import User
    from app.lms.modules.courses.models import Course
    from app.lms.modules.fees.models import Fee, Installment
    from app.lms.storage import Storage

logger = logging.getLogger(__name__)

# (from, to) pairs an installment may move through outside of plan edits.
TRANSITIONS = frozenset(
    {
        ("pending", "submitted"),
        ("rejected", "submitted"),
        ("submitted", "verified"),
        ("submitted", "rejected"),
    }
)
LOCKED_STATUSES = ("submitted", "verified")


def check_transition(current: str, target: str) -> None:
    if (current, target) not in TRANSITIONS:
        raise ApiError(400, f"Invalid transition: installment is {current}, cannot become {target}")


def recompute_status(fee: "Fee") -> None:
    """paid_amount is the sum of verified installments; status follows from it."""
    paid = sum(float(i.amount or 0) for i in fee.installments if i.status == "verified")
    fee.paid_amount = paid
    if paid <= 0:
        fee.status = "pending"
    elif paid < float(fee.total_fee or 0):
        fee.status = "partial"
    else:
        fee.status = "verified"


def parse_amount(value: Any, field: str = "amount") -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ApiError(400, f"Invalid {field}: {value!r}")
    if amount <= 0:
        raise ApiError(400, f"{field.capitalize()} must be greater than 0")
    return amount


def create_fee(s: "Session", user: "User", course: "Course", *, due_days: int = 7, today: date | None = None) -> "Fee":
    """New fee for an enrollment: one installment of the full course fee."""
    from app.lms.modules.fees.models import Fee, Installment

    today = today or date.today()
    now = datetime.utcnow()
    fee = Fee(
        user_id=user.id,
        course_id=course.id,
        total_fee=float(course.fee or 0),
        paid_amount=0,
        status="pending",
        roll_no_assigned=False,
        created_at=now,
        updated_at=now,
    )
    fee.installments.append(
        Installment(position=0, amount=float(course.fee or 0), due_date=today + timedelta(days=due_days), status="pending")
    )
    s.add(fee)
    s.flush()
    return fee


def repair_missing_installments(fee: "Fee", *, due_days: int = 7, today: date | None = None) -> bool:
    """Give a fee without installments a single default one. Returns True when it changed."""
    from app.lms.modules.fees.models import Installment

    if fee.installments:
        return False
    amount = float(fee.total_fee or 0) or float(fee.course.fee or 0 if fee.course else 0)
    if amount <= 0:
        return False
    today = today or date.today()
    fee.installments.append(Installment(position=0, amount=amount, due_date=today + timedelta(days=due_days), status="pending"))
    fee.updated_at = datetime.utcnow()
    logger.info("Repaired fee %s with a default installment of %s", fee.id, amount)
    return True


def get_fee_or_404(s: "Session", fee_id: int) -> "Fee":
    from app.lms.modules.fees.models import Fee

    fee = s.get(Fee, fee_id)
    if not fee:
        raise ApiError(404, "Fee record not found")
    return fee


def get_installment_or_404(fee: "Fee", installment_id: int) -> "Installment":
    for inst in fee.installments:
        if inst.id == installment_id:
            return inst
    raise ApiError(404, "Installment not found")


def submit_payment(
    s: "Session",
    fee: "Fee",
    installment: "Installment",
    user: "User",
    *,
    slip_id: str | None,
    receipt_key: str | None,
) -> "Installment":
    check_transition(installment.status, "submitted")
    old = installment.status
    installment.slip_id = (slip_id or "").strip() or None
    if receipt_key:
        installment.receipt_key = receipt_key
    installment.status = "submitted"
    installment.paid_at = datetime.utcnow()
    fee.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="fee.installment_submit",
        entity_type="Installment",
        entity_id=str(installment.id),
        metadata={"fee_id": fee.id, "from": old, "slip_id": installment.slip_id, "receipt_key": installment.receipt_key},
    )
    return installment


def _activate_enrollment(s: "Session", fee: "Fee") -> None:
    from app.lms.models import User, next_roll_no
    from app.lms.modules.enrollments.models import Enrollment

    student = s.get(User, fee.user_id)
    if student is not None and not student.roll_no:
        student.roll_no = next_roll_no(s)
        logger.info("Assigned roll number %s to %s", student.roll_no, student.email)
    enrollment = s.execute(
        select(Enrollment).where(Enrollment.user_id == fee.user_id, Enrollment.course_id == fee.course_id)
    ).scalar_one_or_none()
    if enrollment is not None and enrollment.status == "pending":
        enrollment.status = "enrolled"
        enrollment.enrolled_at = datetime.utcnow()
    fee.roll_no_assigned = True


def verify_installment(s: "Session", fee: "Fee", installment: "Installment", admin: "User") -> "Installment":
    check_transition(installment.status, "verified")
    now = datetime.utcnow()
    installment.status = "verified"
    installment.verified_by_user_id = admin.id
    installment.verified_at = now
    recompute_status(fee)
    if not fee.roll_no_assigned:
        _activate_enrollment(s, fee)
    fee.updated_at = now
    record_event(
        s,
        actor=admin,
        action="fee.installment_verify",
        entity_type="Installment",
        entity_id=str(installment.id),
        metadata={"fee_id": fee.id, "amount": installment.amount, "fee_status": fee.status},
    )
    logger.info("Installment %s of fee %s verified by %s", installment.id, fee.id, admin.email)
    return installment


def reject_installment(
    s: "Session",
    fee: "Fee",
    installment: "Installment",
    admin: "User",
    *,
    reason: str | None = None,
) -> str | None:
    """
    Reject a submitted proof: the slip and receipt are cleared so the student can upload afresh.
    Returns the old receipt key; the caller deletes the stored object once the rejection is committed.
    """
    check_transition(installment.status, "rejected")
    old_key = installment.receipt_key
    installment.status = "rejected"
    installment.slip_id = None
    installment.receipt_key = None
    installment.paid_at = None
    fee.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=admin,
        action="fee.installment_reject",
        entity_type="Installment",
        entity_id=str(installment.id),
        reason=reason,
        metadata={"fee_id": fee.id, "receipt_key": old_key},
    )
    logger.info("Installment %s of fee %s rejected by %s", installment.id, fee.id, admin.email)
    return old_key


def discard_receipt(storage: "Storage", key: str | None) -> None:
    if not key:
        return
    try:
        storage.delete(key)
    except Exception:
        logger.warning("Could not delete rejected receipt %s", key, exc_info=True)


def replace_plan(s: "Session", fee: "Fee", plan: list[dict[str, Any]], admin: "User") -> "Fee":
    """
    Replace the installment plan.

    Submitted and verified installments are kept untouched at their position; a plan shorter
    than the number of such installments is refused. New rows start pending unless the plan
    marks them verified (cash taken at the desk).
    """
    from app.lms.auth import parse_date_field
    from app.lms.modules.fees.models import Installment

    if not isinstance(plan, list) or not plan:
        raise ApiError(400, "installments must be a non-empty list")

    current = list(fee.installments)
    locked = sum(1 for i in current if i.status in LOCKED_STATUSES)
    if len(plan) < locked:
        raise ApiError(
            400,
            f"Cannot remove installments that are already paid/submitted. You have {locked} active payments.",
        )

    now = datetime.utcnow()
    keep: list[Installment] = []
    for position, row in enumerate(plan):
        existing = current[position] if position < len(current) else None
        if existing is not None and existing.status in LOCKED_STATUSES:
            existing.position = position
            keep.append(existing)
            continue
        if not isinstance(row, dict):
            raise ApiError(400, "Each installment must be an object with amount and due_date")
        due = parse_date_field(row.get("due_date"), "due_date")
        if due is None:
            raise ApiError(400, "due_date is required for each installment")
        status = row.get("status") or "pending"
        if not isinstance(status, str) or status.strip().lower() not in ("pending", "verified"):
            raise ApiError(400, f"Invalid installment status: {status!r}")
        verified = status.strip().lower() == "verified"
        keep.append(
            Installment(
                position=position,
                amount=parse_amount(row.get("amount")),
                due_date=due,
                status="verified" if verified else "pending",
                verified_by_user_id=admin.id if verified else None,
                verified_at=now if verified else None,
            )
        )

    # Locked rows beyond the end of the new plan are carried over, never dropped.
    for inst in current[len(plan):]:
        if inst.status in LOCKED_STATUSES:
            inst.position = len(keep)
            keep.append(inst)

    fee.installments = keep
    recompute_status(fee)
    if fee.paid_amount > 0 and not fee.roll_no_assigned:
        _activate_enrollment(s, fee)
    fee.updated_at = now
    s.flush()
    record_event(
        s,
        actor=admin,
        action="fee.installment_plan",
        entity_type="Fee",
        entity_id=str(fee.id),
        metadata={"installments": [{"amount": i.amount, "due_date": i.due_date, "status": i.status} for i in keep]},
    )
    return fee


def delete_installment(s: "Session", fee: "Fee", installment: "Installment", admin: "User") -> "Fee":
    fee.installments.remove(installment)
    for position, inst in enumerate(fee.installments):
        inst.position = position
    recompute_status(fee)
    fee.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=admin,
        action="fee.installment_delete",
        entity_type="Installment",
        entity_id=str(installment.id),
        metadata={"fee_id": fee.id, "amount": installment.amount, "status": installment.status},
    )
    return fee


def fee_payload(fee: "Fee") -> dict[str, Any]:
    data = fee.to_dict()
    data["course"] = fee.course.summary() if fee.course else None
    data["user"] = fee.user.summary() if fee.user else None
    data["installments"] = [i.to_dict() for i in fee.installments]
    return data
