from __future__ import annotations

from flask import Blueprint, current_app, request
from sqlalchemy import exists, select

from app.lms.auth import request_payload
from app.lms.db import db_session
from app.lms.errors import ApiError, ok
from app.lms.modules.fees.models import Fee, Installment
from app.lms.modules.fees.service import (
    check_transition,
    delete_installment,
    discard_receipt,
    fee_payload,
    get_fee_or_404,
    get_installment_or_404,
    reject_installment,
    repair_missing_installments,
    replace_plan,
    submit_payment,
    verify_installment,
)
from app.lms.rbac import current_user, require_login, require_roles
from app.lms.storage import sanitize_upload_filename, storage_from_config

bp = Blueprint("fees", __name__)


def _parse_id(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ApiError(400, f"{field} is required")


@bp.get("/my")
@require_login
def my_fees():
    s = db_session()
    user = current_user()
    fees = s.execute(select(Fee).where(Fee.user_id == user.id).order_by(Fee.created_at.desc(), Fee.id.desc())).scalars().all()
    due_days = int(current_app.config.get("DEFAULT_INSTALLMENT_DUE_DAYS") or 7)
    repaired = [fee for fee in fees if repair_missing_installments(fee, due_days=due_days)]
    if repaired:
        s.commit()
    return ok(data=[fee_payload(f) for f in fees])


@bp.get("/all")
@require_roles("admin")
def all_fees():
    s = db_session()
    fees = s.execute(select(Fee).order_by(Fee.created_at.desc(), Fee.id.desc())).scalars().all()
    return ok(data=[fee_payload(f) for f in fees])


@bp.get("/pending")
@require_roles("admin")
def pending_fees():
    s = db_session()
    has_submitted = exists().where(Installment.fee_id == Fee.id, Installment.status == "submitted")
    fees = s.execute(select(Fee).where(has_submitted).order_by(Fee.updated_at.desc(), Fee.id.desc())).scalars().all()
    return ok(data=[fee_payload(f) for f in fees])


@bp.post("/<int:fee_id>/pay")
@require_login
def pay(fee_id: int):
    s = db_session()
    user = current_user()
    fee = get_fee_or_404(s, fee_id)
    if fee.user_id != user.id:
        raise ApiError(403, "Not authorized")

    data = request_payload()
    installment = get_installment_or_404(fee, _parse_id(data.get("installment_id"), "installment_id"))

    receipt_key = None
    f = request.files.get("receipt")
    if f and f.filename:
        check_transition(installment.status, "submitted")
        filename = sanitize_upload_filename(f.filename, default="receipt.bin")
        receipt_key = f"receipts/{fee.id}/{installment.id}/{filename}"
        storage_from_config(current_app.config).put_bytes(receipt_key, f.read(), content_type=f.mimetype)

    submit_payment(s, fee, installment, user, slip_id=data.get("slip_id"), receipt_key=receipt_key)
    s.commit()
    current_app.logger.info("Payment submitted for fee %s installment %s by %s", fee.id, installment.id, user.email)
    return ok(fee=fee_payload(fee))


@bp.put("/<int:fee_id>/installments/<int:installment_id>/verify")
@require_roles("admin")
def verify(fee_id: int, installment_id: int):
    s = db_session()
    fee = get_fee_or_404(s, fee_id)
    installment = get_installment_or_404(fee, installment_id)
    verify_installment(s, fee, installment, current_user())
    s.commit()
    return ok(fee=fee_payload(fee), message="Payment verified successfully")


@bp.put("/<int:fee_id>/installments/<int:installment_id>/reject")
@require_roles("admin")
def reject(fee_id: int, installment_id: int):
    s = db_session()
    fee = get_fee_or_404(s, fee_id)
    installment = get_installment_or_404(fee, installment_id)
    reason = (request_payload().get("reason") or "").strip() or None
    old_key = reject_installment(s, fee, installment, current_user(), reason=reason)
    s.commit()
    discard_receipt(storage_from_config(current_app.config), old_key)
    return ok(fee=fee_payload(fee), message="Payment rejected. Student can now re-upload.")


@bp.post("/<int:fee_id>/installments")
@require_roles("admin")
def set_plan(fee_id: int):
    s = db_session()
    fee = get_fee_or_404(s, fee_id)
    replace_plan(s, fee, request_payload().get("installments"), current_user())
    s.commit()
    return ok(fee=fee_payload(fee))


@bp.delete("/<int:fee_id>/installments/<int:installment_id>")
@require_roles("admin")
def remove_installment(fee_id: int, installment_id: int):
    s = db_session()
    fee = get_fee_or_404(s, fee_id)
    installment = get_installment_or_404(fee, installment_id)
    delete_installment(s, fee, installment, current_user())
    s.commit()
    return ok(fee=fee_payload(fee), message="Installment deleted successfully")
