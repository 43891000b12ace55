import io
from datetime import date, timedelta
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from app.lms.db import session_scope
from app.lms.errors import ApiError
from app.lms.models import User
from app.lms.modules.enrollments.models import Enrollment
from app.lms.modules.fees.models import Fee, Installment
from app.lms.modules.fees.service import check_transition, recompute_status


def _enroll(client, headers, course_id):
    r = client.post("/api/enrollments/", json={"course_id": course_id}, headers=headers)
    assert r.status_code == 201
    fee = client.get("/api/fees/my", headers=headers).json["data"][0]
    return fee["id"], fee["installments"][0]["id"]


@pytest.fixture()
def setup(make_user, make_course, auth_headers):
    admin = make_user("admin@example.com", "admin")
    student = make_user("student@example.com")
    course_id = make_course(fee=30000)
    return {
        "admin": auth_headers(admin),
        "student": auth_headers(student),
        "student_id": student,
        "course_id": course_id,
    }


def test_recompute_status():
    fee = Fee(total_fee=100)
    fee.installments = [Installment(amount=40, status="verified"), Installment(amount=60, status="submitted")]
    recompute_status(fee)
    assert (fee.paid_amount, fee.status) == (40, "partial")

    fee.installments[1].status = "verified"
    recompute_status(fee)
    assert (fee.paid_amount, fee.status) == (100, "verified")

    for inst in fee.installments:
        inst.status = "rejected"
    recompute_status(fee)
    assert (fee.paid_amount, fee.status) == (0, "pending")


@pytest.mark.parametrize(
    "current,target",
    [("pending", "submitted"), ("rejected", "submitted"), ("submitted", "verified"), ("submitted", "rejected")],
)
def test_allowed_transitions(current, target):
    check_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [("pending", "verified"), ("verified", "submitted"), ("verified", "rejected"), ("rejected", "verified"), ("pending", "rejected")],
)
def test_invalid_transitions(current, target):
    with pytest.raises(ApiError) as exc:
        check_transition(current, target)
    assert exc.value.status == 400


def test_submit_then_verify_assigns_roll_number(app, client, setup):
    fee_id, inst_id = _enroll(client, setup["student"], setup["course_id"])

    r = client.post(f"/api/fees/{fee_id}/pay", json={"installment_id": inst_id, "slip_id": "HBL-778"}, headers=setup["student"])
    assert r.status_code == 200
    inst = r.json["fee"]["installments"][0]
    assert inst["status"] == "submitted"
    assert inst["slip_id"] == "HBL-778"
    assert inst["paid_at"]

    # a submitted installment cannot be submitted again
    r = client.post(f"/api/fees/{fee_id}/pay", json={"installment_id": inst_id, "slip_id": "HBL-779"}, headers=setup["student"])
    assert r.status_code == 400
    assert "Invalid transition" in r.json["message"]

    r = client.get("/api/fees/pending", headers=setup["admin"])
    assert [f["id"] for f in r.json["data"]] == [fee_id]

    r = client.put(f"/api/fees/{fee_id}/installments/{inst_id}/verify", headers=setup["admin"])
    assert r.status_code == 200
    fee = r.json["fee"]
    assert fee["status"] == "verified"
    assert fee["paid_amount"] == 30000
    assert fee["roll_no_assigned"] is True
    assert fee["installments"][0]["verified_at"]

    with session_scope(app) as s:
        assert s.get(User, setup["student_id"]).roll_no == "0001"
        enrollment = s.query(Enrollment).filter(Enrollment.user_id == setup["student_id"]).one()
        assert enrollment.status == "enrolled"

    assert client.get("/api/fees/pending", headers=setup["admin"]).json["data"] == []

    r = client.put(f"/api/fees/{fee_id}/installments/{inst_id}/verify", headers=setup["admin"])
    assert r.status_code == 400


def test_roll_numbers_increment_across_students(app, client, setup, make_user, auth_headers):
    other = make_user("other@example.com")
    for headers in (setup["student"], auth_headers(other)):
        fee_id, inst_id = _enroll(client, headers, setup["course_id"])
        client.post(f"/api/fees/{fee_id}/pay", json={"installment_id": inst_id, "slip_id": "S"}, headers=headers)
        assert client.put(f"/api/fees/{fee_id}/installments/{inst_id}/verify", headers=setup["admin"]).status_code == 200

    with session_scope(app) as s:
        assert s.get(User, setup["student_id"]).roll_no == "0001"
        assert s.get(User, other).roll_no == "0002"


def test_pay_is_owner_only_and_validated(client, setup, make_user, auth_headers):
    fee_id, inst_id = _enroll(client, setup["student"], setup["course_id"])
    intruder = auth_headers(make_user("intruder@example.com"))

    r = client.post(f"/api/fees/{fee_id}/pay", json={"installment_id": inst_id}, headers=intruder)
    assert r.status_code == 403

    r = client.post(f"/api/fees/{fee_id}/pay", json={}, headers=setup["student"])
    assert r.status_code == 400

    r = client.post(f"/api/fees/{fee_id}/pay", json={"installment_id": 999}, headers=setup["student"])
    assert r.status_code == 404

    r = client.post("/api/fees/999/pay", json={"installment_id": inst_id}, headers=setup["student"])
    assert r.status_code == 404

    r = client.put(f"/api/fees/{fee_id}/installments/{inst_id}/verify", headers=setup["student"])
    assert r.status_code == 403


def test_reject_clears_receipt_and_allows_resubmission(client, setup, tmp_path):
    fee_id, inst_id = _enroll(client, setup["student"], setup["course_id"])

    r = client.post(
        f"/api/fees/{fee_id}/pay",
        data={"installment_id": str(inst_id), "slip_id": "MCB-1", "receipt": (io.BytesIO(b"%PDF-1.4 slip"), "bank slip.pdf")},
        content_type="multipart/form-data",
        headers=setup["student"],
    )
    assert r.status_code == 200
    key = r.json["fee"]["installments"][0]["receipt_key"]
    assert key == f"receipts/{fee_id}/{inst_id}/bank_slip.pdf"
    stored = Path(tmp_path) / "storage" / key
    assert stored.read_bytes() == b"%PDF-1.4 slip"

    r = client.put(
        f"/api/fees/{fee_id}/installments/{inst_id}/reject",
        json={"reason": "Blurry slip"},
        headers=setup["admin"],
    )
    assert r.status_code == 200
    inst = r.json["fee"]["installments"][0]
    assert inst["status"] == "rejected"
    assert inst["slip_id"] is None
    assert inst["receipt_key"] is None
    assert inst["paid_at"] is None
    assert not stored.exists()

    r = client.post(f"/api/fees/{fee_id}/pay", json={"installment_id": inst_id, "slip_id": "MCB-2"}, headers=setup["student"])
    assert r.status_code == 200
    assert r.json["fee"]["installments"][0]["status"] == "submitted"


def test_replace_plan_keeps_locked_installments(client, setup):
    fee_id, _ = _enroll(client, setup["student"], setup["course_id"])
    due = date.today() + timedelta(days=10)
    plan = [
        {"amount": 10000, "due_date": due.isoformat()},
        {"amount": 10000, "due_date": (due + timedelta(days=30)).isoformat()},
        {"amount": 10000, "due_date": (due + timedelta(days=60)).isoformat()},
    ]
    r = client.post(f"/api/fees/{fee_id}/installments", json={"installments": plan}, headers=setup["admin"])
    assert r.status_code == 200
    insts = r.json["fee"]["installments"]
    assert [i["position"] for i in insts] == [0, 1, 2]
    assert all(i["status"] == "pending" for i in insts)

    first, second = insts[0]["id"], insts[1]["id"]
    client.post(f"/api/fees/{fee_id}/pay", json={"installment_id": first, "slip_id": "A"}, headers=setup["student"])
    client.put(f"/api/fees/{fee_id}/installments/{first}/verify", headers=setup["admin"])
    client.post(f"/api/fees/{fee_id}/pay", json={"installment_id": second, "slip_id": "B"}, headers=setup["student"])

    r = client.post(f"/api/fees/{fee_id}/installments", json={"installments": plan[:1]}, headers=setup["admin"])
    assert r.status_code == 400
    assert "2 active payments" in r.json["message"]

    new_plan = [
        {"amount": 1, "due_date": due.isoformat()},
        {"amount": 1, "due_date": due.isoformat()},
        {"amount": 5000, "due_date": due.isoformat()},
        {"amount": 5000, "due_date": (due + timedelta(days=90)).isoformat()},
    ]
    r = client.post(f"/api/fees/{fee_id}/installments", json={"installments": new_plan}, headers=setup["admin"])
    assert r.status_code == 200
    fee = r.json["fee"]
    insts = fee["installments"]
    assert [i["id"] for i in insts[:2]] == [first, second]
    assert [i["status"] for i in insts] == ["verified", "submitted", "pending", "pending"]
    assert [i["amount"] for i in insts] == [10000, 10000, 5000, 5000]
    assert fee["paid_amount"] == 10000
    assert fee["status"] == "partial"

    r = client.post(f"/api/fees/{fee_id}/installments", json={"installments": []}, headers=setup["admin"])
    assert r.status_code == 400


def test_plan_with_cash_payment_activates_enrollment(app, client, setup):
    fee_id, _ = _enroll(client, setup["student"], setup["course_id"])
    r = client.post(
        f"/api/fees/{fee_id}/installments",
        json={"installments": [{"amount": 30000, "due_date": date.today().isoformat(), "status": "verified"}]},
        headers=setup["admin"],
    )
    assert r.status_code == 200
    assert r.json["fee"]["status"] == "verified"
    assert r.json["fee"]["installments"][0]["verified_by_user_id"] is not None

    with session_scope(app) as s:
        assert s.get(User, setup["student_id"]).roll_no == "0001"
        assert s.query(Enrollment).filter(Enrollment.user_id == setup["student_id"]).one().status == "enrolled"


def test_delete_installment_renumbers(client, setup):
    fee_id, _ = _enroll(client, setup["student"], setup["course_id"])
    due = date.today().isoformat()
    r = client.post(
        f"/api/fees/{fee_id}/installments",
        json={"installments": [{"amount": 10000, "due_date": due}, {"amount": 20000, "due_date": due}]},
        headers=setup["admin"],
    )
    first = r.json["fee"]["installments"][0]["id"]

    r = client.delete(f"/api/fees/{fee_id}/installments/{first}", headers=setup["admin"])
    assert r.status_code == 200
    insts = r.json["fee"]["installments"]
    assert len(insts) == 1
    assert insts[0]["amount"] == 20000
    assert insts[0]["position"] == 0


def test_my_fees_repairs_missing_installments(app, client, setup):
    with session_scope(app) as s:
        s.add(Fee(user_id=setup["student_id"], course_id=setup["course_id"], total_fee=12000, paid_amount=0, status="pending"))

    r = client.get("/api/fees/my", headers=setup["student"])
    assert r.status_code == 200
    insts = r.json["data"][0]["installments"]
    assert len(insts) == 1
    assert insts[0]["amount"] == 12000
    assert insts[0]["status"] == "pending"

    with session_scope(app) as s:
        assert len(s.query(Fee).one().installments) == 1


def test_all_fees_admin_only(client, setup):
    _enroll(client, setup["student"], setup["course_id"])
    assert client.get("/api/fees/all", headers=setup["student"]).status_code == 403
    r = client.get("/api/fees/all", headers=setup["admin"])
    assert r.status_code == 200
    assert r.json["data"][0]["user"]["email"] == "student@example.com"


def test_reject_keeps_receipt_when_commit_fails(client, setup, tmp_path, monkeypatch):
    fee_id, inst_id = _enroll(client, setup["student"], setup["course_id"])
    client.post(
        f"/api/fees/{fee_id}/pay",
        data={"installment_id": str(inst_id), "slip_id": "MCB-1", "receipt": (io.BytesIO(b"slip"), "slip.pdf")},
        content_type="multipart/form-data",
        headers=setup["student"],
    )
    stored = Path(tmp_path) / "storage" / f"receipts/{fee_id}/{inst_id}/slip.pdf"
    assert stored.exists()

    def failing_commit(self):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(Session, "commit", failing_commit)
    r = client.put(f"/api/fees/{fee_id}/installments/{inst_id}/reject", json={}, headers=setup["admin"])
    monkeypatch.undo()

    assert r.status_code == 500
    assert stored.exists()
    inst = client.get("/api/fees/my", headers=setup["student"]).json["data"][0]["installments"][0]
    assert inst["status"] == "submitted"
    assert inst["receipt_key"] == f"receipts/{fee_id}/{inst_id}/slip.pdf"


def test_replace_plan_rejects_bad_status(client, setup):
    fee_id, _ = _enroll(client, setup["student"], setup["course_id"])
    due = date.today().isoformat()
    for status in (5, ["verified"], "refunded"):
        r = client.post(
            f"/api/fees/{fee_id}/installments",
            json={"installments": [{"amount": 30000, "due_date": due, "status": status}]},
            headers=setup["admin"],
        )
        assert r.status_code == 400
        assert r.json["message"].startswith("Invalid installment status")
