from datetime import date, timedelta

import pytest

from app.lms import create_app
from app.lms.db import session_scope
from app.lms.models import Counter, next_roll_no
from app.lms.modules.courses.models import Course
from app.lms.modules.courses.service import course_status


def test_health_ok(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json == {"status": "ok", "socket": True}

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_unknown_route_uses_json_envelope(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["success"] is False


def test_protected_route_requires_token(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json == {"success": False, "message": "Not authorized, no token"}

    r = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_production_refuses_sqlite(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()


def test_production_refuses_default_secret(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "change-me")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg2://lms:pw@localhost/lms")
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app()


def test_course_status_follows_dates():
    course = Course(title="Python", start_date=date(2026, 3, 1), end_date=date(2026, 5, 31))
    assert course_status(course, date(2026, 2, 28)) == "upcoming"
    assert course_status(course, date(2026, 3, 1)) == "active"
    assert course_status(course, date(2026, 5, 31)) == "active"
    assert course_status(course, date(2026, 6, 1)) == "completed"


def test_roll_numbers_are_sequential_and_padded(app):
    with session_scope(app) as s:
        assert next_roll_no(s) == "0001"
        assert next_roll_no(s) == "0002"
    with session_scope(app) as s:
        assert next_roll_no(s) == "0003"
        counter = s.query(Counter).filter(Counter.name == "rollNo").one()
        assert counter.value == 3


def test_lock_attendance_cli_is_registered(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["lock-attendance", "--help"])
    assert result.exit_code == 0
    assert "--date" in result.output


def test_enrollment_default_due_days(app, make_user, make_course, auth_headers, client):
    student = make_user("due@example.com")
    course_id = make_course()
    r = client.post("/api/enrollments/", json={"course_id": course_id}, headers=auth_headers(student))
    assert r.status_code == 201
    fees = client.get("/api/fees/my", headers=auth_headers(student)).json["data"]
    assert fees[0]["installments"][0]["due_date"] == (date.today() + timedelta(days=7)).isoformat()
