from datetime import date

from app.lms.db import session_scope
from app.lms.models import AuditEvent
from app.lms.modules.settings.models import SystemSetting
from app.lms.modules.settings.service import holiday_dates


def test_settings_roundtrip(app, client, make_user, auth_headers):
    admin = auth_headers(make_user("admin@example.com", "admin"))
    student = auth_headers(make_user("student@example.com"))

    assert client.get("/api/settings/").status_code == 401
    assert client.get("/api/settings/", headers=student).json["data"] == {}

    r = client.put("/api/settings/registration_open", json={"value": False, "description": "Pause sign-ups"}, headers=admin)
    assert r.status_code == 200
    assert r.json["data"]["value"] is False
    assert r.json["data"]["description"] == "Pause sign-ups"

    client.put("/api/settings/holidays", json={"value": ["2026-12-25"]}, headers=admin)
    client.put("/api/settings/registration_open", json={"value": True}, headers=admin)

    r = client.get("/api/settings/", headers=student)
    assert r.json["data"] == {"holidays": ["2026-12-25"], "registration_open": True}

    with session_scope(app) as s:
        assert s.query(SystemSetting).count() == 2
        assert s.query(AuditEvent).filter(AuditEvent.action == "setting.update").count() == 3


def test_settings_write_rules(client, make_user, auth_headers):
    admin = auth_headers(make_user("admin@example.com", "admin"))
    student = auth_headers(make_user("student@example.com"))
    assert client.put("/api/settings/holidays", json={"value": []}, headers=student).status_code == 403
    r = client.put("/api/settings/holidays", json={}, headers=admin)
    assert r.status_code == 400
    assert r.json["message"] == "value is required"


def test_holiday_dates_ignores_malformed_entries(app, make_user):
    with session_scope(app) as s:
        s.add(SystemSetting(key="holidays", value=["2026-08-14", "not a date", "2026-12-25T00:00:00"]))
    with session_scope(app) as s:
        assert holiday_dates(s) == {date(2026, 8, 14), date(2026, 12, 25)}

    with session_scope(app) as s:
        s.query(SystemSetting).one().value = "2026-08-14"
    with session_scope(app) as s:
        assert holiday_dates(s) == set()
