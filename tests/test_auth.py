from datetime import datetime, timedelta

from app.lms.db import session_scope
from app.lms.models import AuditEvent, User


def _register(client, **overrides):
    body = {"name": "Ayesha Khan", "email": "ayesha@example.com", "password": "secret1", "role": "student"}
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


def test_register_learner_is_pending(app, client):
    r = _register(client, email="Ayesha@Example.com", cnic="35202-1234567-1", skills="python")
    assert r.status_code == 201
    assert r.json["success"] is True
    assert r.json["isPending"] is True
    assert "token" not in r.json

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "ayesha@example.com").one()
        assert u.is_verified is False
        assert u.cnic == "35202-1234567-1"
        # job-seeker fields are dropped for students
        assert u.skills is None
        assert u.country == "Pakistan"
        assert u.password_hash != "secret1"
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.register").count() == 1


def test_register_validation(client):
    assert _register(client, password="123").status_code == 400
    assert _register(client, role="wizard").status_code == 400
    assert _register(client, name="").status_code == 400

    assert _register(client).status_code == 201
    r = _register(client, name="Someone Else")
    assert r.status_code == 400
    assert r.json["message"] == "User already exists"


def test_auto_verify_users(app, client):
    app.config["AUTO_VERIFY_USERS"] = True
    r = _register(client)
    assert r.status_code == 201
    assert "isPending" not in r.json
    assert r.json["user"]["is_verified"] is True


def test_first_admin_gets_token_then_admins_only(client, make_user, auth_headers):
    r = _register(client, email="boss@example.com", role="admin")
    assert r.status_code == 201
    assert r.json["token"]
    assert r.json["user"]["role"] == "admin"

    r = _register(client, email="boss2@example.com", role="admin")
    assert r.status_code == 403

    admin_id = client.post(
        "/api/auth/login", json={"email": "boss@example.com", "password": "secret1"}
    ).json["user"]["id"]
    r = client.post(
        "/api/auth/register",
        json={"name": "Second Admin", "email": "boss2@example.com", "password": "secret1", "role": "admin"},
        headers=auth_headers(admin_id),
    )
    assert r.status_code == 201


def test_login_pending_then_verified(client, make_user, auth_headers):
    admin = make_user("admin@example.com", "admin")
    student = make_user("student@example.com", verified=False)

    r = client.post("/api/auth/login", json={"email": "student@example.com", "password": "secret1"})
    assert r.status_code == 403
    assert r.json["isPending"] is True

    r = client.put(f"/api/auth/users/{student}/verify", json={}, headers=auth_headers(student))
    assert r.status_code == 403

    r = client.put(f"/api/auth/users/{student}/verify", json={"is_verified": True}, headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json["user"]["is_verified"] is True

    r = client.post("/api/auth/login", json={"email": "STUDENT@example.com", "password": "secret1"})
    assert r.status_code == 200
    assert r.json["token"]
    assert r.json["user"]["email"] == "student@example.com"
    assert "password_hash" not in r.json["user"]


def test_login_errors_and_rate_limit(client, make_user):
    make_user("student@example.com")

    r = client.post("/api/auth/login", json={"email": "student@example.com"})
    assert r.status_code == 400

    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": "student@example.com", "password": "wrong"})
        assert r.status_code == 401
        assert r.json["message"] == "Invalid credentials"

    r = client.post("/api/auth/login", json={"email": "student@example.com", "password": "secret1"})
    assert r.status_code == 429


def test_token_round_trip_and_logout(client, make_user):
    make_user("teacher@example.com", "teacher")
    token = client.post("/api/auth/login", json={"email": "teacher@example.com", "password": "secret1"}).json["token"]
    headers = {"Authorization": f"Bearer {token}"}

    r = client.get("/api/auth/me", headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["role"] == "teacher"

    r = client.post("/api/auth/logout", headers=headers)
    assert r.status_code == 200


def test_profile_update_respects_restricted_fields(app, client, make_user, auth_headers):
    student = make_user("student@example.com", name="Original Name")
    r = client.put(
        "/api/auth/profile",
        json={"name": "Hacked", "cnic": "999", "role": "admin", "phone": "0300-1234567", "city": "Lahore"},
        headers=auth_headers(student),
    )
    assert r.status_code == 200
    user = r.json["user"]
    assert user["name"] == "Original Name"
    assert user["cnic"] is None
    assert user["role"] == "student"
    assert user["phone"] == "0300-1234567"
    assert user["city"] == "Lahore"


def test_admin_can_update_restricted_fields(client, make_user, auth_headers):
    admin = make_user("admin@example.com", "admin")
    make_user("taken@example.com")
    r = client.put("/api/auth/profile", json={"email": "taken@example.com"}, headers=auth_headers(admin))
    assert r.status_code == 400

    r = client.put("/api/auth/profile", json={"name": "Head Office"}, headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Head Office"


def test_change_password(client, make_user, auth_headers):
    student = make_user("student@example.com")
    r = client.put(
        "/api/auth/password",
        json={"current_password": "nope", "new_password": "newsecret"},
        headers=auth_headers(student),
    )
    assert r.status_code == 400

    r = client.put(
        "/api/auth/password",
        json={"current_password": "secret1", "new_password": "newsecret"},
        headers=auth_headers(student),
    )
    assert r.status_code == 200

    r = client.post("/api/auth/login", json={"email": "student@example.com", "password": "newsecret"})
    assert r.status_code == 200


def _capture_mail(monkeypatch):
    sent = []

    def fake_send(config, to, subject, body, html=None):
        sent.append({"to": to, "subject": subject, "body": body})
        return True, "sent"

    monkeypatch.setattr("app.lms.auth.send_email", fake_send)
    return sent


def _reset_token_from(mail):
    return mail["body"].split("/reset-password/", 1)[1].split()[0]


def test_forgot_password_stores_hashed_token_and_mails_link(app, client, make_user, monkeypatch):
    sent = _capture_mail(monkeypatch)
    user_id = make_user("forgetful@example.com")

    assert client.post("/api/auth/forgot-password", json={}).status_code == 400

    r = client.post("/api/auth/forgot-password", json={"email": "Forgetful@Example.com"})
    assert r.status_code == 200
    assert len(sent) == 1
    assert sent[0]["to"] == "forgetful@example.com"
    token = _reset_token_from(sent[0])

    with session_scope(app) as s:
        u = s.get(User, user_id)
        assert u.password_reset_token and u.password_reset_token != token
        assert len(u.password_reset_token) == 64
        assert u.password_reset_expires is not None
        assert "password_reset_token" not in u.to_dict()

    # unknown emails get the same answer and no mail
    r = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert r.status_code == 200
    assert len(sent) == 1


def test_forgot_password_mail_failure_clears_token(app, client, make_user):
    user_id = make_user("forgetful@example.com")
    r = client.post("/api/auth/forgot-password", json={"email": "forgetful@example.com"})
    assert r.status_code == 500
    with session_scope(app) as s:
        assert s.get(User, user_id).password_reset_token is None


def test_reset_password_with_token(app, client, make_user, monkeypatch):
    sent = _capture_mail(monkeypatch)
    make_user("forgetful@example.com", password="oldpass1")
    client.post("/api/auth/forgot-password", json={"email": "forgetful@example.com"})
    token = _reset_token_from(sent[0])

    r = client.post(f"/api/auth/reset-password/{token}", json={"password": "123"})
    assert r.status_code == 400

    r = client.post("/api/auth/reset-password/not-a-real-token", json={"password": "newpass1"})
    assert r.status_code == 400
    assert r.json["message"] == "Invalid or expired reset token"

    r = client.post(f"/api/auth/reset-password/{token}", json={"password": "newpass1"})
    assert r.status_code == 200

    assert client.post("/api/auth/login", json={"email": "forgetful@example.com", "password": "oldpass1"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "forgetful@example.com", "password": "newpass1"}).status_code == 200

    # tokens are single use
    r = client.post(f"/api/auth/reset-password/{token}", json={"password": "another1"})
    assert r.status_code == 400


def test_reset_password_rejects_expired_token(app, client, make_user, monkeypatch):
    sent = _capture_mail(monkeypatch)
    user_id = make_user("forgetful@example.com")
    client.post("/api/auth/forgot-password", json={"email": "forgetful@example.com"})
    token = _reset_token_from(sent[0])

    with session_scope(app) as s:
        s.get(User, user_id).password_reset_expires = datetime.utcnow() - timedelta(minutes=1)

    r = client.post(f"/api/auth/reset-password/{token}", json={"password": "newpass1"})
    assert r.status_code == 400


def test_login_attempts_drop_idle_ips(client, make_user):
    from app.lms import auth as auth_module

    make_user("user@example.com")
    auth_module._login_attempts["10.0.0.9"].append(datetime.utcnow() - timedelta(minutes=10))

    assert auth_module._check_rate_limit("10.0.0.9") is False
    assert "10.0.0.9" not in auth_module._login_attempts

    r = client.post("/api/auth/login", json={"email": "user@example.com", "password": "secret1"})
    assert r.status_code == 200
    assert auth_module._login_attempts == {}
