from __future__ import annotations

import hashlib
import secrets
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any

import jwt
from flask import Blueprint, current_app, g, request
from sqlalchemy import func, select
from werkzeug.security import check_password_hash, generate_password_hash

from app.lms.audit import record_event
from app.lms.db import db_session
from app.lms.errors import ApiError, ok
from app.lms.mailer import password_reset_notice, registration_notice, send_email
from app.lms.models import LEARNER_ROLES, ROLES, User
from app.lms.rbac import current_user, require_login, require_roles
from app.lms.storage import sanitize_upload_filename, storage_from_config

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

MIN_PASSWORD_LENGTH = 6
PASSWORD_RESET_TTL = timedelta(minutes=10)

COMMON_FIELDS = ("phone", "location", "father_name")
ROLE_FIELDS: dict[str, tuple[str, ...]] = {
    "job": ("skills", "experience", "portfolio"),
    "teacher": ("specialization", "department", "cnic", "qualification", "experience"),
    "student": (
        "cnic", "dob", "gender", "education", "guardian_name", "guardian_phone", "guardian_occupation",
        "address", "city", "country", "attend_type", "heard_about",
    ),
    "intern": (
        "cnic", "dob", "gender", "education", "guardian_name", "guardian_phone", "guardian_occupation",
        "address", "city", "country", "attend_type", "heard_about", "university", "degree", "semester",
    ),
    "admin": (),
}
# Core identity fields only an admin may change through /profile.
RESTRICTED_FIELDS = frozenset(
    {
        "name", "email", "roll_no", "cnic", "dob", "gender", "education", "department",
        "specialization", "qualification", "role", "is_verified",
    }
)
PROFILE_FIELDS = frozenset({"name", "email"} | set(COMMON_FIELDS) | {f for fs in ROLE_FIELDS.values() for f in fs})


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    attempts = [t for t in _login_attempts.get(ip, ()) if t > cutoff]
    if attempts:
        _login_attempts[ip] = attempts
    else:
        _login_attempts.pop(ip, None)
    return len(attempts) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def request_payload() -> dict[str, Any]:
    """JSON body, or form fields for multipart uploads."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def issue_token(user: User) -> str:
    now = datetime.utcnow()
    payload = {
        "id": user.id,
        "iat": now,
        "exp": now + timedelta(days=int(current_app.config.get("JWT_EXPIRE_DAYS") or 30)),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm="HS256")


def user_from_token(token: str) -> User | None:
    """
    Decode a bearer token and load its active user. Returns None for any invalid/expired token.
    """
    try:
        payload = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        current_app.logger.warning("Auth failed: token expired")
        return None
    except jwt.InvalidTokenError as e:
        current_app.logger.warning("Auth failed: token verification error - %s", e)
        return None
    user_id = payload.get("id")
    if not isinstance(user_id, int):
        return None
    user = db_session().get(User, user_id)
    if not user or not user.is_active:
        current_app.logger.warning("Auth failed: user %s not found or inactive", user_id)
        return None
    return user


def load_current_user() -> None:
    """
    Loads g.current_user from the Authorization: Bearer header.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    header = request.headers.get("Authorization") or ""
    if not header.startswith("Bearer "):
        return
    token = header.split(" ", 1)[1].strip()
    if token:
        g.current_user = user_from_token(token)


def parse_date_field(value: Any, field: str) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ApiError(400, f"Invalid date for {field}: {value!r}")


def apply_profile_fields(user: User, data: dict[str, Any], fields: tuple[str, ...] | frozenset[str]) -> dict[str, Any]:
    """Copy allowed fields from the payload onto the user. Returns the changes made."""
    changes: dict[str, Any] = {}
    for field in fields:
        if field not in data:
            continue
        value = data[field]
        if field == "dob":
            value = parse_date_field(value, "dob")
        elif field == "email":
            value = (value or "").strip().lower()
            if not value:
                raise ApiError(400, "Email is required")
        elif isinstance(value, str):
            value = value.strip() or None
        if field == "name" and not value:
            raise ApiError(400, "Name is required")
        if getattr(user, field) != value:
            changes[field] = {"old": str(getattr(user, field)), "new": str(value)}
            setattr(user, field, value)
    return changes


def _store_photo(user: User) -> None:
    f = request.files.get("photo")
    if not f or not f.filename:
        return
    filename = sanitize_upload_filename(f.filename, default="photo.bin")
    key = f"users/{user.id}/photo/{filename}"
    storage_from_config(current_app.config).put_bytes(key, f.read(), content_type=f.mimetype)
    user.photo_key = key


def _notify_admin_of_signup(user: User) -> None:
    to = current_app.config.get("ADMIN_NOTIFY_EMAIL") or ""
    if not to:
        return
    login_url = (current_app.config.get("CLIENT_URLS") or ["http://localhost:5173"])[0].rstrip("/") + "/login"
    subject, text, html = registration_notice(user.name, user.email, user.role, user.phone, login_url)
    sent, message = send_email(current_app.config, to, subject, text, html)
    if not sent:
        current_app.logger.error("Admin signup notification failed for %s: %s", user.email, message)


def login_payload(user: User) -> dict[str, Any]:
    return user.to_dict()


@bp.post("/register")
def register():
    s = db_session()
    data = request_payload()
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    role = (data.get("role") or "student").strip().lower()

    if not name or not email or not password:
        raise ApiError(400, "Name, email and password are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ApiError(400, f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if role not in ROLES:
        raise ApiError(400, f"Invalid role. Must be one of: {', '.join(ROLES)}")

    actor: User | None = getattr(g, "current_user", None)
    actor_is_admin = bool(actor and actor.role == "admin")
    if role == "admin" and not actor_is_admin:
        admins = s.scalar(select(func.count()).select_from(User).where(User.role == "admin")) or 0
        if admins:
            raise ApiError(403, "Admin accounts can only be created by an admin")

    if s.scalar(select(User.id).where(User.email == email)) is not None:
        raise ApiError(400, "User already exists")

    now = datetime.utcnow()
    verified = role == "admin" or actor_is_admin or bool(current_app.config.get("AUTO_VERIFY_USERS"))
    user = User(
        name=name,
        email=email,
        password_hash=generate_password_hash(password),
        role=role,
        country="Pakistan" if role in LEARNER_ROLES else None,
        is_active=True,
        is_verified=verified,
        verified_at=now if verified else None,
        created_at=now,
        updated_at=now,
    )
    apply_profile_fields(user, data, COMMON_FIELDS + ROLE_FIELDS[role])
    s.add(user)
    s.flush()
    _store_photo(user)

    record_event(
        s,
        actor=actor or user,
        action="auth.register",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": user.role},
    )
    s.commit()
    current_app.logger.info("Registered user %s (role=%s, verified=%s)", user.email, user.role, user.is_verified)

    if user.role != "admin":
        _notify_admin_of_signup(user)
        if not user.is_verified:
            return ok(
                201,
                message="Registration successful! Your account is pending admin verification.",
                isPending=True,
            )
        return ok(201, message="Registration successful.", user=login_payload(user))

    return ok(201, token=issue_token(user), user=login_payload(user))


@bp.post("/login")
def login():
    data = request_payload()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    ip = request.remote_addr or "unknown"

    if not email or not password:
        raise ApiError(400, "Please provide email and password")

    if _check_rate_limit(ip):
        raise ApiError(429, "Too many login attempts. Please wait 5 minutes.")
    _record_attempt(ip)

    s = db_session()
    user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        current_app.logger.warning("Login failed for %s (request_id=%s)", email, g.request_id)
        raise ApiError(401, "Invalid credentials")

    if user.role != "admin" and not user.is_verified:
        raise ApiError(
            403,
            "Your account is pending admin verification. Please try again later or contact support.",
            isPending=True,
        )

    _login_attempts.pop(ip, None)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return ok(token=issue_token(user), user=login_payload(user))


@bp.post("/logout")
@require_login
def logout():
    s = db_session()
    user = current_user()
    record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
    s.commit()
    return ok(message="Logged out")


@bp.get("/me")
@require_login
def me():
    return ok(user=current_user().to_dict())


@bp.put("/profile")
@require_login
def update_profile():
    s = db_session()
    user = current_user()
    data = request_payload()

    allowed = PROFILE_FIELDS if user.role == "admin" else PROFILE_FIELDS - RESTRICTED_FIELDS
    if "email" in data and user.role == "admin":
        email = (data.get("email") or "").strip().lower()
        taken = s.scalar(select(User.id).where(User.email == email, User.id != user.id))
        if taken is not None:
            raise ApiError(400, "Email already in use")
    changes = apply_profile_fields(user, data, allowed)
    _store_photo(user)
    user.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="user.profile_update",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"changes": changes},
    )
    s.commit()
    return ok(user=user.to_dict())


@bp.put("/password")
@require_login
def change_password():
    s = db_session()
    user = current_user()
    data = request_payload()
    current_password = data.get("current_password") or ""
    new_password = data.get("new_password") or ""

    if not check_password_hash(user.password_hash, current_password):
        raise ApiError(400, "Current password is incorrect")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ApiError(400, f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    user.password_hash = generate_password_hash(new_password)
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="auth.password_change", entity_type="User", entity_id=str(user.id))
    s.commit()
    return ok(message="Password updated")


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@bp.post("/forgot-password")
def forgot_password():
    """
    Email a single-use reset link. Only the sha256 of the token is stored; the response is the
    same whether or not the account exists.
    """
    s = db_session()
    email = (request_payload().get("email") or "").strip().lower()
    if not email:
        raise ApiError(400, "Please provide email")

    generic = "If account exists, password reset email has been sent"
    user = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.is_active:
        return ok(message=generic)

    token = secrets.token_hex(32)
    user.password_reset_token = _hash_reset_token(token)
    user.password_reset_expires = datetime.utcnow() + PASSWORD_RESET_TTL
    record_event(s, actor=user, action="auth.password_reset_request", entity_type="User", entity_id=str(user.id))
    s.commit()

    client_url = (current_app.config.get("CLIENT_URLS") or ["http://localhost:5173"])[0].rstrip("/")
    subject, text, html = password_reset_notice(user.name, f"{client_url}/reset-password/{token}")
    sent, message = send_email(current_app.config, user.email, subject, text, html)
    if not sent:
        user.password_reset_token = None
        user.password_reset_expires = None
        s.commit()
        current_app.logger.error("Password reset email failed for %s: %s", user.email, message)
        raise ApiError(500, "Error sending email. Please try again.")
    return ok(message=generic)


@bp.post("/reset-password/<token>")
def reset_password(token: str):
    s = db_session()
    password = request_payload().get("password") or ""
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ApiError(400, f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    user = s.execute(
        select(User).where(
            User.password_reset_token == _hash_reset_token(token),
            User.password_reset_expires > datetime.utcnow(),
        )
    ).scalar_one_or_none()
    if user is None:
        current_app.logger.warning("Password reset rejected: invalid or expired token (request_id=%s)", g.request_id)
        raise ApiError(400, "Invalid or expired reset token")

    user.password_hash = generate_password_hash(password)
    user.password_reset_token = None
    user.password_reset_expires = None
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="auth.password_reset", entity_type="User", entity_id=str(user.id))
    s.commit()
    return ok(message="Password reset successful. Please login with your new password.")


@bp.put("/users/<int:user_id>/verify")
@require_roles("admin")
def set_verification(user_id: int):
    """Approve (or revoke) a pending account so it can log in."""
    s = db_session()
    admin = current_user()
    user = s.get(User, user_id)
    if not user:
        raise ApiError(404, "User not found")
    data = request_payload()
    verified = data.get("is_verified", True)
    if isinstance(verified, str):
        verified = verified.strip().lower() in ("1", "true", "yes", "on")
    user.is_verified = bool(verified)
    user.verified_at = datetime.utcnow() if user.is_verified else None
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=admin,
        action="user.verify" if user.is_verified else "user.unverify",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email},
    )
    s.commit()
    current_app.logger.info("User %s verification set to %s by %s", user.email, user.is_verified, admin.email)
    return ok(user=user.to_dict())
