import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    jwt_secret: str
    jwt_expire_days: int
    client_urls: tuple[str, ...]
    auto_verify_users: bool

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    smtp_server: str
    smtp_port: int
    smtp_use_tls: bool
    smtp_username: str
    smtp_password: str
    email_from: str
    admin_notify_email: str

    attendance_edit_cutoff_hour: int
    default_installment_due_days: int

    socketio_async_mode: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    client_urls = _getenv("CLIENT_URL", "http://localhost:5173,http://localhost:3000")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///lms.db"),
        jwt_secret=_getenv("JWT_SECRET", secret_key),
        jwt_expire_days=_getenv_int("JWT_EXPIRE_DAYS", 30),
        client_urls=tuple(u.strip() for u in client_urls.split(",") if u.strip()),
        auto_verify_users=_getenv_bool("AUTO_VERIFY_USERS", False),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        smtp_server=_getenv("SMTP_SERVER", ""),
        smtp_port=_getenv_int("SMTP_PORT", 587),
        smtp_use_tls=_getenv_bool("SMTP_USE_TLS", True),
        smtp_username=_getenv("SMTP_USERNAME", ""),
        smtp_password=_getenv("SMTP_PASSWORD", ""),
        email_from=_getenv("EMAIL_FROM", ""),
        admin_notify_email=_getenv("ADMIN_NOTIFY_EMAIL", ""),
        attendance_edit_cutoff_hour=_getenv_int("ATTENDANCE_EDIT_CUTOFF_HOUR", 12),
        default_installment_due_days=_getenv_int("DEFAULT_INSTALLMENT_DUE_DAYS", 7),
        socketio_async_mode=_getenv("SOCKETIO_ASYNC_MODE", "threading"),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "JWT_SECRET": s.jwt_secret,
        "JWT_EXPIRE_DAYS": s.jwt_expire_days,
        "CLIENT_URLS": list(s.client_urls),
        "AUTO_VERIFY_USERS": s.auto_verify_users,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "SMTP_SERVER": s.smtp_server,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USE_TLS": s.smtp_use_tls,
        "SMTP_USERNAME": s.smtp_username,
        "SMTP_PASSWORD": s.smtp_password,
        "EMAIL_FROM": s.email_from,
        "ADMIN_NOTIFY_EMAIL": s.admin_notify_email,
        "ATTENDANCE_EDIT_CUTOFF_HOUR": s.attendance_edit_cutoff_hour,
        "DEFAULT_INSTALLMENT_DUE_DAYS": s.default_installment_due_days,
        "SOCKETIO_ASYNC_MODE": s.socketio_async_mode,
        # receipts / submissions / photos (10MB)
        "MAX_CONTENT_LENGTH": 10 * 1024 * 1024,
        "JSON_SORT_KEYS": False,
    }
