from datetime import date, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.lms import create_app
from app.lms import auth as auth_module
from app.lms.auth import issue_token
from app.lms.db import session_scope
from app.lms.models import Base, User
from app.lms.modules.courses.models import Course, CourseTeacher
from app.lms.modules.enrollments.models import Enrollment


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in (
        "S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY",
        "SMTP_SERVER", "ADMIN_NOTIFY_EMAIL", "AUTO_VERIFY_USERS", "JWT_SECRET", "CLIENT_URL",
    ):
        monkeypatch.delenv(k, raising=False)
    # LocalStorage writes under ./storage
    monkeypatch.chdir(tmp_path)
    auth_module._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make(email: str, role: str = "student", *, name: str | None = None, password: str = "secret1", verified: bool = True) -> int:
        with session_scope(app) as s:
            u = User(
                name=name or email.split("@")[0].title(),
                email=email,
                password_hash=generate_password_hash(password),
                role=role,
                is_active=True,
                is_verified=verified,
            )
            s.add(u)
            s.flush()
            return u.id

    return _make


@pytest.fixture()
def make_course(app):
    def _make(
        title: str = "Web Development",
        *,
        fee: float = 30000,
        max_students: int = 50,
        teacher_ids: tuple[int, ...] = (),
        start_date: date | None = None,
        end_date: date | None = None,
        is_active: bool = True,
    ) -> int:
        today = date.today()
        with session_scope(app) as s:
            c = Course(
                title=title,
                fee=fee,
                max_students=max_students,
                start_date=start_date or today - timedelta(days=30),
                end_date=end_date or today + timedelta(days=60),
                is_active=is_active,
            )
            s.add(c)
            s.flush()
            for teacher_id in teacher_ids:
                s.add(CourseTeacher(course_id=c.id, teacher_id=teacher_id))
            return c.id

    return _make


@pytest.fixture()
def enroll_user(app):
    """Insert an enrollment row directly (no fee), for tests that only need membership."""

    def _enroll(user_id: int, course_id: int, status: str = "enrolled") -> int:
        with session_scope(app) as s:
            e = Enrollment(user_id=user_id, course_id=course_id, status=status)
            s.add(e)
            s.flush()
            return e.id

    return _enroll


@pytest.fixture()
def token_for(app):
    def _token(user_id: int) -> str:
        with app.app_context():
            with session_scope(app) as s:
                return issue_token(s.get(User, user_id))

    return _token


@pytest.fixture()
def auth_headers(token_for):
    def _headers(user_id: int) -> dict[str, str]:
        return {"Authorization": f"Bearer {token_for(user_id)}"}

    return _headers
