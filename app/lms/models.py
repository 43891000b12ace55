from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

ROLES = ("admin", "teacher", "student", "intern", "job")
LEARNER_ROLES = ("student", "intern")


class Base(DeclarativeBase):
    def to_dict(self, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
        """
        Convert the mapped columns to a JSON-ready dict.
        """
        result: dict[str, Any] = {}
        for column in self.__table__.columns:
            if column.key in exclude:
                continue
            value = getattr(self, column.key)
            if isinstance(value, (datetime, date)):
                result[column.key] = value.isoformat()
            else:
                result[column.key] = value
        return result


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="student")  # see ROLES
    roll_no: Mapped[str | None] = mapped_column(String(16), nullable=True, unique=True)

    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    photo_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    location: Mapped[str | None] = mapped_column(String(64), nullable=True)  # campus
    cnic: Mapped[str | None] = mapped_column(String(32), nullable=True)
    father_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Student / intern profile
    dob: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(16), nullable=True)
    education: Mapped[str | None] = mapped_column(String(255), nullable=True)
    guardian_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    guardian_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    guardian_occupation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    attend_type: Mapped[str | None] = mapped_column(String(32), nullable=True)  # Physical / Online
    heard_about: Mapped[str | None] = mapped_column(String(255), nullable=True)
    university: Mapped[str | None] = mapped_column(String(255), nullable=True)
    degree: Mapped[str | None] = mapped_column(String(255), nullable=True)
    semester: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Teacher profile
    specialization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    qualification: Mapped[str | None] = mapped_column(String(255), nullable=True)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Job-seeker profile
    skills: Mapped[str | None] = mapped_column(Text, nullable=True)
    experience: Mapped[str | None] = mapped_column(Text, nullable=True)
    portfolio: Mapped[str | None] = mapped_column(String(512), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    password_reset_token: Mapped[str | None] = mapped_column(String(64), nullable=True)  # sha256 hex
    password_reset_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
        return super().to_dict(exclude=("password_hash", "password_reset_token", "password_reset_expires") + tuple(exclude))

    def summary(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role, "roll_no": self.roll_no}


class Counter(Base):
    """
    Named monotonically increasing sequence (roll numbers).
    """

    __tablename__ = "counters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


def next_roll_no(s: Session) -> str:
    """Next roll number as a zero-padded 4-digit string ("0001", "0002", ...)."""
    counter = s.execute(select(Counter).where(Counter.name == "rollNo").with_for_update()).scalar_one_or_none()
    if counter is None:
        counter = Counter(name="rollNo", value=0)
        s.add(counter)
    counter.value += 1
    s.flush()
    return f"{counter.value:04d}"


class AuditEvent(Base):
    """
    Append-only audit trail event.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        Index("idx_audit_events_action", "action"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "fee.installment_verify"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Installment"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.lms.modules.courses.models import Course, CourseTeacher  # noqa: E402,F401
from app.lms.modules.enrollments.models import Enrollment  # noqa: E402,F401
from app.lms.modules.fees.models import Fee, Installment  # noqa: E402,F401
from app.lms.modules.attendance.models import AttendanceRecord, AttendanceSheet  # noqa: E402,F401
from app.lms.modules.assignments.models import Assignment, AssignmentTarget, Submission  # noqa: E402,F401
from app.lms.modules.daily_tasks.models import DailyTask  # noqa: E402,F401
from app.lms.modules.live_classes.models import LiveClass  # noqa: E402,F401
from app.lms.modules.chat.models import DirectMessage, PaidTask, TaskMessage  # noqa: E402,F401
from app.lms.modules.settings.models import SystemSetting  # noqa: E402,F401
