from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.lms.models import Base

if TYPE_CHECKING:
    from app.lms.models import User


class AttendanceSheet(Base):
    """One sheet per course and calendar day."""

    __tablename__ = "attendance_sheets"
    __table_args__ = (
        UniqueConstraint("course_id", "date", name="uq_attendance_course_date"),
        Index("idx_attendance_sheets_date", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_holiday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    records: Mapped[list["AttendanceRecord"]] = relationship(
        "AttendanceRecord",
        back_populates="sheet",
        cascade="all, delete-orphan",
        order_by="AttendanceRecord.id",
        lazy="selectin",
    )


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("sheet_id", "user_id", name="uq_attendance_sheet_user"),
        Index("idx_attendance_records_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sheet_id: Mapped[int] = mapped_column(ForeignKey("attendance_sheets.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="absent")  # present, absent
    marked_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    marked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    auto_marked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    sheet: Mapped["AttendanceSheet"] = relationship("AttendanceSheet", back_populates="records")
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id], lazy="selectin")
