from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.lms.models import Base

if TYPE_CHECKING:
    from app.lms.models import User


class CourseTeacher(Base):
    __tablename__ = "course_teachers"
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)


class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (
        Index("idx_courses_is_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    fee: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    duration: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    target_audience: Mapped[str] = mapped_column(String(16), nullable=False, default="students")  # students, interns
    location: Mapped[str | None] = mapped_column(String(64), nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="General")

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    max_students: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    enrolled_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    teachers: Mapped[list["User"]] = relationship(
        "User",
        secondary="course_teachers",
        lazy="selectin",
    )

    def summary(self) -> dict:
        return {"id": self.id, "title": self.title, "fee": self.fee, "location": self.location}
