from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.lms.models import Base

if TYPE_CHECKING:
    from app.lms.models import User


class DailyTask(Base):
    """A learner's daily work log entry for a course."""

    __tablename__ = "daily_tasks"
    __table_args__ = (
        Index("idx_daily_tasks_course", "course_id"),
        Index("idx_daily_tasks_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    work_link: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, default=dt.date.today)

    marks: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    feedback: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="submitted")  # submitted, graded, verified, rejected
    graded_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    graded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id], lazy="selectin")
