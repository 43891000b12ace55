from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.lms.models import Base

if TYPE_CHECKING:
    from app.lms.models import User


class DirectMessage(Base):
    """
    One-to-one message. `course_id` NULL means the admin support channel; set means course chat.
    """

    __tablename__ = "direct_messages"
    __table_args__ = (
        Index("idx_direct_messages_pair", "sender_id", "recipient_id", "course_id"),
        Index("idx_direct_messages_recipient_unread", "recipient_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id: Mapped[int | None] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    sender: Mapped["User"] = relationship("User", foreign_keys=[sender_id], lazy="selectin")
    recipient: Mapped["User"] = relationship("User", foreign_keys=[recipient_id], lazy="selectin")


class PaidTask(Base):
    """
    Freelance task offered to job seekers. Only the fields the task chat needs are modelled here.
    """

    __tablename__ = "paid_tasks"
    __table_args__ = (
        Index("idx_paid_tasks_assigned_to", "assigned_to_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")  # open, assigned, submitted, completed
    assigned_to_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    last_read_by_admin: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    last_read_by_assignee: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    messages: Mapped[list["TaskMessage"]] = relationship(
        "TaskMessage",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskMessage.id",
        lazy="selectin",
    )


class TaskMessage(Base):
    __tablename__ = "task_messages"
    __table_args__ = (
        Index("idx_task_messages_task", "task_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    task_id: Mapped[int] = mapped_column(ForeignKey("paid_tasks.id", ondelete="CASCADE"), nullable=False)
    sender_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    task: Mapped["PaidTask"] = relationship("PaidTask", back_populates="messages")
    sender: Mapped["User"] = relationship("User", lazy="selectin")
