from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.circle.models import Base


class DigestQueueItem(Base):
    """One row per question waiting for the weekly digest."""

    __tablename__ = "digest_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id: Mapped[int] = mapped_column(ForeignKey("group_questions.id", ondelete="CASCADE"), nullable=False, unique=True)
    author_name: Mapped[str] = mapped_column(String(255), nullable=False)
    question_content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    template_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # approved, rejected, pending
    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class EmailHistory(Base):
    __tablename__ = "email_history"
    __table_args__ = (Index("idx_email_history_sent_at", "sent_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_id: Mapped[int | None] = mapped_column(ForeignKey("applications.id", ondelete="SET NULL"), nullable=True, index=True)
    recipient_email: Mapped[str] = mapped_column(String(320), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    template_key: Mapped[str] = mapped_column(String(64), nullable=False)
    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="sent")  # sent, failed
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    open_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    click_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    clicks: Mapped[list["EmailClick"]] = relationship(
        "EmailClick",
        back_populates="email",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class EmailClick(Base):
    __tablename__ = "email_clicks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email_history_id: Mapped[int] = mapped_column(ForeignKey("email_history.id", ondelete="CASCADE"), nullable=False, index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    clicked_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    email: Mapped[EmailHistory] = relationship("EmailHistory", back_populates="clicks")
