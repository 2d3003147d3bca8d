from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.circle.models import Base, User


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    avatar_key: Mapped[str | None] = mapped_column(String(512), nullable=True)  # storage key
    growth_goal: Mapped[str | None] = mapped_column(Text, nullable=True)
    monthly_milestones: Mapped[str | None] = mapped_column(Text, nullable=True)
    notification_preference: Mapped[str] = mapped_column(String(16), nullable=False, default="instant")  # instant, digest, off

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship(User, back_populates="profile")


class WeeklyEntry(Base):
    __tablename__ = "weekly_entries"
    __table_args__ = (UniqueConstraint("user_id", "week_start", name="uq_weekly_entries_user_week"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)  # always a Monday

    obstacles: Mapped[str | None] = mapped_column(Text, nullable=True)
    wins: Mapped[str | None] = mapped_column(Text, nullable=True)
    self_care: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    mini_moves: Mapped[list["MiniMove"]] = relationship(
        "MiniMove",
        back_populates="weekly_entry",
        cascade="all, delete-orphan",
        order_by="MiniMove.created_at.asc(), MiniMove.id.asc()",
        lazy="selectin",
    )


class MiniMove(Base):
    __tablename__ = "mini_moves"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    weekly_entry_id: Mapped[int] = mapped_column(ForeignKey("weekly_entries.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    weekly_entry: Mapped[WeeklyEntry] = relationship("WeeklyEntry", back_populates="mini_moves")
