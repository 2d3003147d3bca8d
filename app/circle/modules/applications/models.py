from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.circle.models import Base, User


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        Index("idx_applications_email", "email"),
        Index("idx_applications_status", "status"),
        Index("idx_applications_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)  # stored lower-cased
    location: Mapped[str] = mapped_column(String(128), nullable=False)
    availability: Mapped[str] = mapped_column(String(64), nullable=False)

    commitment_level: Mapped[int] = mapped_column(Integer, nullable=False)
    commitment_explanation: Mapped[str] = mapped_column(Text, nullable=False)
    growth_goal: Mapped[str] = mapped_column(Text, nullable=False)
    digital_product: Mapped[str] = mapped_column(Text, nullable=False)
    excitement: Mapped[str] = mapped_column(Text, nullable=False)

    agreed_to_guidelines: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    gdpr_consent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")  # pending, approved, rejected, removed

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    notes: Mapped[list["ApplicationNote"]] = relationship(
        "ApplicationNote",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="ApplicationNote.created_at.desc()",
        lazy="selectin",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ApplicationNote(Base):
    __tablename__ = "application_notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_id: Mapped[int] = mapped_column(ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True)
    admin_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    application: Mapped[Application] = relationship("Application", back_populates="notes")
    author: Mapped[User | None] = relationship(User, lazy="selectin")
