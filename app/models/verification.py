"""Administrator verification model."""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Verification(Base):
    """The recorded decision for a report; at most one per report, overwritten on re-verification."""

    __tablename__ = "verifications"

    report_id: Mapped[int] = mapped_column(
        ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    verifier_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    verified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    requires_follow_up: Mapped[bool] = mapped_column(Boolean, nullable=False)

    report = relationship("Report", back_populates="verification")
