"""Crime report model definitions."""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum as SqlEnum, Float, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .enums import CrimeCategory, Disposition, MediaKind, Priority, ReportStatus


class Report(Base):
    """A submitted incident with its media, location and analysis outputs."""

    __tablename__ = "reports"
    __table_args__ = (
        Index("ix_reports_status", "status"),
        Index("ix_reports_category", "category"),
        Index("ix_reports_priority", "priority"),
        Index("ix_reports_created_at", "created_at"),
    )

    submitter_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    location: Mapped[str] = mapped_column(String(500), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float(asdecimal=False), nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float(asdecimal=False), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    media_refs: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    media_kind: Mapped[MediaKind] = mapped_column(SqlEnum(MediaKind), nullable=False, default=MediaKind.PHOTO)
    category: Mapped[CrimeCategory] = mapped_column(
        SqlEnum(CrimeCategory), nullable=False, default=CrimeCategory.UNKNOWN
    )
    priority: Mapped[Priority] = mapped_column(SqlEnum(Priority), nullable=False, default=Priority.LOW)
    status: Mapped[ReportStatus] = mapped_column(
        SqlEnum(ReportStatus), nullable=False, default=ReportStatus.PENDING
    )
    payout_address: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Outputs of the most recent analysis run
    requires_human_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    disposition: Mapped[Disposition | None] = mapped_column(SqlEnum(Disposition), nullable=True)
    analysis_step: Mapped[str | None] = mapped_column(String(50), nullable=True)
    analysis_failed_steps: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    analyzed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    classification = relationship(
        "Classification",
        back_populates="report",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="joined",
    )
    verification = relationship(
        "Verification",
        back_populates="report",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="joined",
    )
    reward = relationship(
        "Reward",
        back_populates="report",
        uselist=False,
        cascade="all, delete-orphan",
    )
