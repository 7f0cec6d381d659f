"""Reward payout model definitions."""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .enums import RewardStatus


class Reward(Base):
    """A value transfer issued to the payout address of a verified report.

    ``report_id`` is unique: a report can own a single reward row, which is
    what prevents a second transfer when verification is repeated.
    """

    __tablename__ = "rewards"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_reward_positive_amount"),
        Index("ix_rewards_status", "status"),
    )

    report_id: Mapped[int] = mapped_column(
        ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    recipient_address: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="SOL")
    reference_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    explorer_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[RewardStatus] = mapped_column(SqlEnum(RewardStatus), nullable=False, default=RewardStatus.PENDING)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    report = relationship("Report", back_populates="reward")
