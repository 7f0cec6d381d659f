"""Schemas for reward payouts."""
from decimal import Decimal

from pydantic import BaseModel, field_serializer

from app.models import RewardStatus


class RewardOutcome(BaseModel):
    """Soft result of a payout attempt attached to an otherwise successful verification."""

    reward_id: int | None = None
    amount: Decimal
    currency: str
    recipient: str
    status: RewardStatus
    reference_id: str | None = None
    explorer_url: str | None = None
    error: str | None = None
    already_issued: bool = False

    @field_serializer("amount", when_used="json")
    def _serialize_amount(self, value: Decimal):
        return float(value)
