"""Schemas for administrator verification."""
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StringConstraints

VerifierId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


class VerificationRequest(BaseModel):
    report_id: int = Field(gt=0)
    verifier_id: VerifierId
    decision: StrictBool
    notes: str = ""


class VerificationRead(BaseModel):
    verifier_id: str
    verified_at: datetime
    is_verified: bool
    notes: str
    confidence: int
    requires_follow_up: bool

    model_config = ConfigDict(from_attributes=True)
