"""Schemas for crime reports."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models import CrimeCategory, Disposition, MediaKind, Priority, ReportStatus
from app.schemas.classification import ClassificationResult
from app.schemas.reward import RewardOutcome
from app.schemas.verification import VerificationRead


class ReportSubmission(BaseModel):
    """Form fields accompanying the uploaded media."""

    location: str = Field(min_length=1, max_length=500)
    description: str = Field(min_length=1)
    category: str | None = Field(default=None, max_length=100)
    priority: Priority | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    payout_address: str | None = Field(default=None, max_length=128)


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class ReportRead(BaseModel):
    id: int
    submitter_id: str
    created_at: datetime
    updated_at: datetime
    location: str
    coordinates: Coordinates | None = None
    description: str
    media_refs: list[str]
    media_kind: MediaKind
    category: CrimeCategory
    priority: Priority
    status: ReportStatus
    payout_address: str | None = None
    requires_human_review: bool
    disposition: Disposition | None = None
    analysis_step: str | None = None
    analysis_failed_steps: list[str] | None = None
    analyzed_at: datetime | None = None
    classification: ClassificationResult
    verification: VerificationRead | None = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_report(cls, report) -> "ReportRead":
        payload = cls.model_validate(report, from_attributes=True)
        if report.latitude is not None and report.longitude is not None:
            payload.coordinates = Coordinates(latitude=report.latitude, longitude=report.longitude)
        return payload


class VerificationResponse(BaseModel):
    success: bool = True
    report: ReportRead
    reward: RewardOutcome | None = None
    message: str
