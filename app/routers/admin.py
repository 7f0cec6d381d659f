"""Administrator endpoints: verification, review queue, dashboard and rewards."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.models import CrimeCategory, Priority, ReportStatus
from app.schemas.report import ReportRead, VerificationResponse
from app.schemas.reward import RewardOutcome
from app.schemas.stats import DashboardStats
from app.schemas.verification import VerificationRequest
from app.services import reports as reports_service
from app.services import rewards as rewards_service
from app.services import verification as verification_service

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/verify", response_model=VerificationResponse)
def verify_report(payload: VerificationRequest, db: Session = Depends(get_db)) -> VerificationResponse:
    """Verify or reject a report; a verified report with a payout address is rewarded."""

    result = verification_service.verify_report(
        db,
        payload.report_id,
        verifier_id=payload.verifier_id,
        decision=payload.decision,
        notes=payload.notes,
    )
    return VerificationResponse(
        success=True,
        report=ReportRead.from_report(result.report),
        reward=result.reward,
        message=result.message,
    )


@router.get("/reports", response_model=list[ReportRead])
def review_queue(
    status_filter: ReportStatus | None = Query(default=None, alias="status"),
    priority: Priority | None = None,
    category: CrimeCategory | None = None,
    search: str | None = Query(default=None, max_length=200),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[ReportRead]:
    reports = reports_service.list_reports(
        db,
        status_filter=status_filter,
        priority=priority,
        category=category,
        search=search,
        limit=limit,
        offset=offset,
    )
    return [ReportRead.from_report(report) for report in reports]


@router.get("/stats", response_model=DashboardStats)
def dashboard_stats(db: Session = Depends(get_db)) -> DashboardStats:
    return reports_service.dashboard_stats(db)


@router.post("/rewards/{reward_id}/retry", response_model=RewardOutcome)
def retry_reward(reward_id: int, db: Session = Depends(get_db)) -> RewardOutcome:
    """Retry a reward whose transfer failed."""

    return rewards_service.retry_reward(db, reward_id, actor="admin")
