"""Administrator verification of reports."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import Report, ReportStatus, RewardStatus, Verification
from app.schemas.reward import RewardOutcome
from app.services import rewards as rewards_service
from app.utils.audit import log_audit
from app.utils.errors import not_found
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

VERIFIED_CONFIDENCE = 95
REJECTED_CONFIDENCE = 0


@dataclass
class VerificationResult:
    report: Report
    reward: RewardOutcome | None = None

    @property
    def message(self) -> str:
        if not self.report.verification or not self.report.verification.is_verified:
            return "Report rejected"
        reward = self.reward
        if reward is None:
            return "Report verified"
        if reward.status == RewardStatus.SENT:
            if reward.already_issued:
                return "Report verified; reward was already paid"
            return f"Report verified, reward of {reward.amount.normalize():f} {reward.currency} sent"
        if reward.status == RewardStatus.PENDING:
            return "Report verified; reward payment is awaiting confirmation"
        return f"Report verified, but reward payment failed: {reward.error or 'unknown error'}"


def _get_report_or_404(db: Session, report_id: int) -> Report:
    report = db.get(Report, report_id)
    if report is None:
        raise not_found("REPORT_NOT_FOUND", "Report not found.")
    return report


def _upsert_verification(
    db: Session, report: Report, *, verifier_id: str, decision: bool, notes: str
) -> Verification:
    verification = report.verification
    if verification is None:
        verification = Verification(report_id=report.id)
        report.verification = verification
    verification.verifier_id = verifier_id
    verification.verified_at = utcnow()
    verification.is_verified = decision
    verification.notes = notes or ""
    verification.confidence = VERIFIED_CONFIDENCE if decision else REJECTED_CONFIDENCE
    verification.requires_follow_up = not decision
    return verification


def verify_report(
    db: Session,
    report_id: int,
    *,
    verifier_id: str,
    decision: bool,
    notes: str = "",
    actor: str | None = None,
) -> VerificationResult:
    """Record an administrator decision and pay the reward for verified reports.

    The verification row and the status are committed together before any
    reward attempt, so a payout problem can never undo the decision.
    """

    verifier_id = (verifier_id or "").strip()
    if not verifier_id:
        raise ValueError("A verification needs a non-blank verifier id.")
    report = _get_report_or_404(db, report_id)
    previous_status = report.status
    try:
        _record_decision(
            db,
            report,
            verifier_id=verifier_id,
            decision=decision,
            notes=notes,
            actor=actor,
            previous_status=previous_status,
        )
    except IntegrityError:
        # A concurrent first verification inserted the row; overwrite it instead.
        db.rollback()
        report = _get_report_or_404(db, report_id)
        db.refresh(report)
        _record_decision(
            db,
            report,
            verifier_id=verifier_id,
            decision=decision,
            notes=notes,
            actor=actor,
            previous_status=previous_status,
        )
    db.refresh(report)
    logger.info(
        "Report %s",
        "verified" if decision else "rejected",
        extra={
            "report_id": report.id,
            "verifier_id": verifier_id,
            "previous_status": previous_status.value,
        },
    )

    reward: RewardOutcome | None = None
    if decision and (report.payout_address or "").strip():
        reward = rewards_service.issue_reward(db, report, actor=actor or verifier_id)
        db.refresh(report)

    return VerificationResult(report=report, reward=reward)


def _record_decision(
    db: Session,
    report: Report,
    *,
    verifier_id: str,
    decision: bool,
    notes: str,
    actor: str | None,
    previous_status: ReportStatus,
) -> None:
    """Write the verification row and the status in one commit."""

    _upsert_verification(db, report, verifier_id=verifier_id, decision=decision, notes=notes)
    report.status = ReportStatus.VERIFIED if decision else ReportStatus.REJECTED

    log_audit(
        db,
        actor=actor or verifier_id,
        action="VERIFY_REPORT",
        entity="Report",
        entity_id=report.id,
        data={
            "decision": decision,
            "notes": notes,
            "previous_status": previous_status.value,
            "status": report.status.value,
        },
    )
    db.commit()


__all__ = ["VerificationResult", "verify_report"]
