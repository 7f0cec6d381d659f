"""Reward payout services."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Report, ReportStatus, Reward, RewardStatus
from app.schemas.reward import RewardOutcome
from app.services.reward_client import RewardClient, TransferResult, get_reward_client
from app.utils.audit import log_audit
from app.utils.errors import error_response, not_found
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


def reward_idempotency_key(report_id: int) -> str:
    return f"report:{report_id}:reward"


def get_reward_for_report(db: Session, report_id: int) -> Reward | None:
    stmt = select(Reward).where(Reward.report_id == report_id).limit(1)
    return db.scalars(stmt).first()


def build_outcome(reward: Reward, *, already_issued: bool = False) -> RewardOutcome:
    return RewardOutcome(
        reward_id=reward.id,
        amount=reward.amount,
        currency=reward.currency,
        recipient=reward.recipient_address,
        status=reward.status,
        reference_id=reward.reference_id,
        explorer_url=reward.explorer_url,
        error=reward.error,
        already_issued=already_issued,
    )


def _reclaim_reward(db: Session, reward: Reward, recipient: str, *, stale_before: datetime | None = None) -> bool:
    """Compare-and-set a reward back to a fresh PENDING claim; True when this caller won it.

    Without ``stale_before`` only a FAILED row is reclaimed. With it, only a
    PENDING row last touched before that instant is.
    """

    if stale_before is None:
        guard = (Reward.status == RewardStatus.FAILED,)
    else:
        guard = (Reward.status == RewardStatus.PENDING, Reward.updated_at < stale_before)
    result = db.execute(
        update(Reward)
        .where(Reward.id == reward.id, *guard)
        .values(
            status=RewardStatus.PENDING,
            recipient_address=recipient,
            attempts=Reward.attempts + 1,
            error=None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(reward)
    return result.rowcount == 1


def _claim_reward(db: Session, report: Report) -> tuple[Reward, bool]:
    """Return the report's reward row and whether this caller owns the transfer.

    A new row is inserted as PENDING and relies on the unique ``report_id``
    to lose gracefully against a concurrent claim. An existing FAILED row is
    reopened with a compare-and-set. SENT and PENDING rows are never claimed.
    """

    settings = get_settings()
    recipient = (report.payout_address or "").strip()
    existing = get_reward_for_report(db, report.id)
    if existing is None:
        reward = Reward(
            report_id=report.id,
            recipient_address=recipient,
            amount=settings.REWARD_AMOUNT,
            currency=settings.REWARD_CURRENCY,
            status=RewardStatus.PENDING,
            attempts=1,
        )
        db.add(reward)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = get_reward_for_report(db, report.id)
            if existing is None:
                raise
            logger.info(
                "Reward claimed concurrently; skipping transfer",
                extra={"report_id": report.id, "reward_id": existing.id},
            )
            return existing, False
        db.refresh(reward)
        return reward, True

    if existing.status == RewardStatus.FAILED:
        return existing, _reclaim_reward(db, existing, recipient)

    return existing, False


def _apply_transfer_result(db: Session, reward: Reward, result: TransferResult, *, actor: str) -> Reward:
    if result.success:
        reward.status = RewardStatus.SENT
        reward.reference_id = result.reference_id
        reward.explorer_url = result.explorer_url
        reward.error = None
        reward.sent_at = utcnow()
        action = "REWARD_SENT"
    elif not result.confirmed:
        # Outcome unknown: keep the claim so nothing pays twice; reconcile out-of-band.
        reward.status = RewardStatus.PENDING
        reward.error = result.error
        action = "REWARD_UNCONFIRMED"
    else:
        reward.status = RewardStatus.FAILED
        reward.error = result.error
        action = "REWARD_FAILED"

    log_audit(
        db,
        actor=actor,
        action=action,
        entity="Reward",
        entity_id=reward.id,
        data={
            "report_id": reward.report_id,
            "recipient_address": reward.recipient_address,
            "amount": str(reward.amount),
            "currency": reward.currency,
            "reference_id": reward.reference_id,
            "error": reward.error,
            "attempts": reward.attempts,
        },
    )
    db.commit()
    db.refresh(reward)
    return reward


def _close_client(reward_client: RewardClient) -> None:
    close = getattr(reward_client, "close", None)
    if close is not None:
        close()


def _transfer(db: Session, reward: Reward, *, actor: str, client: RewardClient | None = None) -> Reward:
    """Run one transfer for a claimed reward; a client built here is closed afterwards."""

    owned = client is None
    try:
        reward_client = client or get_reward_client()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Reward client unavailable", extra={"reward_id": reward.id})
        return _apply_transfer_result(
            db, reward, TransferResult.failed(f"reward_client_unavailable: {exc}"), actor=actor
        )

    logger.info(
        "Reward transfer initiated",
        extra={
            "reward_id": reward.id,
            "report_id": reward.report_id,
            "amount": str(reward.amount),
            "provider": getattr(reward_client, "name", "unknown"),
        },
    )
    try:
        result = reward_client.transfer(
            reward.recipient_address,
            reward.amount,
            idempotency_key=reward_idempotency_key(reward.report_id),
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Reward transfer raised", extra={"reward_id": reward.id})
        result = TransferResult.unconfirmed(f"transfer_error: {exc.__class__.__name__}")
    finally:
        if owned:
            _close_client(reward_client)

    reward = _apply_transfer_result(db, reward, result, actor=actor)
    logger.info(
        "Reward transfer completed",
        extra={"reward_id": reward.id, "status": reward.status.value, "error": reward.error},
    )
    return reward


def issue_reward(db: Session, report: Report, *, actor: str = "system") -> RewardOutcome:
    """Pay the fixed reward for a verified report, at most once per report.

    Must be called after the verification has been committed. Transfer
    problems come back as a FAILED or PENDING outcome, never as an exception.
    """

    if report.status != ReportStatus.VERIFIED or not (report.payout_address or "").strip():
        raise ValueError("Rewards are only issued for verified reports with a payout address.")

    reward, claimed = _claim_reward(db, report)
    if not claimed:
        logger.info(
            "Reward already issued or in flight",
            extra={"report_id": report.id, "reward_id": reward.id, "status": reward.status.value},
        )
        return build_outcome(reward, already_issued=True)

    reward = _transfer(db, reward, actor=actor)
    return build_outcome(reward)


def _pending_cutoff() -> datetime:
    return utcnow() - timedelta(seconds=get_settings().REWARD_PENDING_STALE_SECONDS)


def retry_reward(db: Session, reward_id: int, *, actor: str = "system") -> RewardOutcome:
    """Retry a FAILED reward, or a PENDING one whose transfer was never confirmed.

    A PENDING reward is only retried once it has been left untouched past
    ``REWARD_PENDING_STALE_SECONDS``; the transfer is re-submitted with the
    same idempotency key so the gateway can deduplicate it.
    """

    reward = db.get(Reward, reward_id)
    if reward is None:
        raise not_found("REWARD_NOT_FOUND", "Reward not found.")

    stale_before: datetime | None = None
    if reward.status == RewardStatus.PENDING:
        stale_before = _pending_cutoff()
        if as_utc(reward.updated_at) >= stale_before:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=error_response(
                    "REWARD_IN_FLIGHT",
                    "The reward transfer is still in flight; retry once it goes stale.",
                    {"status": reward.status.value, "updated_at": as_utc(reward.updated_at).isoformat()},
                ),
            )
    elif reward.status != RewardStatus.FAILED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_response(
                "REWARD_NOT_RETRYABLE",
                "Only failed or stale pending rewards can be retried.",
                {"status": reward.status.value},
            ),
        )
    report = db.get(Report, reward.report_id)
    if report is None or report.status != ReportStatus.VERIFIED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_response("REPORT_NOT_VERIFIED", "Rewards can only be retried for verified reports."),
        )

    log_audit(
        db,
        actor=actor,
        action="RETRY_REWARD",
        entity="Reward",
        entity_id=reward.id,
        data={"report_id": reward.report_id, "attempts": reward.attempts, "previous_status": reward.status.value},
    )
    recipient = report.payout_address or reward.recipient_address
    if not _reclaim_reward(db, reward, recipient, stale_before=stale_before):
        return build_outcome(reward, already_issued=True)

    reward = _transfer(db, reward, actor=actor)
    return build_outcome(reward)


__all__ = [
    "build_outcome",
    "get_reward_for_report",
    "issue_reward",
    "retry_reward",
    "reward_idempotency_key",
]
