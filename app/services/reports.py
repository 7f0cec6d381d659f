"""Report intake and analysis services."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.config import AUTO_VERIFIER_ID, get_settings
from app.models import (
    Classification,
    CrimeCategory,
    Disposition,
    MediaKind,
    Priority,
    Report,
    ReportStatus,
    Reward,
    SEVERITY_TO_PRIORITY,
    Severity,
    Verification,
    empty_entities,
)
from app.schemas.classification import ClassificationResult
from app.schemas.report import ReportSubmission
from app.schemas.stats import DashboardStats
from app.schemas.verification import VerificationRead
from app.services import classifier as classifier_service
from app.services import media_storage
from app.services import verification as verification_service
from app.services.analysis_workflow import CrimeAnalysisWorkflow, MediaInput, WorkflowState, WorkflowStep
from app.utils.audit import log_audit
from app.utils.errors import error_response, not_found
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class IncomingMedia:
    filename: str
    content_type: str
    data: bytes

    @property
    def mime_type(self) -> str:
        return (self.content_type or "").split(";", 1)[0].strip().lower()


def _unprocessable(code: str, message: str, details: dict | None = None) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=error_response(code, message, details),
    )


def validate_media(files: list[IncomingMedia]) -> None:
    """Reject the submission before anything is stored when a file is unacceptable."""

    if not files:
        raise _unprocessable("MEDIA_REQUIRED", "At least one photo or video is required.")

    max_bytes = get_settings().MEDIA_MAX_BYTES
    for item in files:
        if item.mime_type not in media_storage.ALLOWED_MIME_TYPES:
            raise _unprocessable(
                "INVALID_MEDIA_TYPE",
                f"File '{item.filename}' has an unsupported type. Only images and videos are allowed.",
                {"filename": item.filename, "content_type": item.mime_type},
            )
        if not item.data:
            raise _unprocessable(
                "EMPTY_MEDIA",
                f"File '{item.filename}' is empty.",
                {"filename": item.filename},
            )
        if len(item.data) > max_bytes:
            raise _unprocessable(
                "MEDIA_TOO_LARGE",
                f"File '{item.filename}' is too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
                {"filename": item.filename, "size": len(item.data), "max_bytes": max_bytes},
            )


def parse_client_classification(raw: str | None) -> ClassificationResult | None:
    """Validate a classification computed on the client before upload."""

    if raw is None or not raw.strip():
        return None
    try:
        return classifier_service.parse_classifier_output(raw, source="client")
    except ValidationError as exc:
        raise _unprocessable(
            "INVALID_CLASSIFICATION",
            "The supplied classification does not match the expected format.",
            {"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


def _media_kind(mime_type: str) -> MediaKind:
    return MediaKind.VIDEO if mime_type in media_storage.VIDEO_MIME_TYPES else MediaKind.PHOTO


def _pending_classification() -> Classification:
    return Classification(
        confidence=0,
        category=CrimeCategory.UNKNOWN,
        severity=Severity.LOW,
        summary="Analysis pending",
        risk_factors=[],
        recommendations=[],
        extracted_entities=empty_entities(),
        source="pending",
    )


def get_report_or_404(db: Session, report_id: int) -> Report:
    report = db.get(Report, report_id)
    if report is None:
        raise not_found("REPORT_NOT_FOUND", "Report not found.")
    return report


def write_classification(report: Report, result: ClassificationResult) -> None:
    """Copy a classification onto the report's row, creating it if needed."""

    row = report.classification
    if row is None:
        row = Classification(report_id=report.id)
        report.classification = row
    row.confidence = result.confidence
    row.category = result.category
    row.severity = result.severity
    row.summary = result.summary
    row.risk_factors = list(result.risk_factors)
    row.recommendations = list(result.recommendations)
    row.extracted_entities = result.extracted_entities.model_dump()
    row.source = result.source


def apply_workflow_state(db: Session, report: Report, state: WorkflowState, *, actor: str = "system") -> Report:
    """Persist the outputs of an analysis run; the report status is left alone."""

    write_classification(report, state.classification)
    report.category = state.classification.category
    report.priority = SEVERITY_TO_PRIORITY[state.classification.severity]
    report.requires_human_review = state.requires_human_review
    report.disposition = state.disposition
    report.analysis_step = (
        WorkflowStep.AWAITING_HUMAN_REVIEW.value if state.awaiting_human_review else state.current_step.value
    )
    report.analysis_failed_steps = [step.value for step in state.failed_steps] or None
    report.analyzed_at = utcnow()

    log_audit(
        db,
        actor=actor,
        action="ANALYZE_REPORT",
        entity="Report",
        entity_id=report.id,
        data={
            "confidence": state.classification.confidence,
            "category": state.classification.category.value,
            "severity": state.classification.severity.value,
            "source": state.classification.source,
            "requires_human_review": state.requires_human_review,
            "disposition": state.disposition.value,
            "steps": [step.value for step in state.steps],
        },
    )
    db.commit()
    db.refresh(report)
    return report


def _maybe_auto_verify(db: Session, report: Report) -> Report:
    if not get_settings().AUTO_VERIFY_ENABLED:
        return report
    if report.disposition != Disposition.VERIFIED or report.requires_human_review:
        return report
    if report.status != ReportStatus.PENDING:
        return report
    logger.info("Auto-verifying report", extra={"report_id": report.id})
    result = verification_service.verify_report(
        db,
        report.id,
        verifier_id=AUTO_VERIFIER_ID,
        decision=True,
        notes=f"Auto-verified: classification confidence {report.classification.confidence}",
    )
    return result.report


def submit_report(
    db: Session,
    submission: ReportSubmission,
    media: list[IncomingMedia],
    *,
    submitter_id: str,
    client_classification: str | None = None,
    workflow: CrimeAnalysisWorkflow | None = None,
) -> Report:
    """Create a report, analyse its first media item and record the outcome."""

    validate_media(media)
    precomputed = parse_client_classification(client_classification)

    stored = [media_storage.save_media(item.data, item.mime_type) for item in media]
    first = media[0]
    category = CrimeCategory.normalize(submission.category) if submission.category else CrimeCategory.UNKNOWN

    report = Report(
        submitter_id=submitter_id,
        location=submission.location.strip(),
        latitude=submission.latitude if submission.longitude is not None else None,
        longitude=submission.longitude if submission.latitude is not None else None,
        description=submission.description.strip(),
        media_refs=[item.ref for item in stored],
        media_kind=_media_kind(first.mime_type),
        category=category,
        priority=submission.priority or Priority.LOW,
        status=ReportStatus.PENDING,
        payout_address=(submission.payout_address or "").strip() or None,
        requires_human_review=True,
        analysis_step="initial",
    )
    report.classification = _pending_classification()
    db.add(report)
    db.flush()

    log_audit(
        db,
        actor=submitter_id,
        action="SUBMIT_REPORT",
        entity="Report",
        entity_id=report.id,
        data={
            "location": report.location,
            "media_refs": report.media_refs,
            "media_kind": report.media_kind.value,
            "payout_address": report.payout_address,
            "client_classification": precomputed is not None,
        },
    )
    db.commit()
    db.refresh(report)
    logger.info(
        "Report submitted",
        extra={"report_id": report.id, "media_count": len(stored), "media_kind": report.media_kind.value},
    )

    state = (workflow or CrimeAnalysisWorkflow()).run(
        report_id=report.id,
        description=report.description,
        media=MediaInput(data=first.data, mime_type=first.mime_type),
        precomputed=precomputed,
    )
    report = apply_workflow_state(db, report, state)
    return _maybe_auto_verify(db, report)


def reanalyze_report(
    db: Session,
    report_id: int,
    *,
    actor: str = "system",
    workflow: CrimeAnalysisWorkflow | None = None,
) -> Report:
    """Run the workflow again on the stored media, resuming with any recorded verification.

    The server classifier always runs here, even when the stored result was
    supplied by the client at intake. When the stored media can no longer be
    read the request fails with ``MEDIA_UNAVAILABLE`` and the current
    classification is kept.
    """

    report = get_report_or_404(db, report_id)
    media: MediaInput | None = None
    if report.media_refs:
        try:
            data, mime_type = media_storage.load_media(report.media_refs[0])
        except OSError as exc:
            logger.warning(
                "Stored media unavailable for reanalysis",
                extra={"report_id": report.id, "error": exc.__class__.__name__},
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=error_response(
                    "MEDIA_UNAVAILABLE",
                    "The report's stored media can no longer be read; it cannot be re-analysed.",
                    {"report_id": report.id},
                ),
            ) from exc
        media = MediaInput(data=data, mime_type=mime_type)

    logger.info(
        "Re-analysing report",
        extra={
            "report_id": report.id,
            "previous_source": report.classification.source if report.classification else None,
        },
    )

    verification = (
        VerificationRead.model_validate(report.verification) if report.verification is not None else None
    )
    state = (workflow or CrimeAnalysisWorkflow()).run(
        report_id=report.id,
        description=report.description,
        media=media,
        verification=verification,
    )
    return apply_workflow_state(db, report, state, actor=actor)


def list_reports(
    db: Session,
    *,
    status_filter: ReportStatus | None = None,
    priority: Priority | None = None,
    category: CrimeCategory | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Report]:
    stmt = select(Report)
    if status_filter is not None:
        stmt = stmt.where(Report.status == status_filter)
    if priority is not None:
        stmt = stmt.where(Report.priority == priority)
    if category is not None:
        stmt = stmt.where(Report.category == category)
    if search:
        pattern = f"%{search.strip().lower()}%"
        clauses = [
            func.lower(Report.description).like(pattern),
            func.lower(Report.location).like(pattern),
        ]
        matched_category = CrimeCategory.normalize(search)
        if matched_category != CrimeCategory.OTHER or search.strip().upper() == CrimeCategory.OTHER.value:
            clauses.append(Report.category == matched_category)
        stmt = stmt.where(or_(*clauses))
    stmt = stmt.order_by(Report.created_at.desc(), Report.id.desc()).limit(limit).offset(offset)
    return list(db.scalars(stmt).unique().all())


def _grouped_counts(db: Session, column) -> dict[str, int]:
    rows = db.execute(select(column, func.count()).group_by(column)).all()
    return {getattr(key, "value", str(key)): int(count) for key, count in rows}


def _average_response_seconds(db: Session) -> float | None:
    rows = db.execute(
        select(Report.created_at, Verification.verified_at).join(
            Verification, Verification.report_id == Report.id
        )
    ).all()
    durations = [
        (as_utc(verified_at) - as_utc(created_at)).total_seconds()
        for created_at, verified_at in rows
        if created_at is not None and verified_at is not None
    ]
    if not durations:
        return None
    return sum(durations) / len(durations)


def dashboard_stats(db: Session) -> DashboardStats:
    by_status = _grouped_counts(db, Report.status)
    return DashboardStats(
        total_reports=sum(by_status.values()),
        pending_verification=by_status.get(ReportStatus.PENDING.value, 0),
        verified_reports=by_status.get(ReportStatus.VERIFIED.value, 0),
        rejected_reports=by_status.get(ReportStatus.REJECTED.value, 0),
        average_response_time_seconds=_average_response_seconds(db),
        reports_by_category=_grouped_counts(db, Report.category),
        reports_by_priority=_grouped_counts(db, Report.priority),
        rewards_by_status=_grouped_counts(db, Reward.status),
    )


__all__ = [
    "IncomingMedia",
    "apply_workflow_state",
    "dashboard_stats",
    "get_report_or_404",
    "list_reports",
    "parse_client_classification",
    "reanalyze_report",
    "submit_report",
    "validate_media",
    "write_classification",
]
