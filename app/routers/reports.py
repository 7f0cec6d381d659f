"""Citizen-facing report endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.db import get_db
from app.models import CrimeCategory, Priority, ReportStatus
from app.schemas.report import ReportRead, ReportSubmission
from app.services import reports as reports_service
from app.utils.errors import error_response

router = APIRouter(prefix="/reports", tags=["reports"])

ANONYMOUS_SUBMITTER = "anonymous"


async def _read_uploads(files: list[UploadFile]) -> list[reports_service.IncomingMedia]:
    media = []
    for upload in files:
        data = await upload.read()
        media.append(
            reports_service.IncomingMedia(
                filename=upload.filename or "upload",
                content_type=upload.content_type or "",
                data=data,
            )
        )
    return media


@router.post(
    "",
    response_model=ReportRead,
    status_code=status.HTTP_201_CREATED,
)
async def submit_report(
    location: str = Form(...),
    description: str = Form(...),
    category: str | None = Form(default=None),
    priority: str | None = Form(default=None),
    latitude: float | None = Form(default=None),
    longitude: float | None = Form(default=None),
    payout_address: str | None = Form(default=None),
    submitter_id: str | None = Form(default=None),
    classification: str | None = Form(default=None),
    media_files: list[UploadFile] | None = File(default=None),
    db: Session = Depends(get_db),
) -> ReportRead:
    """Submit a report with at least one photo or video."""

    try:
        submission = ReportSubmission(
            location=location,
            description=description,
            category=category,
            priority=priority.strip().upper() if priority and priority.strip() else None,
            latitude=latitude,
            longitude=longitude,
            payout_address=payout_address,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=error_response(
                "INVALID_REPORT",
                "The report fields are invalid.",
                {"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            ),
        ) from exc

    media = await _read_uploads(media_files or [])
    # Analysis calls the classifier synchronously; keep it off the event loop.
    report = await run_in_threadpool(
        reports_service.submit_report,
        db,
        submission,
        media,
        submitter_id=(submitter_id or "").strip() or ANONYMOUS_SUBMITTER,
        client_classification=classification,
    )
    return ReportRead.from_report(report)


@router.get("", response_model=list[ReportRead])
def list_reports(
    status_filter: ReportStatus | None = Query(default=None, alias="status"),
    priority: Priority | None = None,
    category: CrimeCategory | None = None,
    search: str | None = Query(default=None, max_length=200),
    limit: int = Query(default=50, ge=1, le=200),
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


@router.get("/{report_id}", response_model=ReportRead)
def get_report(report_id: int, db: Session = Depends(get_db)) -> ReportRead:
    return ReportRead.from_report(reports_service.get_report_or_404(db, report_id))


@router.post("/{report_id}/analysis", response_model=ReportRead)
def reanalyze_report(report_id: int, db: Session = Depends(get_db)) -> ReportRead:
    """Run the analysis workflow again on the report's stored media."""

    report = reports_service.reanalyze_report(db, report_id, actor="system:reanalysis")
    return ReportRead.from_report(report)
