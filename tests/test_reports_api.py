import json

import pytest
from sqlalchemy import select

from app.models import (
    AuditLog,
    CrimeCategory,
    Disposition,
    MediaKind,
    Priority,
    Reward,
    ReportStatus,
    Severity,
)
from app.schemas.classification import ClassificationResult, ExtractedEntities
from app.services.analysis_workflow import WorkflowStep

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64


def _stub_classifier(monkeypatch, **overrides):
    values = {
        "confidence": 85,
        "category": CrimeCategory.OTHER,
        "severity": Severity.LOW,
        "summary": "A broken shop window.",
        "risk_factors": [],
        "recommendations": [],
        "extracted_entities": ExtractedEntities(objects=["window"]),
    }
    values.update(overrides)
    calls = []

    def _classify(data, mime_type, context):
        calls.append((mime_type, context))
        return ClassificationResult(**values)

    monkeypatch.setattr("app.services.classifier.classify_media", _classify)
    return calls


def _form(**overrides):
    data = {
        "location": "12 Market Road",
        "description": "broken window",
        "payout_address": "addr1",
        "submitter_id": "citizen-42",
    }
    data.update(overrides)
    return {key: value for key, value in data.items() if value is not None}


def _files(*items):
    return [("media_files", item) for item in (items or [("window.jpg", JPEG_BYTES, "image/jpeg")])]


@pytest.mark.anyio("asyncio")
async def test_submit_report_confident_low_severity(client, monkeypatch, db_session):
    calls = _stub_classifier(monkeypatch)

    response = await client.post("/reports", data=_form(), files=_files())

    assert response.status_code == 201
    body = response.json()
    assert calls == [("image/jpeg", "broken window")]
    assert body["requires_human_review"] is False
    assert body["disposition"] == Disposition.VERIFIED.value
    # the disposition is advisory; only the verification service changes status
    assert body["status"] == ReportStatus.PENDING.value
    assert body["category"] == CrimeCategory.OTHER.value
    assert body["priority"] == Priority.LOW.value
    assert body["media_kind"] == MediaKind.PHOTO.value
    assert body["payout_address"] == "addr1"
    assert body["analysis_step"] == WorkflowStep.DECISION_FINALIZED.value
    assert body["classification"]["confidence"] == 85
    assert len(body["media_refs"]) == 1

    actions = db_session.scalars(
        select(AuditLog.action).where(AuditLog.entity_id == body["id"], AuditLog.entity == "Report")
    ).all()
    assert set(actions) >= {"SUBMIT_REPORT", "ANALYZE_REPORT"}
    rewards = db_session.scalars(select(Reward).where(Reward.report_id == body["id"])).all()
    assert rewards == []


@pytest.mark.anyio("asyncio")
async def test_submit_report_auto_verify_pays_reward(client, monkeypatch, settings):
    _stub_classifier(monkeypatch)
    monkeypatch.setattr(settings, "AUTO_VERIFY_ENABLED", True)

    response = await client.post("/reports", data=_form(), files=_files())

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == ReportStatus.VERIFIED.value
    assert body["verification"]["verifier_id"] == "system:auto-verify"
    assert body["verification"]["is_verified"] is True


@pytest.mark.anyio("asyncio")
async def test_auto_verify_skips_reports_needing_review(client, monkeypatch, settings):
    _stub_classifier(monkeypatch, confidence=40, severity=Severity.MEDIUM)
    monkeypatch.setattr(settings, "AUTO_VERIFY_ENABLED", True)

    response = await client.post("/reports", data=_form(), files=_files())

    body = response.json()
    assert body["status"] == ReportStatus.PENDING.value
    assert body["requires_human_review"] is True
    assert body["disposition"] == Disposition.PENDING.value
    assert body["analysis_step"] == WorkflowStep.AWAITING_HUMAN_REVIEW.value
    assert body["verification"] is None


@pytest.mark.anyio("asyncio")
async def test_priority_and_category_follow_classification(client, monkeypatch):
    _stub_classifier(
        monkeypatch,
        category=CrimeCategory.STREET_CRIMES,
        severity=Severity.CRITICAL,
        confidence=95,
    )

    response = await client.post(
        "/reports",
        data=_form(category="Drug", priority="low"),
        files=_files(),
    )

    body = response.json()
    assert body["category"] == CrimeCategory.STREET_CRIMES.value
    assert body["priority"] == Priority.CRITICAL.value
    assert body["requires_human_review"] is True


@pytest.mark.anyio("asyncio")
async def test_disabled_classifier_yields_fallback(client):
    response = await client.post("/reports", data=_form(), files=_files())

    assert response.status_code == 201
    body = response.json()
    assert body["classification"]["source"] == "fallback"
    assert body["classification"]["confidence"] == 0
    assert body["classification"]["risk_factors"][0] == "Manual review needed"
    assert body["requires_human_review"] is True
    assert body["disposition"] == Disposition.PENDING.value


@pytest.mark.anyio("asyncio")
async def test_client_classification_is_used(client, monkeypatch, classifier_payload):
    calls = _stub_classifier(monkeypatch)
    payload = classifier_payload(confidence=81, crime_type="CYBERCRIMES")

    response = await client.post(
        "/reports",
        data=_form(classification=json.dumps(payload)),
        files=_files(),
    )

    body = response.json()
    assert calls == []
    assert body["classification"]["source"] == "client"
    assert body["category"] == CrimeCategory.CYBERCRIMES.value


@pytest.mark.anyio("asyncio")
async def test_invalid_client_classification_rejected(client):
    response = await client.post(
        "/reports",
        data=_form(classification='{"confidence": 300}'),
        files=_files(),
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "INVALID_CLASSIFICATION"


@pytest.mark.anyio("asyncio")
async def test_media_is_required(client):
    response = await client.post("/reports", data=_form())
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "MEDIA_REQUIRED"


@pytest.mark.anyio("asyncio")
async def test_unsupported_media_type_names_file(client):
    response = await client.post(
        "/reports",
        data=_form(),
        files=_files(
            ("window.jpg", JPEG_BYTES, "image/jpeg"),
            ("notes.pdf", b"%PDF-1.4", "application/pdf"),
        ),
    )
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "INVALID_MEDIA_TYPE"
    assert "notes.pdf" in error["message"]


@pytest.mark.anyio("asyncio")
async def test_oversized_media_rejected(client, monkeypatch, settings):
    monkeypatch.setattr(settings, "MEDIA_MAX_BYTES", 16)
    response = await client.post("/reports", data=_form(), files=_files())
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "MEDIA_TOO_LARGE"
    assert "window.jpg" in error["message"]


@pytest.mark.anyio("asyncio")
async def test_video_submission(client, monkeypatch):
    calls = _stub_classifier(monkeypatch)
    response = await client.post(
        "/reports",
        data=_form(),
        files=_files(("clip.mov", b"\x00\x00\x00\x14ftypqt", "video/quicktime")),
    )
    assert response.status_code == 201
    assert response.json()["media_kind"] == MediaKind.VIDEO.value
    assert calls[0][0] == "video/quicktime"


@pytest.mark.anyio("asyncio")
async def test_invalid_coordinates_rejected(client):
    response = await client.post("/reports", data=_form(latitude="123.0", longitude="10"), files=_files())
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "INVALID_REPORT"


@pytest.mark.anyio("asyncio")
async def test_coordinates_returned(client, monkeypatch):
    _stub_classifier(monkeypatch)
    response = await client.post("/reports", data=_form(latitude="6.5244", longitude="3.3792"), files=_files())
    assert response.json()["coordinates"] == {"latitude": 6.5244, "longitude": 3.3792}


@pytest.mark.anyio("asyncio")
async def test_get_report_and_404(client, make_report):
    report = make_report()

    response = await client.get(f"/reports/{report.id}")
    assert response.status_code == 200
    assert response.json()["id"] == report.id

    missing = await client.get("/reports/999999")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "REPORT_NOT_FOUND"


@pytest.mark.anyio("asyncio")
async def test_list_reports_filters(client, make_report):
    street = make_report(category=CrimeCategory.STREET_CRIMES, description="bag snatched at the market")
    make_report(category=CrimeCategory.DRUG, description="dealing behind school", status=ReportStatus.REJECTED)

    by_status = await client.get("/reports", params={"status": "PENDING"})
    ids = [item["id"] for item in by_status.json()]
    assert street.id in ids
    assert all(item["status"] == "PENDING" for item in by_status.json())

    by_category = await client.get("/admin/reports", params={"category": "DRUG"})
    assert all(item["category"] == "DRUG" for item in by_category.json())
    assert by_category.json()

    by_search = await client.get("/admin/reports", params={"search": "MARKET"})
    assert [item["id"] for item in by_search.json()] == [street.id]


@pytest.mark.anyio("asyncio")
async def test_reanalysis_uses_stored_media(client, monkeypatch):
    _stub_classifier(monkeypatch, confidence=40)
    created = (await client.post("/reports", data=_form(), files=_files())).json()
    assert created["requires_human_review"] is True

    calls = _stub_classifier(monkeypatch, confidence=90)
    response = await client.post(f"/reports/{created['id']}/analysis")

    assert response.status_code == 200
    body = response.json()
    assert calls == [("image/jpeg", "broken window")]
    assert body["classification"]["confidence"] == 90
    assert body["disposition"] == Disposition.VERIFIED.value
    assert body["status"] == ReportStatus.PENDING.value


@pytest.mark.anyio("asyncio")
async def test_reanalysis_resumes_with_verification(client, monkeypatch):
    _stub_classifier(monkeypatch, confidence=40)
    created = (await client.post("/reports", data=_form(payout_address=None), files=_files())).json()
    await client.post(
        "/admin/verify",
        json={"report_id": created["id"], "verifier_id": "admin-1", "decision": False, "notes": "blurry"},
    )

    response = await client.post(f"/reports/{created['id']}/analysis")

    body = response.json()
    assert body["disposition"] == Disposition.REJECTED.value
    assert body["analysis_step"] == WorkflowStep.DECISION_FINALIZED.value
    assert body["status"] == ReportStatus.REJECTED.value


@pytest.mark.anyio("asyncio")
async def test_reanalysis_with_missing_media_keeps_classification(client, make_report, db_session, monkeypatch):
    report = make_report(confidence=62)
    calls = _stub_classifier(monkeypatch, confidence=10)

    response = await client.post(f"/reports/{report.id}/analysis")

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "MEDIA_UNAVAILABLE"
    assert calls == []
    db_session.refresh(report)
    assert report.classification.confidence == 62
    assert report.classification.summary == "seeded"
    analyses = db_session.scalars(
        select(AuditLog).where(AuditLog.action == "ANALYZE_REPORT", AuditLog.entity_id == report.id)
    ).all()
    assert analyses == []


@pytest.mark.anyio("asyncio")
async def test_dashboard_stats(client, make_report):
    make_report()
    rejected = make_report()
    await client.post(
        "/admin/verify",
        json={"report_id": rejected.id, "verifier_id": "admin-1", "decision": False},
    )

    response = await client.get("/admin/stats")

    assert response.status_code == 200
    stats = response.json()
    assert stats["total_reports"] >= 2
    assert stats["rejected_reports"] >= 1
    assert stats["pending_verification"] >= 1
    assert stats["reports_by_category"]["STREET_CRIMES"] >= 2
    assert stats["average_response_time_seconds"] is not None
    assert stats["average_response_time_seconds"] >= 0
