import json
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from fastapi import HTTPException
from sqlalchemy import select, update

from app.config import Settings
from app.models import AuditLog, ReportStatus, Reward, RewardStatus
from app.services import rewards as rewards_service
from app.services.reward_client import (
    DisabledRewardClient,
    HttpRewardClient,
    MockRewardClient,
    TransferResult,
    get_reward_client,
)
from app.utils.time import utcnow


class QueuedRewardClient:
    name = "queued"

    def __init__(self, *results: TransferResult):
        self.results = list(results)
        self.calls = 0

    def transfer(self, recipient, amount, *, idempotency_key):
        self.calls += 1
        return self.results.pop(0)


def _gateway_settings(**overrides) -> Settings:
    values = {
        "REWARD_PROVIDER": "http",
        "REWARD_GATEWAY_URL": "https://gateway.test/api/",
        "REWARD_GATEWAY_TOKEN": "secret-token",
    }
    values.update(overrides)
    return Settings(**values)


def test_issue_reward_requires_verified_report(db_session, make_report):
    report = make_report(status=ReportStatus.PENDING)
    with pytest.raises(ValueError):
        rewards_service.issue_reward(db_session, report)


def test_failed_reward_can_be_retried(db_session, make_report, monkeypatch):
    client = QueuedRewardClient(
        TransferResult.failed("gateway_http_503"),
        TransferResult(success=True, reference_id="TX-RETRY", explorer_url="https://x/TX-RETRY"),
    )
    monkeypatch.setattr(rewards_service, "get_reward_client", lambda: client)
    report = make_report(status=ReportStatus.VERIFIED)

    first = rewards_service.issue_reward(db_session, report, actor="admin-1")
    assert first.status == RewardStatus.FAILED

    retried = rewards_service.retry_reward(db_session, first.reward_id, actor="admin-1")

    assert retried.status == RewardStatus.SENT
    assert retried.reference_id == "TX-RETRY"
    assert client.calls == 2
    reward = db_session.get(Reward, first.reward_id)
    assert reward.attempts == 2
    assert reward.error is None
    actions = db_session.scalars(
        select(AuditLog.action).where(AuditLog.entity == "Reward", AuditLog.entity_id == reward.id)
        .order_by(AuditLog.id)
    ).all()
    assert actions == ["REWARD_FAILED", "RETRY_REWARD", "REWARD_SENT"]


def test_reverification_retries_failed_reward(db_session, make_report, monkeypatch):
    client = QueuedRewardClient(
        TransferResult.failed("timeout_upstream"),
        TransferResult(success=True, reference_id="TX-2"),
    )
    monkeypatch.setattr(rewards_service, "get_reward_client", lambda: client)
    report = make_report(status=ReportStatus.VERIFIED)

    rewards_service.issue_reward(db_session, report)
    outcome = rewards_service.issue_reward(db_session, report)

    assert outcome.status == RewardStatus.SENT
    assert outcome.already_issued is False
    assert client.calls == 2


def test_sent_reward_is_not_retryable(db_session, make_report, monkeypatch):
    client = QueuedRewardClient(TransferResult(success=True, reference_id="TX-3"))
    monkeypatch.setattr(rewards_service, "get_reward_client", lambda: client)
    report = make_report(status=ReportStatus.VERIFIED)
    outcome = rewards_service.issue_reward(db_session, report)

    with pytest.raises(HTTPException) as exc_info:
        rewards_service.retry_reward(db_session, outcome.reward_id)

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["error"]["code"] == "REWARD_NOT_RETRYABLE"
    assert client.calls == 1


def test_unconfirmed_reward_blocks_second_transfer(db_session, make_report, monkeypatch):
    client = QueuedRewardClient(TransferResult.unconfirmed("confirmation_timeout"))
    monkeypatch.setattr(rewards_service, "get_reward_client", lambda: client)
    report = make_report(status=ReportStatus.VERIFIED)

    first = rewards_service.issue_reward(db_session, report)
    second = rewards_service.issue_reward(db_session, report)

    assert first.status == RewardStatus.PENDING
    assert first.error == "confirmation_timeout"
    assert second.already_issued is True
    assert client.calls == 1


def _backdate_reward(db_session, reward_id: int, *, seconds: int) -> None:
    db_session.execute(
        update(Reward).where(Reward.id == reward_id).values(updated_at=utcnow() - timedelta(seconds=seconds))
    )
    db_session.commit()
    db_session.expire_all()


def test_stale_pending_reward_can_be_retried(db_session, make_report, monkeypatch, settings):
    client = QueuedRewardClient(
        TransferResult.unconfirmed("confirmation_timeout"),
        TransferResult(success=True, reference_id="TX-LATE"),
    )
    monkeypatch.setattr(rewards_service, "get_reward_client", lambda: client)
    report = make_report(status=ReportStatus.VERIFIED)
    first = rewards_service.issue_reward(db_session, report)
    assert first.status == RewardStatus.PENDING

    _backdate_reward(db_session, first.reward_id, seconds=settings.REWARD_PENDING_STALE_SECONDS + 60)
    retried = rewards_service.retry_reward(db_session, first.reward_id, actor="admin-1")

    assert retried.status == RewardStatus.SENT
    assert retried.reference_id == "TX-LATE"
    assert client.calls == 2
    reward = db_session.get(Reward, first.reward_id)
    assert reward.attempts == 2
    actions = db_session.scalars(
        select(AuditLog.action).where(AuditLog.entity == "Reward", AuditLog.entity_id == reward.id)
        .order_by(AuditLog.id)
    ).all()
    assert actions == ["REWARD_UNCONFIRMED", "RETRY_REWARD", "REWARD_SENT"]


def test_fresh_pending_reward_is_in_flight(db_session, make_report, monkeypatch):
    client = QueuedRewardClient(TransferResult.unconfirmed("confirmation_timeout"))
    monkeypatch.setattr(rewards_service, "get_reward_client", lambda: client)
    report = make_report(status=ReportStatus.VERIFIED)
    first = rewards_service.issue_reward(db_session, report)

    with pytest.raises(HTTPException) as exc_info:
        rewards_service.retry_reward(db_session, first.reward_id)

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["error"]["code"] == "REWARD_IN_FLIGHT"
    assert client.calls == 1
    assert db_session.get(Reward, first.reward_id).status == RewardStatus.PENDING


def test_stale_threshold_is_configurable(db_session, make_report, monkeypatch, settings):
    client = QueuedRewardClient(
        TransferResult.unconfirmed("confirmation_timeout"),
        TransferResult(success=True, reference_id="TX-CFG"),
    )
    monkeypatch.setattr(rewards_service, "get_reward_client", lambda: client)
    monkeypatch.setattr(settings, "REWARD_PENDING_STALE_SECONDS", 30)
    report = make_report(status=ReportStatus.VERIFIED)
    first = rewards_service.issue_reward(db_session, report)

    _backdate_reward(db_session, first.reward_id, seconds=120)
    retried = rewards_service.retry_reward(db_session, first.reward_id)

    assert retried.status == RewardStatus.SENT
    assert client.calls == 2


def test_owned_http_client_is_closed_after_transfer(db_session, make_report, monkeypatch):
    created: list[HttpRewardClient] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "reference_id": "TX-HTTP"})

    def _factory():
        client = HttpRewardClient(_gateway_settings(), transport=httpx.MockTransport(handler))
        created.append(client)
        return client

    monkeypatch.setattr(rewards_service, "get_reward_client", _factory)

    for _ in range(3):
        report = make_report(status=ReportStatus.VERIFIED)
        outcome = rewards_service.issue_reward(db_session, report)
        assert outcome.status == RewardStatus.SENT

    assert len(created) == 3
    assert all(client.is_closed for client in created)


def test_owned_http_client_is_closed_when_transfer_raises(db_session, make_report, monkeypatch):
    created: list[HttpRewardClient] = []

    class ExplodingHttpClient(HttpRewardClient):
        def transfer(self, recipient, amount, *, idempotency_key):
            raise RuntimeError("boom")

    def _factory():
        client = ExplodingHttpClient(_gateway_settings(), transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        created.append(client)
        return client

    monkeypatch.setattr(rewards_service, "get_reward_client", _factory)
    report = make_report(status=ReportStatus.VERIFIED)

    outcome = rewards_service.issue_reward(db_session, report)

    assert outcome.status == RewardStatus.PENDING
    assert outcome.error == "transfer_error: RuntimeError"
    assert created[0].is_closed


def test_unavailable_client_marks_reward_failed(db_session, make_report, monkeypatch):
    def _broken():
        raise RuntimeError("Reward gateway URL is missing")

    monkeypatch.setattr(rewards_service, "get_reward_client", _broken)
    report = make_report(status=ReportStatus.VERIFIED)

    outcome = rewards_service.issue_reward(db_session, report)

    assert outcome.status == RewardStatus.FAILED
    assert outcome.error.startswith("reward_client_unavailable")


@pytest.mark.anyio("asyncio")
async def test_retry_endpoint(client, make_report, db_session, monkeypatch):
    queued = QueuedRewardClient(
        TransferResult.failed("gateway_unreachable: ConnectError"),
        TransferResult(success=True, reference_id="TX-API"),
    )
    monkeypatch.setattr(rewards_service, "get_reward_client", lambda: queued)
    report = make_report(status=ReportStatus.VERIFIED)
    failed = rewards_service.issue_reward(db_session, report)

    response = await client.post(f"/admin/rewards/{failed.reward_id}/retry")

    assert response.status_code == 200
    assert response.json()["status"] == RewardStatus.SENT.value

    missing = await client.post("/admin/rewards/999999/retry")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "REWARD_NOT_FOUND"


def test_mock_client_returns_simulated_reference(settings):
    result = MockRewardClient(settings).transfer("addr1", Decimal("0.6"), idempotency_key="report:1:reward")
    assert result.success is True
    assert result.reference_id.startswith("SIM-")
    assert result.reference_id in result.explorer_url


def test_disabled_client_always_fails():
    result = DisabledRewardClient().transfer("addr1", Decimal("0.6"), idempotency_key="k")
    assert result.success is False
    assert result.confirmed is True
    assert result.error == "rewards_disabled"


def test_get_reward_client_selects_provider():
    assert isinstance(get_reward_client(Settings(REWARD_PROVIDER="mock")), MockRewardClient)
    assert isinstance(get_reward_client(Settings(REWARD_PROVIDER="DISABLED")), DisabledRewardClient)
    assert isinstance(get_reward_client(_gateway_settings()), HttpRewardClient)


def test_http_client_requires_gateway_url():
    with pytest.raises(RuntimeError):
        HttpRewardClient(_gateway_settings(REWARD_GATEWAY_URL=""))


def test_http_client_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "reference_id": "5xSig", "explorer_url": "https://e/5xSig"})

    client = HttpRewardClient(_gateway_settings(), transport=httpx.MockTransport(handler))
    result = client.transfer("addr1", Decimal("0.6"), idempotency_key="report:9:reward")

    assert result.success is True
    assert result.reference_id == "5xSig"
    assert seen["url"] == "https://gateway.test/api/transfers"
    assert seen["auth"] == "Bearer secret-token"
    assert seen["body"] == {
        "recipient": "addr1",
        "amount": "0.6",
        "currency": "SOL",
        "idempotency_key": "report:9:reward",
    }


def test_http_client_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"success": False, "error": "invalid_recipient"})

    client = HttpRewardClient(_gateway_settings(), transport=httpx.MockTransport(handler))
    result = client.transfer("bad", Decimal("0.6"), idempotency_key="k")

    assert result.success is False
    assert result.confirmed is True
    assert result.error == "invalid_recipient"


def test_http_client_non_json_error_uses_status():
    client = HttpRewardClient(
        _gateway_settings(),
        transport=httpx.MockTransport(lambda request: httpx.Response(502, text="Bad Gateway")),
    )
    result = client.transfer("addr1", Decimal("0.6"), idempotency_key="k")
    assert result.error == "gateway_http_502"


def test_http_client_timeout_is_unconfirmed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = HttpRewardClient(_gateway_settings(), transport=httpx.MockTransport(handler))
    result = client.transfer("addr1", Decimal("0.6"), idempotency_key="k")

    assert result.success is False
    assert result.confirmed is False
    assert result.error == "confirmation_timeout"


def test_http_client_connect_error_is_failed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = HttpRewardClient(_gateway_settings(), transport=httpx.MockTransport(handler))
    result = client.transfer("addr1", Decimal("0.6"), idempotency_key="k")

    assert result.confirmed is True
    assert result.error == "gateway_unreachable: ConnectError"
