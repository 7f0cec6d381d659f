"""Clients for the reward transfer network.

A client exposes ``transfer`` and ``close``; ``transfer`` always answers with a
``TransferResult``; none of them raise for an unsuccessful transfer. A
transfer whose confirmation did not arrive in time is reported as
unconfirmed rather than failed, since the funds may already be in flight.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol
from uuid import uuid4

import httpx

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferResult:
    success: bool
    reference_id: str | None = None
    explorer_url: str | None = None
    error: str | None = None
    confirmed: bool = True

    @classmethod
    def failed(cls, error: str) -> "TransferResult":
        return cls(success=False, error=error)

    @classmethod
    def unconfirmed(cls, error: str) -> "TransferResult":
        return cls(success=False, error=error, confirmed=False)


class RewardClient(Protocol):
    name: str

    def transfer(self, recipient: str, amount: Decimal, *, idempotency_key: str) -> TransferResult:
        ...

    def close(self) -> None:
        ...


def _explorer_url(settings: Settings, reference_id: str) -> str:
    return settings.REWARD_EXPLORER_URL_TEMPLATE.format(reference_id=reference_id)


class MockRewardClient:
    """Simulated transfers for development and tests."""

    name = "mock"

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def transfer(self, recipient: str, amount: Decimal, *, idempotency_key: str) -> TransferResult:
        if not recipient.strip():
            return TransferResult.failed("invalid_recipient")
        reference_id = f"SIM-{uuid4().hex}"
        logger.info(
            "Simulated reward transfer",
            extra={"amount": str(amount), "idempotency_key": idempotency_key},
        )
        return TransferResult(
            success=True,
            reference_id=reference_id,
            explorer_url=_explorer_url(self.settings, reference_id),
        )

    def close(self) -> None:
        pass


class DisabledRewardClient:
    name = "disabled"

    def transfer(self, recipient: str, amount: Decimal, *, idempotency_key: str) -> TransferResult:
        return TransferResult.failed("rewards_disabled")

    def close(self) -> None:
        pass


class HttpRewardClient:
    """Talks to a signing gateway that owns the reward wallet.

    Contract: ``POST {REWARD_GATEWAY_URL}/transfers`` with
    ``{"recipient", "amount", "currency", "idempotency_key"}``; the gateway
    answers ``{"success": true, "reference_id", "explorer_url"}`` or
    ``{"success": false, "error"}``.
    """

    name = "http"

    def __init__(self, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> None:
        if not settings.REWARD_GATEWAY_URL:
            raise RuntimeError("Reward gateway URL is missing; configure REWARD_GATEWAY_URL.")
        self.settings = settings
        headers = {"Content-Type": "application/json"}
        if settings.REWARD_GATEWAY_TOKEN:
            headers["Authorization"] = f"Bearer {settings.REWARD_GATEWAY_TOKEN}"
        self._client = httpx.Client(
            base_url=settings.REWARD_GATEWAY_URL.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(settings.REWARD_TIMEOUT_SECONDS),
            transport=transport,
        )

    def transfer(self, recipient: str, amount: Decimal, *, idempotency_key: str) -> TransferResult:
        payload = {
            "recipient": recipient,
            "amount": str(amount),
            "currency": self.settings.REWARD_CURRENCY,
            "idempotency_key": idempotency_key,
        }
        try:
            response = self._client.post("/transfers", json=payload)
        except httpx.TimeoutException:
            logger.warning("Reward gateway timed out", extra={"idempotency_key": idempotency_key})
            return TransferResult.unconfirmed("confirmation_timeout")
        except httpx.HTTPError as exc:
            logger.warning(
                "Reward gateway unreachable",
                extra={"idempotency_key": idempotency_key, "error": str(exc)},
            )
            return TransferResult.failed(f"gateway_unreachable: {exc.__class__.__name__}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_success and body.get("success") is True and body.get("reference_id"):
            reference_id = str(body["reference_id"])
            return TransferResult(
                success=True,
                reference_id=reference_id,
                explorer_url=body.get("explorer_url") or _explorer_url(self.settings, reference_id),
            )

        error = body.get("error") or f"gateway_http_{response.status_code}"
        return TransferResult.failed(str(error))

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        self._client.close()


def get_reward_client(settings: Settings | None = None) -> RewardClient:
    """Instantiate the client selected by ``REWARD_PROVIDER``."""

    settings = settings or get_settings()
    provider = settings.REWARD_PROVIDER
    if provider == "http":
        return HttpRewardClient(settings)
    if provider == "disabled":
        return DisabledRewardClient()
    if provider == "mock":
        return MockRewardClient(settings)
    raise RuntimeError(f"Unknown reward provider: {provider}")


__all__ = [
    "DisabledRewardClient",
    "HttpRewardClient",
    "MockRewardClient",
    "RewardClient",
    "TransferResult",
    "get_reward_client",
]
