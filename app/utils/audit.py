"""Audit logging helper utilities."""
from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.utils.time import utcnow


SENSITIVE_KEYS = {
    "payout_address",
    "recipient_address",
    "recipient",
    "media_refs",
    "storage_ref",
    "reference_id",
}


def mask_address(value: str) -> str:
    """Keep only the last four characters of a wallet address."""

    text = str(value)
    if len(text) <= 4:
        return "***"
    return f"***{text[-4:]}"


def _mask_value(key: str, value: Any) -> Any:
    if value is None:
        return None

    if key in {"payout_address", "recipient_address", "recipient"}:
        return mask_address(value)

    if key in {"media_refs", "storage_ref"}:
        if isinstance(value, list):
            return [f"***/{str(item).rsplit('/', 1)[-1][:8]}" for item in value]
        return f"***/{str(value).rsplit('/', 1)[-1][:8]}"

    if key == "reference_id":
        text = str(value)
        if len(text) <= 6:
            return "***"
        return f"***{text[-6:]}"

    return value


def sanitize_payload_for_audit(data: Any) -> Any:
    """Return a copy of ``data`` with wallet addresses and media references masked."""

    if isinstance(data, Mapping):
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            masked_value = _mask_value(key, value) if key in SENSITIVE_KEYS else value
            sanitized[key] = sanitize_payload_for_audit(masked_value)
        return sanitized

    if isinstance(data, list):
        return [sanitize_payload_for_audit(item) for item in data]

    return data


def log_audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity: str,
    entity_id: int | None,
    data: dict | None = None,
) -> None:
    """Stage an audit entry in the shared AuditLog table (committed with the caller's unit of work)."""

    db.add(
        AuditLog(
            actor=actor,
            action=action,
            entity=entity,
            entity_id=entity_id if entity_id is not None else 0,
            data_json=sanitize_payload_for_audit(data or {}),
            at=utcnow(),
        )
    )
