"""Crime classification service.

This module centralises calls to the OpenAI API that turn one media item
plus the reporter's description into a structured classification. It never
raises: every failure path returns the default low-confidence
classification so the analysis workflow always has something to branch on.
"""
from __future__ import annotations

import base64
import logging
import time
from typing import Any, Dict, List

from openai import APITimeoutError, OpenAI
from pydantic import ValidationError

from app.config import get_settings
from app.models import Severity
from app.schemas.classification import ClassificationResult, ClassifierOutput, ExtractedEntities
from app.services.classifier_flags import (
    classifier_enabled,
    classifier_model,
    classifier_timeout_seconds,
    fallback_category,
)

MANUAL_REVIEW_SENTINEL = "Manual review needed"

# Simple in-memory circuit breaker + metrics for the classifier
_FAILURE_COUNT: int = 0
_FAILURE_THRESHOLD: int = 5
_CIRCUIT_OPEN: bool = False

_CALLS: int = 0
_ERRORS: int = 0
_FALLBACKS: int = 0

_MAX_ATTEMPTS = 2

logger = logging.getLogger(__name__)


def _record_success() -> None:
    global _FAILURE_COUNT, _CIRCUIT_OPEN
    _FAILURE_COUNT = 0
    _CIRCUIT_OPEN = False


def _record_failure() -> None:
    global _FAILURE_COUNT, _CIRCUIT_OPEN, _ERRORS
    _FAILURE_COUNT += 1
    _ERRORS += 1
    if _FAILURE_COUNT >= _FAILURE_THRESHOLD:
        _CIRCUIT_OPEN = True


def _is_circuit_open() -> bool:
    return _CIRCUIT_OPEN


def reset_classifier_state() -> None:
    """Close the circuit and zero the counters."""

    global _FAILURE_COUNT, _CIRCUIT_OPEN, _CALLS, _ERRORS, _FALLBACKS
    _FAILURE_COUNT = 0
    _CIRCUIT_OPEN = False
    _CALLS = 0
    _ERRORS = 0
    _FALLBACKS = 0


def default_classification(reason: str | None = None) -> ClassificationResult:
    """Return the neutral classification used whenever analysis cannot complete."""

    summary = "Analysis failed - manual review required"
    if reason:
        summary = f"{summary} ({reason})"
    return ClassificationResult(
        confidence=0,
        category=fallback_category(),
        severity=Severity.LOW,
        summary=summary,
        risk_factors=[MANUAL_REVIEW_SENTINEL],
        recommendations=["Requires human verification"],
        extracted_entities=ExtractedEntities(),
        source="fallback",
    )


def _fallback(reason: str) -> ClassificationResult:
    global _FALLBACKS
    _FALLBACKS += 1
    return default_classification(reason)


def get_classifier_stats() -> dict[str, int]:
    """Expose basic counters for health/observability."""

    return {
        "calls": _CALLS,
        "errors": _ERRORS,
        "fallbacks": _FALLBACKS,
        "failure_count": _FAILURE_COUNT,
        "circuit_open": int(_CIRCUIT_OPEN),
    }


# --------------------------------------------------
# Core prompt (versioned; the response contract below is parsed strictly)
# --------------------------------------------------
CLASSIFIER_CORE_PROMPT = """
You are "CrimeWatch Media Analyst v1", an assistant that analyses media submitted with a crime report.

You NEVER decide whether a report is true. You ONLY return a structured, machine-readable
classification that helps a human administrator review the report.

=== OUTPUT CONTRACT ===

Return a SINGLE valid JSON object and NOTHING ELSE (no markdown, no comments):

{
  "confidence": 0,
  "crimeType": "SEXUAL_VIOLENCE | DOMESTIC_VIOLENCE | STREET_CRIMES | MOB_VIOLENCE_LYNCHING | ROAD_RAGE_INCIDENTS | CYBERCRIMES | DRUG | OTHER",
  "severity": "low | medium | high | critical",
  "description": "...",
  "riskFactors": [],
  "recommendations": [],
  "extractedEntities": {
    "people": [],
    "vehicles": [],
    "weapons": [],
    "locations": [],
    "objects": []
  }
}

- "confidence": integer 0-100, how sure you are that the media shows the described incident.
- "crimeType": exactly one of the listed values; use OTHER when none applies.
- "severity": one of low, medium, high, critical.
- "description": 2 to 5 neutral sentences describing what is visible.
- "riskFactors": short phrases describing risks to people or evidence.
- "recommendations": short phrases addressed to law enforcement.
- "extractedEntities": what you can actually see; leave a list empty rather than guessing.

If the media is unreadable, unrelated or missing, answer with a low confidence and say so in
"description".
""".strip()


def build_user_content(context: str, mime_type: str) -> str:
    """Build the text part of the user message."""

    lines = [
        "Analyse this report according to your instructions and return STRICTLY the JSON object.",
        f"Reporter description: {context.strip() or '(none provided)'}",
        f"Media type: {mime_type}",
    ]
    if mime_type.startswith("video/"):
        lines.append(
            "The media is a video clip whose frames are not attached; base your answer on the description "
            "and lower your confidence accordingly."
        )
    return "\n".join(lines)


def parse_classifier_output(raw: str | Dict[str, Any], *, source: str = "model") -> ClassificationResult:
    """Validate a model (or client) payload against the response contract.

    Raises ``ValidationError`` on any shape mismatch.
    """

    if isinstance(raw, (str, bytes)):
        parsed = ClassifierOutput.model_validate_json(raw)
    else:
        parsed = ClassifierOutput.model_validate(raw)
    return parsed.to_result(source=source)


def _extract_output_text(resp: Any) -> str | None:
    raw_text = getattr(resp, "output_text", None)
    if raw_text:
        return raw_text
    parts: List[str] = []
    for chunk in getattr(resp, "output", []) or []:
        for content_item in getattr(chunk, "content", []) or []:
            if getattr(content_item, "type", None) == "output_text":
                parts.append(getattr(content_item, "text", ""))
    return "".join(parts) or None


def _call_classifier_once(
    client,
    model: str,
    media: bytes,
    mime_type: str,
    context: str,
    timeout_seconds: int,
) -> ClassificationResult:
    """Single low-level call to the model provider."""

    user_parts: List[Dict[str, Any]] = [
        {"type": "input_text", "text": build_user_content(context, mime_type)},
    ]
    if mime_type.startswith("image/") and media:
        encoded = base64.b64encode(media).decode("ascii")
        user_parts.append({"type": "input_image", "image_url": f"data:{mime_type};base64,{encoded}"})

    messages: List[Dict[str, Any]] = [
        {"role": "system", "content": [{"type": "input_text", "text": CLASSIFIER_CORE_PROMPT}]},
        {"role": "user", "content": user_parts},
    ]

    resp = client.responses.create(
        model=model,
        input=messages,
        timeout=timeout_seconds,
    )

    raw_text = _extract_output_text(resp)
    if not raw_text:
        raise ValueError("Classifier did not return any text output")
    return parse_classifier_output(raw_text.strip())


def classify_media(
    media: bytes,
    mime_type: str,
    context: str = "",
    *,
    client: Any | None = None,
    model: str | None = None,
    timeout_seconds: int | None = None,
) -> ClassificationResult:
    """Classify one media item; always returns a well-formed classification."""

    global _CALLS

    start = time.monotonic()
    status = "success"
    outcome_reason: str | None = None
    settings = get_settings()

    try:
        if _is_circuit_open():
            status = outcome_reason = "circuit_breaker_open"
            logger.warning("Classifier circuit breaker open; skipping model call.")
            return _fallback(outcome_reason)

        if not classifier_enabled() and client is None:
            status = "disabled"
            outcome_reason = "classifier_disabled"
            logger.warning("Classifier requested while feature is disabled; returning fallback result.")
            return _fallback(outcome_reason)

        api_key = settings.OPENAI_API_KEY
        if client is None and not api_key:
            status = outcome_reason = "missing_api_key"
            logger.warning("OPENAI_API_KEY is not set; returning fallback classification.")
            return _fallback(outcome_reason)

        _CALLS += 1
        timeout_to_use = timeout_seconds or classifier_timeout_seconds()
        model_client = client or OpenAI(api_key=api_key, timeout=timeout_to_use, max_retries=0)
        model_to_use = model or classifier_model()

        last_exc: Exception | None = None
        for _attempt in range(_MAX_ATTEMPTS):
            try:
                result = _call_classifier_once(
                    client=model_client,
                    model=model_to_use,
                    media=media,
                    mime_type=mime_type,
                    context=context,
                    timeout_seconds=timeout_to_use,
                )
                _record_success()
                return result
            except APITimeoutError as exc:
                # The time budget is spent; do not retry.
                last_exc = exc
                _record_failure()
                status = outcome_reason = "timeout"
                break
            except (ValidationError, ValueError) as exc:
                last_exc = exc
                _record_failure()
                status = outcome_reason = "invalid_response"
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                _record_failure()
                status = outcome_reason = "provider_error"

        logger.error(
            "Classifier failed; returning fallback classification",
            exc_info=last_exc,
            extra={"reason": outcome_reason},
        )
        return _fallback(outcome_reason or "retries_exhausted")
    finally:
        duration = time.monotonic() - start
        logger.info(
            "Classifier call completed",
            extra={
                "status": status,
                "duration_seconds": duration,
                "reason": outcome_reason,
                "mime_type": mime_type,
                "media_bytes": len(media or b""),
            },
        )


__all__ = [
    "MANUAL_REVIEW_SENTINEL",
    "classify_media",
    "default_classification",
    "get_classifier_stats",
    "parse_classifier_output",
    "reset_classifier_state",
]
