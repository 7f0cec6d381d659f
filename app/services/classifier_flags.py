"""Helper utilities for the crime classifier feature flags."""

from app.config import get_settings
from app.models import CrimeCategory


def _current_settings():
    return get_settings()


def classifier_enabled() -> bool:
    """Return True if calls to the classification model are enabled."""

    return bool(_current_settings().CLASSIFIER_ENABLED)


def classifier_model() -> str:
    return _current_settings().CLASSIFIER_MODEL


def classifier_provider() -> str:
    return _current_settings().CLASSIFIER_PROVIDER


def classifier_timeout_seconds() -> int:
    """Return the per-call budget for the classification model, in seconds."""

    return int(_current_settings().CLASSIFIER_TIMEOUT_SECONDS)


def fallback_category() -> CrimeCategory:
    """Category stamped on the default classification when analysis fails."""

    raw = _current_settings().CLASSIFIER_FALLBACK_CATEGORY
    try:
        return CrimeCategory(str(raw).strip().upper())
    except ValueError:
        return CrimeCategory.UNKNOWN
