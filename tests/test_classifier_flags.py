from app.models import CrimeCategory
from app.services import classifier_flags


class StubSettings:
    CLASSIFIER_ENABLED = False
    CLASSIFIER_MODEL = "gpt-test"
    CLASSIFIER_PROVIDER = "openai"
    CLASSIFIER_TIMEOUT_SECONDS = 30
    CLASSIFIER_FALLBACK_CATEGORY = "UNKNOWN"


def test_classifier_flags_reflect_live_settings(monkeypatch):
    stub = StubSettings()
    monkeypatch.setattr("app.services.classifier_flags.get_settings", lambda: stub)

    assert classifier_flags.classifier_enabled() is False
    assert classifier_flags.classifier_model() == "gpt-test"
    assert classifier_flags.classifier_provider() == "openai"
    assert classifier_flags.classifier_timeout_seconds() == 30

    stub.CLASSIFIER_ENABLED = True
    stub.CLASSIFIER_TIMEOUT_SECONDS = 45

    assert classifier_flags.classifier_enabled() is True
    assert classifier_flags.classifier_timeout_seconds() == 45


def test_fallback_category_normalises_and_defaults(monkeypatch):
    stub = StubSettings()
    monkeypatch.setattr("app.services.classifier_flags.get_settings", lambda: stub)

    stub.CLASSIFIER_FALLBACK_CATEGORY = "other"
    assert classifier_flags.fallback_category() == CrimeCategory.OTHER

    stub.CLASSIFIER_FALLBACK_CATEGORY = "not-a-category"
    assert classifier_flags.fallback_category() == CrimeCategory.UNKNOWN
