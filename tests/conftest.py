"""Test configuration."""
import os
import tempfile
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

# --- Default environment, set before the app reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./crimewatch_test.db")
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="crimewatch-media-"))
os.environ.setdefault("CRIMEWATCH_ENV", "test")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")
os.environ["CLASSIFIER_ENABLED"] = "false"
os.environ["REWARD_PROVIDER"] = "mock"

from app.main import app  # noqa: E402
from app.config import get_settings  # noqa: E402
from app.db import get_db, make_engine, make_sessionmaker  # noqa: E402
from app.models import (  # noqa: E402
    Classification,
    CrimeCategory,
    MediaKind,
    Priority,
    Report,
    ReportStatus,
    Severity,
    empty_entities,
)
from app.services.classifier import reset_classifier_state  # noqa: E402

DB_PATH = Path("./crimewatch_test.db")


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("script_location", str(Path(__file__).resolve().parents[1] / "alembic"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh database file per session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = make_engine(os.environ["DATABASE_URL"])
TestingSessionLocal = make_sessionmaker(engine)

# --- (2) Schema is built through Alembic only
_run_migrations()


@pytest.fixture
def db_session() -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session
    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def reset_classifier() -> Iterator[None]:
    reset_classifier_state()
    yield
    reset_classifier_state()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def classifier_payload() -> Callable[..., dict]:
    """Factory for a well-formed classifier response body."""

    def _factory(
        *,
        confidence: int = 90,
        crime_type: str = "STREET_CRIMES",
        severity: str = "low",
        people: list[str] | None = None,
        weapons: list[str] | None = None,
        risk_factors: list[str] | None = None,
    ) -> dict:
        return {
            "confidence": confidence,
            "crimeType": crime_type,
            "severity": severity,
            "description": "A person grabs a bag from a parked scooter.",
            "riskFactors": risk_factors or [],
            "recommendations": [],
            "extractedEntities": {
                "people": people or [],
                "vehicles": ["scooter"],
                "weapons": weapons or [],
                "locations": [],
                "objects": ["bag"],
            },
        }

    return _factory


@pytest.fixture
def make_report(db_session: Session) -> Callable[..., Report]:
    """Insert a report directly, bypassing intake and analysis."""

    def _factory(
        *,
        payout_address: str | None = "WalletAddr1111111111111111111111",
        status: ReportStatus = ReportStatus.PENDING,
        confidence: int = 50,
        category: CrimeCategory = CrimeCategory.STREET_CRIMES,
        severity: Severity = Severity.MEDIUM,
        description: str = "Phone snatched near the bus stop",
        location: str = "Main Street",
    ) -> Report:
        report = Report(
            submitter_id="citizen-1",
            location=location,
            description=description,
            media_refs=["deadbeef.jpg"],
            media_kind=MediaKind.PHOTO,
            category=category,
            priority=Priority.MEDIUM,
            status=status,
            payout_address=payout_address,
            requires_human_review=True,
        )
        report.classification = Classification(
            confidence=confidence,
            category=category,
            severity=severity,
            summary="seeded",
            risk_factors=[],
            recommendations=[],
            extracted_entities=empty_entities(),
            source="model",
        )
        db_session.add(report)
        db_session.commit()
        db_session.refresh(report)
        return report

    return _factory
