"""Classification model definitions."""
from sqlalchemy import CheckConstraint, Enum as SqlEnum, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .enums import CrimeCategory, Severity

ENTITY_KINDS = ("people", "vehicles", "weapons", "locations", "objects")


def empty_entities() -> dict[str, list[str]]:
    return {kind: [] for kind in ENTITY_KINDS}


class Classification(Base):
    """Automated media analysis attached one-to-one to a report."""

    __tablename__ = "classifications"
    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 100", name="ck_classification_confidence_range"),
    )

    report_id: Mapped[int] = mapped_column(
        ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[CrimeCategory] = mapped_column(
        SqlEnum(CrimeCategory), nullable=False, default=CrimeCategory.UNKNOWN
    )
    severity: Mapped[Severity] = mapped_column(SqlEnum(Severity), nullable=False, default=Severity.LOW)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    risk_factors: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    recommendations: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    extracted_entities: Mapped[dict[str, list[str]]] = mapped_column(JSON, nullable=False, default=empty_entities)
    # model | client | fallback | pending
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    report = relationship("Report", back_populates="classification")
