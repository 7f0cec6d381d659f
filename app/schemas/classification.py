"""Schemas for media classifications."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models import CrimeCategory, Severity


class ExtractedEntities(BaseModel):
    people: list[str] = Field(default_factory=list)
    vehicles: list[str] = Field(default_factory=list)
    weapons: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    objects: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class ClassificationResult(BaseModel):
    """Well-formed classification as used by the workflow and returned by the API."""

    confidence: int = Field(ge=0, le=100)
    category: CrimeCategory
    severity: Severity
    summary: str = ""
    risk_factors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    extracted_entities: ExtractedEntities = Field(default_factory=ExtractedEntities)
    source: str = "model"

    model_config = ConfigDict(from_attributes=True)


class ClassifierOutput(BaseModel):
    """Wire shape expected from the classification model (and from clients sending a pre-computed analysis).

    Parsing is strict on shape: a missing field, a wrong type or an
    out-of-range confidence fails validation and the caller falls back to the
    default classification. Only the two vocabularies are normalised.
    """

    confidence: int = Field(ge=0, le=100)
    crime_type: str = Field(alias="crimeType")
    severity: str
    description: str
    risk_factors: list[str] = Field(alias="riskFactors")
    recommendations: list[str]
    extracted_entities: ExtractedEntities = Field(alias="extractedEntities")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("confidence", mode="before")
    @classmethod
    def _reject_bool_confidence(cls, value):
        if isinstance(value, bool):
            raise ValueError("confidence must be a number")
        return value

    def to_result(self, *, source: str = "model") -> ClassificationResult:
        return ClassificationResult(
            confidence=self.confidence,
            category=CrimeCategory.normalize(self.crime_type),
            severity=Severity.normalize(self.severity),
            summary=self.description.strip(),
            risk_factors=list(self.risk_factors),
            recommendations=list(self.recommendations),
            extracted_entities=self.extracted_entities.model_copy(deep=True),
            source=source,
        )
