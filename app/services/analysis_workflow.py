"""Report analysis workflow.

The workflow threads a ``WorkflowState`` through five steps::

    initial -> media_analyzed -> risk_assessed -> review_determined
            -> [awaiting_human_review | human_review_completed] -> decision_finalized

Each step is guarded independently. A failing step records a ``*_failed``
marker, substitutes a neutral result and lets the run continue, so every
run ends at ``decision_finalized`` with a disposition. There is no automatic
approval of the human review step: when review is required and no
verification has been recorded yet the run finishes ``PENDING`` and the
verification service supplies the decision later.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable

from app.models import Disposition, Severity
from app.schemas.classification import ClassificationResult
from app.schemas.verification import VerificationRead
from app.services import classifier as classifier_service

logger = logging.getLogger(__name__)

# Thresholds
REVIEW_CONFIDENCE_THRESHOLD = 70
AUTO_VERIFY_CONFIDENCE_THRESHOLD = 80
LOW_CONFIDENCE_RISK_THRESHOLD = 60
EVIDENCE_CONFIDENCE_THRESHOLD = 70
LARGE_GROUP_SIZE = 5
MAX_RISK_FACTORS_WITHOUT_REVIEW = 3

# Derived risk factors and recommendations
RISK_WEAPONS = "weapons detected in media"
RISK_LARGE_GROUP = "large number of people involved"
RISK_LOW_CONFIDENCE = "low AI confidence requires verification"
REC_IMMEDIATE_RESPONSE = "immediate law-enforcement response required"
REC_ARMED_RESPONSE = "armed response team recommended"
REC_MORE_EVIDENCE = "additional evidence collection needed"

REVIEW_SEVERITIES = frozenset({Severity.HIGH, Severity.CRITICAL})


class WorkflowStep(str, enum.Enum):
    INITIAL = "initial"
    MEDIA_ANALYZED = "media_analyzed"
    MEDIA_ANALYSIS_FAILED = "media_analysis_failed"
    RISK_ASSESSED = "risk_assessed"
    RISK_ASSESSMENT_FAILED = "risk_assessment_failed"
    REVIEW_DETERMINED = "review_determined"
    REVIEW_DETERMINATION_FAILED = "review_determination_failed"
    AWAITING_HUMAN_REVIEW = "awaiting_human_review"
    HUMAN_REVIEW_COMPLETED = "human_review_completed"
    DECISION_FINALIZED = "decision_finalized"
    DECISION_FAILED = "decision_failed"
    WORKFLOW_FAILED = "workflow_failed"


@dataclass
class MediaInput:
    data: bytes
    mime_type: str


@dataclass
class WorkflowState:
    """Working set for one analysis run; discarded once written back to the report."""

    report_id: int | None
    description: str
    classification: ClassificationResult
    verification: VerificationRead | None = None
    requires_human_review: bool = False
    disposition: Disposition = Disposition.PENDING
    current_step: WorkflowStep = WorkflowStep.INITIAL
    steps: list[WorkflowStep] = field(default_factory=list)
    failed_steps: list[WorkflowStep] = field(default_factory=list)

    def advance(self, step: WorkflowStep) -> None:
        self.current_step = step
        self.steps.append(step)

    def fail(self, step: WorkflowStep) -> None:
        self.failed_steps.append(step)
        self.advance(step)

    @property
    def awaiting_human_review(self) -> bool:
        return WorkflowStep.AWAITING_HUMAN_REVIEW in self.steps


# --------------------------------------------------
# Pure decision rules
# --------------------------------------------------
def derive_risk_factors(classification: ClassificationResult) -> list[str]:
    entities = classification.extracted_entities
    factors: list[str] = []
    if entities.weapons:
        factors.append(RISK_WEAPONS)
    if len(entities.people) > LARGE_GROUP_SIZE:
        factors.append(RISK_LARGE_GROUP)
    if classification.confidence < LOW_CONFIDENCE_RISK_THRESHOLD:
        factors.append(RISK_LOW_CONFIDENCE)
    return factors


def derive_recommendations(classification: ClassificationResult) -> list[str]:
    recommendations: list[str] = []
    if classification.severity == Severity.CRITICAL:
        recommendations.append(REC_IMMEDIATE_RESPONSE)
    if classification.extracted_entities.weapons:
        recommendations.append(REC_ARMED_RESPONSE)
    if classification.confidence < EVIDENCE_CONFIDENCE_THRESHOLD:
        recommendations.append(REC_MORE_EVIDENCE)
    return recommendations


def assess_risk(classification: ClassificationResult) -> ClassificationResult:
    """Append derived risk factors and recommendations.

    Every rule reads the classification as it was passed in, so the result
    does not depend on rule order. The input is not mutated.
    """

    factors = derive_risk_factors(classification)
    recommendations = derive_recommendations(classification)
    return classification.model_copy(
        update={
            "risk_factors": [*classification.risk_factors, *factors],
            "recommendations": [*classification.recommendations, *recommendations],
        },
        deep=True,
    )


def requires_human_review(classification: ClassificationResult) -> bool:
    return (
        classification.confidence < REVIEW_CONFIDENCE_THRESHOLD
        or classification.severity in REVIEW_SEVERITIES
        or len(classification.risk_factors) > MAX_RISK_FACTORS_WITHOUT_REVIEW
    )


def finalize_disposition(
    review_required: bool,
    confidence: int,
    verification: VerificationRead | None,
) -> Disposition:
    if not review_required:
        if confidence >= AUTO_VERIFY_CONFIDENCE_THRESHOLD:
            return Disposition.VERIFIED
        return Disposition.PENDING
    if verification is not None:
        return Disposition.VERIFIED if verification.is_verified else Disposition.REJECTED
    return Disposition.PENDING


# --------------------------------------------------
# Workflow
# --------------------------------------------------
class CrimeAnalysisWorkflow:
    """Runs the analysis steps for one report."""

    def __init__(self, classify: Callable[[bytes, str, str], ClassificationResult] | None = None) -> None:
        self._classify = classify

    def _classify_media(self, media: MediaInput, context: str) -> ClassificationResult:
        classify = self._classify or classifier_service.classify_media
        return classify(media.data, media.mime_type, context)

    def analyze_media(
        self,
        state: WorkflowState,
        media: MediaInput | None,
        precomputed: ClassificationResult | None,
    ) -> None:
        try:
            if precomputed is not None:
                state.classification = precomputed.model_copy(deep=True)
            elif media is None:
                raise ValueError("report has no readable media")
            else:
                state.classification = self._classify_media(media, state.description)
            state.advance(WorkflowStep.MEDIA_ANALYZED)
        except Exception:  # noqa: BLE001
            logger.exception("Media analysis failed", extra={"report_id": state.report_id})
            state.classification = classifier_service.default_classification("media_analysis_failed")
            state.fail(WorkflowStep.MEDIA_ANALYSIS_FAILED)

    def assess_risk(self, state: WorkflowState) -> None:
        try:
            state.classification = assess_risk(state.classification)
            state.advance(WorkflowStep.RISK_ASSESSED)
        except Exception:  # noqa: BLE001
            logger.exception("Risk assessment failed", extra={"report_id": state.report_id})
            state.fail(WorkflowStep.RISK_ASSESSMENT_FAILED)

    def determine_review(self, state: WorkflowState) -> None:
        try:
            state.requires_human_review = requires_human_review(state.classification)
            state.advance(WorkflowStep.REVIEW_DETERMINED)
        except Exception:  # noqa: BLE001
            logger.exception("Review determination failed", extra={"report_id": state.report_id})
            # An undecidable gate is treated as closed.
            state.requires_human_review = True
            state.fail(WorkflowStep.REVIEW_DETERMINATION_FAILED)

    def human_review(self, state: WorkflowState) -> None:
        if state.verification is not None:
            state.advance(WorkflowStep.HUMAN_REVIEW_COMPLETED)
            return
        logger.info("Report awaiting human review", extra={"report_id": state.report_id})
        state.advance(WorkflowStep.AWAITING_HUMAN_REVIEW)

    def finalize_decision(self, state: WorkflowState) -> None:
        try:
            state.disposition = finalize_disposition(
                state.requires_human_review,
                state.classification.confidence,
                state.verification,
            )
            state.advance(WorkflowStep.DECISION_FINALIZED)
        except Exception:  # noqa: BLE001
            logger.exception("Decision finalization failed", extra={"report_id": state.report_id})
            state.disposition = Disposition.PENDING
            state.fail(WorkflowStep.DECISION_FAILED)
            state.advance(WorkflowStep.DECISION_FINALIZED)

    def run(
        self,
        *,
        report_id: int | None,
        description: str,
        media: MediaInput | None = None,
        precomputed: ClassificationResult | None = None,
        verification: VerificationRead | None = None,
    ) -> WorkflowState:
        """Execute every step and return the final state; never raises."""

        state = WorkflowState(
            report_id=report_id,
            description=description or "",
            classification=classifier_service.default_classification(),
            verification=verification,
        )
        state.advance(WorkflowStep.INITIAL)
        try:
            self.analyze_media(state, media, precomputed)
            self.assess_risk(state)
            self.determine_review(state)
            if state.requires_human_review:
                self.human_review(state)
            self.finalize_decision(state)
        except Exception:  # noqa: BLE001
            logger.exception("Workflow execution failed", extra={"report_id": report_id})
            state.disposition = Disposition.PENDING
            state.fail(WorkflowStep.WORKFLOW_FAILED)
            state.advance(WorkflowStep.DECISION_FINALIZED)

        logger.info(
            "Workflow completed",
            extra={
                "report_id": report_id,
                "disposition": state.disposition.value,
                "requires_human_review": state.requires_human_review,
                "confidence": state.classification.confidence,
                "failed_steps": [step.value for step in state.failed_steps],
            },
        )
        return state


__all__ = [
    "CrimeAnalysisWorkflow",
    "MediaInput",
    "WorkflowState",
    "WorkflowStep",
    "assess_risk",
    "derive_recommendations",
    "derive_risk_factors",
    "finalize_disposition",
    "requires_human_review",
]
