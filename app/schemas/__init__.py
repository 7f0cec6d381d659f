"""Schema package exports."""
from .classification import ClassificationResult, ClassifierOutput, ExtractedEntities
from .reward import RewardOutcome
from .verification import VerificationRead, VerificationRequest
from .report import Coordinates, ReportRead, ReportSubmission, VerificationResponse
from .stats import DashboardStats

__all__ = [
    "ClassificationResult",
    "ClassifierOutput",
    "Coordinates",
    "DashboardStats",
    "ExtractedEntities",
    "ReportRead",
    "ReportSubmission",
    "RewardOutcome",
    "VerificationRead",
    "VerificationRequest",
    "VerificationResponse",
]
