"""ORM models package."""
from .audit import AuditLog
from .base import Base
from .classification import ENTITY_KINDS, Classification, empty_entities
from .enums import (
    CrimeCategory,
    Disposition,
    MediaKind,
    Priority,
    ReportStatus,
    RewardStatus,
    SEVERITY_TO_PRIORITY,
    Severity,
)
from .report import Report
from .reward import Reward
from .verification import Verification

__all__ = [
    "AuditLog",
    "Base",
    "Classification",
    "CrimeCategory",
    "Disposition",
    "ENTITY_KINDS",
    "MediaKind",
    "Priority",
    "Report",
    "ReportStatus",
    "Reward",
    "RewardStatus",
    "SEVERITY_TO_PRIORITY",
    "Severity",
    "Verification",
    "empty_entities",
]
