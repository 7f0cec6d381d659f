"""Closed vocabularies shared by reports, classifications and rewards."""
import enum


class ReportStatus(str, enum.Enum):
    """Lifecycle status of a report; only the verification service moves it off PENDING."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class Priority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Severity(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def normalize(cls, value: object) -> "Severity":
        """Case-normalise a severity label; anything unrecognised is LOW."""

        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.LOW


class MediaKind(str, enum.Enum):
    PHOTO = "PHOTO"
    VIDEO = "VIDEO"


class CrimeCategory(str, enum.Enum):
    """Categories a classification may carry."""

    SEXUAL_VIOLENCE = "SEXUAL_VIOLENCE"
    DOMESTIC_VIOLENCE = "DOMESTIC_VIOLENCE"
    STREET_CRIMES = "STREET_CRIMES"
    MOB_VIOLENCE_LYNCHING = "MOB_VIOLENCE_LYNCHING"
    ROAD_RAGE_INCIDENTS = "ROAD_RAGE_INCIDENTS"
    CYBERCRIMES = "CYBERCRIMES"
    DRUG = "DRUG"
    OTHER = "OTHER"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def normalize(cls, value: object) -> "CrimeCategory":
        """Map free text such as ``"street crimes"`` onto the enum; unknown labels become OTHER."""

        if value is None:
            return cls.OTHER
        label = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        if not label:
            return cls.OTHER
        try:
            return cls(label)
        except ValueError:
            return cls.OTHER


class Disposition(str, enum.Enum):
    """Outcome computed by the analysis workflow."""

    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    PENDING = "PENDING"


class RewardStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


SEVERITY_TO_PRIORITY = {
    Severity.LOW: Priority.LOW,
    Severity.MEDIUM: Priority.MEDIUM,
    Severity.HIGH: Priority.HIGH,
    Severity.CRITICAL: Priority.CRITICAL,
}
