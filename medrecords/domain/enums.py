"""Domain enumerations for clinical records.

Security Impact:
    - Closed value sets keep free-text status values out of persisted records

Architecture:
    - Pure domain module with no infrastructure dependencies
    - Enum values are the codes written to the generic record representation
"""

from enum import Enum


class ServiceStatus(str, Enum):
    """Publication status of a service catalog entry."""
    ACTIVE = "active"
    RETIRED = "retired"
    DRAFT = "draft"


class VisitStatus(str, Enum):
    """Lifecycle status of a patient visit."""
    PLANNED = "planned"
    ARRIVED = "arrived"
    IN_PROGRESS = "in-progress"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    ENTERED_IN_ERROR = "entered-in-error"


class VisitType(str, Enum):
    """Kind of visit, mapped to an encounter class code."""
    STATIONARY = "stationary"
    AMBULATORY = "ambulatory"
    EMERGENCY = "emergency"

    @property
    def class_code(self) -> str:
        return _VISIT_CLASS_CODES[self]

    @classmethod
    def from_class_code(cls, code: str) -> "VisitType":
        for visit_type, class_code in _VISIT_CLASS_CODES.items():
            if class_code == code:
                return visit_type
        raise ValueError(f"Unknown encounter class code: {code}")


_VISIT_CLASS_CODES = {
    VisitType.STATIONARY: "IMP",
    VisitType.AMBULATORY: "AMB",
    VisitType.EMERGENCY: "EMER",
}


class CoverageStatus(str, Enum):
    """Status of an insurance coverage record."""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    DRAFT = "draft"
    ENTERED_IN_ERROR = "entered-in-error"


class AdministrativeGender(str, Enum):
    """Patient administrative gender."""
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class ContactPointSystem(str, Enum):
    """Telecom channel of a patient contact entry."""
    PHONE = "phone"
    EMAIL = "email"
    FAX = "fax"
    SMS = "sms"
    OTHER = "other"


class DuplicateResolution(str, Enum):
    """Caller decision when a duplicate patient is detected."""
    OPEN_EXISTING = "open_existing"
    REGISTER_ANYWAY = "register_anyway"
    CANCEL = "cancel"
