"""Duplicate Detection Service.

Looks up existing patients by personal id before a new patient is registered.
The component never merges records: when a match is found the caller decides
whether to open the existing record, register anyway (audited) or cancel.

Security Impact:
    - Ambiguous matches are reported as DataIntegrityWarning, never resolved
      silently
    - Overrides are written to the audit trail before the result is returned
    - Personal ids are masked in log messages

Architecture:
    - Domain service depending only on ResourceStorePort and the audit logger
    - The check-then-create sequence is not atomic: two sessions registering
      the same personal id at once can both pass the check. Closing the gap
      needs a store-level uniqueness constraint or a conditional create.
"""

import logging
import warnings
from typing import Optional

from pydantic import BaseModel, ConfigDict

from medrecords.domain.constants import PERSONAL_ID_SYSTEM
from medrecords.domain.enums import DuplicateResolution
from medrecords.domain.models import Patient
from medrecords.domain.ports import (
    DataIntegrityWarning,
    ResourceStorePort,
    ValidationError,
)
from medrecords.domain.services.resource_mapper import ResourceMapper, resource_mapper
from medrecords.domain.utils import created_at
from medrecords.infrastructure.audit.override_audit_logger import OverrideAuditLogger, mask_identifier

logger = logging.getLogger(__name__)

PERSONAL_ID_LENGTH = 11


def validate_personal_id(value: Optional[str]) -> str:
    """Trim and validate an 11-digit personal id.

    Raises:
        ValidationError: With the reason the id is rejected
    """
    personal_id = (value or "").strip()
    if personal_id and not (personal_id.isascii() and personal_id.isdigit()):
        raise ValidationError("Personal ID must contain only digits", source="personal_id")
    if len(personal_id) != PERSONAL_ID_LENGTH:
        raise ValidationError(
            f"Personal ID must be exactly {PERSONAL_ID_LENGTH} digits", source="personal_id"
        )
    return personal_id


class DuplicateCheckResult(BaseModel):
    """Outcome of a duplicate check.

    Attributes:
        personal_id: The trimmed personal id that was checked
        match: Earliest-created patient with that personal id, if any
        match_references: References of every matching patient
    """

    model_config = ConfigDict(frozen=True)

    personal_id: str
    match: Optional[Patient] = None
    match_references: tuple[str, ...] = ()

    @property
    def is_duplicate(self) -> bool:
        return self.match is not None

    @property
    def is_ambiguous(self) -> bool:
        return len(self.match_references) > 1


class RegistrationOutcome(BaseModel):
    """Result of a registration attempt.

    Attributes:
        patient: Created patient, the existing one (OPEN_EXISTING) or None (CANCEL)
        created: True if a new patient was stored
        resolution: The caller's resolution when a duplicate was found
        check: The duplicate check that gated the registration
    """

    model_config = ConfigDict(frozen=True)

    patient: Optional[Patient] = None
    created: bool = False
    resolution: Optional[DuplicateResolution] = None
    check: Optional[DuplicateCheckResult] = None


class DuplicatePatientDetector:
    """Natural-key lookup of existing patients before registration.

    Parameters:
        store: Resource store
        audit_logger: Receives an entry for every REGISTER_ANYWAY override
        mapper: Resource mapper (defaults to the shared mapper)
        strict_personal_id: Require the 11-digit personal id format

    Example Usage:
        ```python
        detector = DuplicatePatientDetector(store)
        check = detector.check("01001011116")
        if check.is_duplicate:
            ...  # ask the user
        outcome = detector.register_patient(patient, resolution=DuplicateResolution.REGISTER_ANYWAY,
                                            actor="registrar-7")
        ```
    """

    def __init__(
        self,
        store: ResourceStorePort,
        audit_logger: Optional[OverrideAuditLogger] = None,
        mapper: Optional[ResourceMapper] = None,
        strict_personal_id: bool = True,
    ):
        self.store = store
        self.audit_logger = audit_logger or OverrideAuditLogger()
        self.mapper = mapper or resource_mapper
        self.strict_personal_id = strict_personal_id

    def _normalize(self, personal_id: Optional[str]) -> str:
        if self.strict_personal_id:
            return validate_personal_id(personal_id)
        normalized = (personal_id or "").strip()
        if not normalized:
            raise ValidationError("Personal ID is required", source="personal_id")
        return normalized

    def check(self, personal_id: str) -> DuplicateCheckResult:
        """Find an existing patient with the given personal id.

        The value is trimmed and compared case-sensitively, under the personal
        id system only. If several patients match, the earliest created is
        returned and a DataIntegrityWarning is issued.

        Raises:
            ValidationError: If the personal id is empty or malformed
            PersistenceError: If the store search fails
        """
        normalized = self._normalize(personal_id)
        candidates = self.store.search("Patient", {"identifier": f"{PERSONAL_ID_SYSTEM}|{normalized}"})

        matches = sorted(
            (
                resource for resource in candidates
                if any(
                    isinstance(identifier, dict)
                    and identifier.get("system") == PERSONAL_ID_SYSTEM
                    and identifier.get("value") == normalized
                    for identifier in resource.get("identifier") or []
                )
            ),
            key=created_at,
        )
        if not matches:
            return DuplicateCheckResult(personal_id=normalized)

        references = tuple(f"Patient/{resource.get('id')}" for resource in matches)
        if len(matches) > 1:
            message = (
                f"{len(matches)} patients share personal id {mask_identifier(normalized)}: "
                f"{', '.join(references)}; showing the earliest"
            )
            logger.warning(message)
            warnings.warn(DataIntegrityWarning(message, matches=references), stacklevel=2)

        return DuplicateCheckResult(
            personal_id=normalized,
            match=self.mapper.from_resource(matches[0]),
            match_references=references,
        )

    def register_patient(
        self,
        patient: Patient,
        resolution: Optional[DuplicateResolution] = None,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> RegistrationOutcome:
        """Create a patient unless a duplicate exists and the caller has not decided.

        Parameters:
            patient: Patient to register (must carry a personal id)
            resolution: Caller's decision, required once a duplicate is known
            actor: User registering the patient (recorded on overrides)
            reason: Justification recorded on overrides

        Returns:
            RegistrationOutcome

        Raises:
            DataIntegrityWarning: A duplicate exists and no resolution was given
            ValidationError: The patient has no valid personal id
            PersistenceError: If the store fails
        """
        check = self.check(patient.personal_id)

        if check.is_duplicate:
            if resolution is None:
                raise DataIntegrityWarning(
                    f"A patient with personal id {mask_identifier(check.personal_id)} already exists "
                    f"({check.match_references[0]})",
                    matches=check.match_references,
                )
            if resolution == DuplicateResolution.OPEN_EXISTING:
                return RegistrationOutcome(patient=check.match, resolution=resolution, check=check)
            if resolution == DuplicateResolution.CANCEL:
                logger.info(f"Registration cancelled for duplicate {check.match_references[0]}")
                return RegistrationOutcome(resolution=resolution, check=check)

        saved = self.store.create(self.mapper.to_resource(patient))
        created = self.mapper.from_resource(saved)

        if check.is_duplicate:
            self.audit_logger.log_override(
                personal_id=check.personal_id,
                existing_reference=check.match_references[0],
                created_reference=f"Patient/{created.id}",
                actor=actor,
                reason=reason,
            )
        else:
            logger.info(f"Registered patient {created.id}")

        return RegistrationOutcome(patient=created, created=True, resolution=resolution, check=check)
