"""Domain Record Definitions.

This module defines the typed domain records the application works with:
service catalog entries, visits, insurance coverages and patients. They are
converted to and from the generic record representation by the resource
mapper; nothing in this module knows about extensions or URLs.

Security Impact:
    - Schema validation prevents malformed data from reaching persistence
    - Type safety enforced at runtime via Pydantic V2
    - Records are immutable: every change produces a new value

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Models are frozen and validated before use
    - Follows Hexagonal Architecture: Domain Core is isolated from Adapters
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from medrecords.domain.constants import PERSONAL_ID_SYSTEM, REGISTRATION_NUMBER_SYSTEM
from medrecords.domain.enums import (
    AdministrativeGender,
    ContactPointSystem,
    CoverageStatus,
    ServiceStatus,
    VisitStatus,
    VisitType,
)
from medrecords.domain.references import RESOURCE_ID_PATTERN, ResourceReference
from medrecords.domain.utils import MONEY_MAX_DIGITS, quantize_money

MAX_COVERAGES_PER_VISIT = 3
COVERAGE_ORDERS = (1, 2, 3)


def _strip_optional(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _strip_list(values) -> tuple:
    if values is None:
        return ()
    cleaned = []
    for value in values:
        if isinstance(value, str):
            value = value.strip()
        if value:
            cleaned.append(value)
    return tuple(cleaned)


class LabIntegration(BaseModel):
    """Tri-state lab-integration setting of a service.

    Disabled (no provider), enabled without a provider, or enabled with a
    named provider.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    provider: Optional[str] = None

    @field_validator("provider", mode="before")
    @classmethod
    def strip_provider(cls, v):
        return _strip_optional(v)

    @model_validator(mode="after")
    def provider_requires_enabled(self) -> "LabIntegration":
        if not self.enabled and self.provider is not None:
            raise ValueError("Lab provider must be absent when lab integration is disabled")
        return self


class ServiceCatalogEntry(BaseModel):
    """Medical service catalog (nomenclature) entry.

    Security Impact:
        - Prices are validated as non-negative decimals before persistence
        - Linked definition ids are validated so references are always well-formed

    Parameters:
        id: Resource id assigned by the store (None until persisted)
        code: Unique business code of the service
        title: Service name
        description: Medical (long) name of the service
        group: Service group (topic)
        subgroup: Service subgroup code
        service_type: Service type
        service_category: Service category code
        base_price: Base price in GEL (non-negative)
        total_amount: Total amount in GEL (non-negative)
        calculation_method: How the service is counted in calculations
        created_date: Creation date as recorded by the source system
        tags: Free-text tags, in source order
        departments: Assigned department ids
        lab_integration: Lab-integration state
        external_order_code: Order code used by the external lab system
        classification_code: External classification (GIS) code
        specimen_definition_ids: Linked specimen-definition ids (no duplicates)
        observation_definition_ids: Linked observation-definition ids (no duplicates)
        status: Catalog status; retired entries are kept, never deleted
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(None, description="Store-assigned resource id")
    code: str = Field(..., description="Unique business code")
    title: str = Field(..., description="Service name")
    description: Optional[str] = None
    group: Optional[str] = None
    subgroup: Optional[str] = None
    service_type: Optional[str] = None
    service_category: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, ge=0, description="Base price (GEL)")
    total_amount: Optional[Decimal] = Field(None, ge=0, description="Total amount (GEL)")
    calculation_method: Optional[str] = None
    created_date: Optional[str] = None
    tags: tuple[str, ...] = ()
    departments: tuple[str, ...] = ()
    lab_integration: LabIntegration = Field(default_factory=LabIntegration)
    external_order_code: Optional[str] = None
    classification_code: Optional[str] = None
    specimen_definition_ids: tuple[str, ...] = ()
    observation_definition_ids: tuple[str, ...] = ()
    status: ServiceStatus = ServiceStatus.ACTIVE

    @field_validator("code", "title", mode="before")
    @classmethod
    def require_text(cls, v, info):
        v = _strip_optional(v)
        if v is None:
            raise ValueError(f"{info.field_name} must not be empty")
        return v

    @field_validator(
        "description", "group", "subgroup", "service_type", "service_category",
        "calculation_method", "created_date", "external_order_code", "classification_code",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v):
        return _strip_optional(v)

    @field_validator("tags", "departments", mode="before")
    @classmethod
    def strip_lists(cls, v):
        return _strip_list(v)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for tag in v:
            if "," in tag:
                raise ValueError(f"Tag must not contain a comma: {tag!r}")
        return v

    @field_validator("base_price", "total_amount")
    @classmethod
    def validate_money_precision(cls, v: Optional[Decimal], info) -> Optional[Decimal]:
        if v is not None and len(quantize_money(v).as_tuple().digits) > MONEY_MAX_DIGITS:
            raise ValueError(f"{info.field_name} exceeds {MONEY_MAX_DIGITS} significant digits")
        return v

    @field_validator("specimen_definition_ids", "observation_definition_ids")
    @classmethod
    def validate_linked_ids(cls, v: tuple[str, ...], info) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError(f"{info.field_name} contains duplicate ids")
        for linked_id in v:
            if not RESOURCE_ID_PATTERN.fullmatch(linked_id):
                raise ValueError(f"{info.field_name} contains malformed id: {linked_id!r}")
        return v


class Period(BaseModel):
    """Time span with an optional open end."""

    model_config = ConfigDict(frozen=True)

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def end_after_start(self) -> "Period":
        if self.start and self.end and self.end < self.start:
            raise ValueError("Period end must not be before its start")
        return self


class CoverageValues(BaseModel):
    """Editable values of an insurance coverage, without its slot or owners.

    Parameters:
        payor: Insurance company (Organization) reference
        type_code: Insurance type code
        status: Coverage status
        subscriber_id: Policy number
        referral_number: Referral number issued by the insurer
        start_date: Policy issue date
        end_date: Policy expiration date
        copay_percent: Share paid by the patient, 0-100
    """

    model_config = ConfigDict(frozen=True)

    payor: ResourceReference
    type_code: Optional[str] = None
    status: CoverageStatus = CoverageStatus.ACTIVE
    subscriber_id: Optional[str] = None
    referral_number: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    copay_percent: Optional[Decimal] = Field(None, ge=0, le=100)

    @field_validator("type_code", "subscriber_id", "referral_number", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip_optional(v)

    @model_validator(mode="after")
    def validate_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Coverage expiration date must not be before its issue date")
        return self


class Coverage(CoverageValues):
    """Insurance coverage attached to a visit in a priority slot.

    ``order`` 1 is the primary insurer. It may be missing on legacy data; such
    coverages sort after ranked ones.
    """

    id: Optional[str] = None
    visit: ResourceReference
    beneficiary: ResourceReference
    order: Optional[int] = Field(None, ge=1, le=MAX_COVERAGES_PER_VISIT)

    def values(self) -> CoverageValues:
        return CoverageValues(**self.model_dump(include=set(CoverageValues.model_fields)))


class Visit(BaseModel):
    """Patient visit (encounter).

    Parameters:
        id: Store-assigned resource id
        patient: Patient reference
        status: Visit lifecycle status
        visit_type: Stationary, ambulatory or emergency
        period: Visit start/end
        referrer: Referring practitioner reference
        referrer_name: Free-text referrer name (exclusive with referrer)
        sending_organization: Organization that sent the patient
        registration_number: Visit registration number
        unknown_patient: Registered for a patient whose identity is not yet known
        coverages: Up to three coverages in distinct priority slots (gaps allowed)
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    patient: ResourceReference
    status: VisitStatus = VisitStatus.IN_PROGRESS
    visit_type: VisitType
    period: Period = Field(default_factory=Period)
    referrer: Optional[ResourceReference] = None
    referrer_name: Optional[str] = None
    sending_organization: Optional[ResourceReference] = None
    registration_number: Optional[str] = None
    unknown_patient: bool = False
    coverages: tuple[Coverage, ...] = ()

    @field_validator("registration_number", "referrer_name", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip_optional(v)

    @field_validator("patient")
    @classmethod
    def validate_patient_reference(cls, v: ResourceReference) -> ResourceReference:
        if v.resource_type != "Patient":
            raise ValueError(f"Visit patient must reference a Patient, got {v}")
        return v

    @field_validator("coverages")
    @classmethod
    def validate_coverage_slots(cls, v: tuple[Coverage, ...]) -> tuple[Coverage, ...]:
        if len(v) > MAX_COVERAGES_PER_VISIT:
            raise ValueError(f"A visit holds at most {MAX_COVERAGES_PER_VISIT} coverages")
        orders = [coverage.order for coverage in v if coverage.order is not None]
        if len(set(orders)) != len(orders):
            raise ValueError("Coverages of a visit must occupy distinct priority slots")
        return v

    @model_validator(mode="after")
    def single_referrer(self) -> "Visit":
        if self.referrer is not None and self.referrer_name is not None:
            raise ValueError("A visit has either a referrer reference or a referrer name, not both")
        return self

    @property
    def reference(self) -> ResourceReference:
        if not self.id:
            raise ValueError("Visit has not been persisted yet")
        return ResourceReference.of("Encounter", self.id)


class Identifier(BaseModel):
    """Namespaced business key: a (system, value) pair."""

    model_config = ConfigDict(frozen=True)

    system: str
    value: str

    @field_validator("system", "value", mode="before")
    @classmethod
    def require_text(cls, v, info):
        v = _strip_optional(v)
        if v is None:
            raise ValueError(f"Identifier {info.field_name} must not be empty")
        return v


class ContactPoint(BaseModel):
    """Telecom entry (phone, email, ...)."""

    model_config = ConfigDict(frozen=True)

    system: ContactPointSystem
    value: str
    use: Optional[str] = None


class Patient(BaseModel):
    """Patient demographic record.

    Identifiers are looked up by system, never by position: the personal id
    and the registration number use distinct systems.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    identifiers: tuple[Identifier, ...] = ()
    family: Optional[str] = None
    given: tuple[str, ...] = ()
    birth_date: Optional[date] = None
    gender: Optional[AdministrativeGender] = None
    telecom: tuple[ContactPoint, ...] = ()

    @field_validator("family", mode="before")
    @classmethod
    def strip_family(cls, v):
        return _strip_optional(v)

    @field_validator("given", mode="before")
    @classmethod
    def strip_given(cls, v):
        return _strip_list(v)

    def identifier_value(self, system: str) -> Optional[str]:
        for identifier in self.identifiers:
            if identifier.system == system:
                return identifier.value
        return None

    @property
    def personal_id(self) -> Optional[str]:
        return self.identifier_value(PERSONAL_ID_SYSTEM)

    @property
    def registration_number(self) -> Optional[str]:
        return self.identifier_value(REGISTRATION_NUMBER_SYSTEM)


class VisitSearchParams(BaseModel):
    """Fixed parameter set accepted by visit search.

    Parameters:
        insurance_company_id: Insurer Organization id; ``"0"`` means any insurer
        personal_id: Patient personal id
        first_name: Patient given name (prefix match)
        last_name: Patient family name (prefix match)
        date_from: Earliest visit start date (inclusive)
        date_to: Latest visit start date (inclusive)
        registration_number: Visit registration number
        unknown_patient: Registered for a patient whose identity is not yet known
        status: Visit status
        visit_type: Visit type
        count: Page size
        offset: Number of matches to skip
    """

    model_config = ConfigDict(frozen=True)

    insurance_company_id: Optional[str] = None
    personal_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    registration_number: Optional[str] = None
    status: Optional[VisitStatus] = None
    visit_type: Optional[VisitType] = None
    count: int = Field(100, ge=1, le=1000)
    offset: int = Field(0, ge=0)

    @field_validator(
        "insurance_company_id", "personal_id", "first_name", "last_name", "registration_number",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v):
        return _strip_optional(v)
