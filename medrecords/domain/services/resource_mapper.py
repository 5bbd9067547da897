"""Resource Mapper Service.

Bidirectional conversion between the typed domain records and the generic,
extensible record representation persisted by the store.

Security Impact:
    - Malformed references are rejected on read instead of being dropped
    - Empty values are never written, so no null-valued extension can leak
      into persisted records
    - Unknown extensions survive read-modify-write, so an edit never erases
      data written by another part of the system

Architecture:
    - Pure domain service: no I/O, no shared mutable state
    - One mapper per resource type behind a dispatching ResourceMapper
    - Each optional attribute maps to exactly one extension with a fixed URL

Precision:
    Money amounts are written with 2 decimal places (rounded half up). A value
    with more precision does not survive a round trip unchanged; the rounding
    is logged at DEBUG level when it changes the amount. The rounded amount is
    emitted as a JSON number (float), which is exact for the at most 15
    significant digits the domain records accept.

Legacy shapes:
    Tags are one comma-separated valueString, as the spreadsheet importer of
    the records application writes them. The encounter referrer is either a
    practitioner reference (valueReference) or the free-text name typed into
    the registration form (valueString); both are read and written back as
    they were.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Generic, Iterable, Optional, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from medrecords.domain.constants import (
    AMBULATORY_REGISTRATION_SYSTEM,
    CURRENCY,
    ENCOUNTER_CLASS_SYSTEM,
    INSURANCE_TYPES_VALUESET,
    SERVICE_CATEGORIES_VALUESET,
    SERVICE_CODE_SYSTEM,
    SERVICE_SUBGROUPS_VALUESET,
    SERVICE_TYPES_VALUESET,
    UNKNOWN_PATIENT_SYSTEM,
    VISIT_REGISTRATION_SYSTEM,
    CoverageExtension,
    NomenclatureExtension,
    VisitExtension,
)
from medrecords.domain.enums import VisitType
from medrecords.domain.models import (
    ContactPoint,
    Coverage,
    Identifier,
    LabIntegration,
    Patient,
    Period,
    ServiceCatalogEntry,
    Visit,
)
from medrecords.domain.ports import MappingError, Resource
from medrecords.domain.references import ResourceReference
from medrecords.domain.utils import (
    clean_text,
    find_extension,
    get_identifier_value,
    quantize_money,
    to_money,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)

TAG_SEPARATOR = ", "


# ============================================================================
# Extension encoding helpers
# ============================================================================

def _json_number(value: Decimal):
    """Decimal to a JSON number: int when integral, float otherwise."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _money(amount: Decimal, field_name: str) -> dict:
    rounded = quantize_money(amount)
    if rounded != amount:
        logger.debug(f"Rounded {field_name} from {amount} to {rounded} (2 decimal places)")
    return {"value": float(rounded), "currency": CURRENCY}


def string_extension(url: str, value: Optional[str]) -> Optional[dict]:
    if not value:
        return None
    return {"url": url, "valueString": value}


def coded_extension(url: str, code: Optional[str], system: str) -> Optional[dict]:
    if not code:
        return None
    return {"url": url, "valueCodeableConcept": {"coding": [{"system": system, "code": code}]}}


def money_extension(url: str, amount: Optional[Decimal]) -> Optional[dict]:
    if amount is None:
        return None
    return {"url": url, "valueMoney": _money(amount, url.rsplit("/", 1)[-1])}


def list_extension(url: str, item_url: str, values: Iterable[str]) -> Optional[dict]:
    items = [{"url": item_url, "valueString": value} for value in values if value]
    if not items:
        return None
    return {"url": url, "extension": items}


def reference_extension(url: str, reference: Optional[ResourceReference]) -> Optional[dict]:
    if reference is None:
        return None
    return {"url": url, "valueReference": reference.to_fhir()}


def read_string(resource: Resource, url: str) -> Optional[str]:
    extension = find_extension(resource, url)
    if extension is None:
        return None
    return clean_text(extension.get("valueString"))


def read_code(resource: Resource, url: str) -> Optional[str]:
    """Read a coded extension; plain valueString is accepted for imported data."""
    extension = find_extension(resource, url)
    if extension is None:
        return None
    concept = extension.get("valueCodeableConcept") or {}
    codings = concept.get("coding") or []
    if codings and codings[0].get("code"):
        return codings[0]["code"]
    return clean_text(extension.get("valueString") or concept.get("text"))


def read_money(resource: Resource, url: str) -> Optional[Decimal]:
    extension = find_extension(resource, url)
    if extension is None:
        return None
    for key in ("valueMoney", "valueDecimal", "valueInteger"):
        if key in extension:
            raw = extension[key].get("value") if key == "valueMoney" else extension[key]
            if raw is None:
                return None
            try:
                return quantize_money(to_money(raw))
            except ValueError as e:
                raise MappingError(f"Invalid money value in extension {url}: {raw!r}") from e
    return None


def read_list(resource: Resource, url: str) -> tuple[str, ...]:
    extension = find_extension(resource, url)
    if extension is None:
        return ()
    if isinstance(extension.get("extension"), list):
        return tuple(
            item["valueString"] for item in extension["extension"]
            if isinstance(item, dict) and item.get("valueString")
        )
    if extension.get("valueString"):
        return (extension["valueString"],)
    return ()


def read_reference(value: Any, expected_type: Optional[str] = None) -> Optional[ResourceReference]:
    """Parse a ``{"reference": "Type/id"}`` element. Malformed input raises."""
    if value is None:
        return None
    if not isinstance(value, dict) or "reference" not in value:
        raise MappingError(f"Malformed reference element: {value!r}")
    return ResourceReference.parse(value["reference"], expected_type)


def read_reference_extension(resource: Resource, url: str, expected_type: Optional[str] = None) -> Optional[ResourceReference]:
    """Read a reference extension. A present extension without a valueReference raises."""
    extension = find_extension(resource, url)
    if extension is None:
        return None
    if extension.get("valueReference") is None:
        raise MappingError(
            f"Extension {url} on {resource.get('resourceType')}/{resource.get('id', '<new>')} "
            f"carries no valueReference",
            resource_type=resource.get("resourceType"),
        )
    return read_reference(extension["valueReference"], expected_type)


def read_referrer(resource: Resource) -> tuple[Optional[ResourceReference], Optional[str]]:
    """Read the referrer of an encounter as ``(reference, free-text name)``.

    The registration form stores the referrer as free text (valueString);
    a practitioner link is stored as valueReference.
    """
    extension = find_extension(resource, VisitExtension.REFERRER)
    if extension is None:
        return None, None
    if extension.get("valueReference") is not None:
        return read_reference(extension["valueReference"]), None
    name = clean_text(extension.get("valueString"))
    if name is None:
        raise MappingError(
            f"Referrer extension on Encounter/{resource.get('id', '<new>')} has neither "
            f"valueReference nor valueString",
            resource_type="Encounter",
        )
    return None, name


def read_tags(resource: Resource) -> tuple[str, ...]:
    """Tags are one comma-separated valueString; a nested list is read as well."""
    values = read_list(resource, NomenclatureExtension.TAGS)
    return tuple(tag.strip() for value in values for tag in value.split(",") if tag.strip())


def _keep_base_element(resource: Resource, base: Resource, key: str, identity_keys: tuple[str, ...]) -> None:
    """Carry extra parts of an owned element (e.g. ``display``) over from ``base`` while its identity is unchanged."""
    old, new = base.get(key), resource.get(key)
    if isinstance(old, dict) and isinstance(new, dict) and all(old.get(k) == new.get(k) for k in identity_keys):
        resource[key] = {**old, **new}


# ============================================================================
# Mappers
# ============================================================================

class RecordMapper(ABC, Generic[R]):
    """Base class for one resource type's mapper.

    Subclasses declare which parts of the resource they own. Everything else
    found on a ``base`` resource is carried over untouched by ``to_resource``.

    Attributes:
        resource_type: Generic resource type name
        record_type: Domain record class
        owned_keys: Top-level keys written by the mapper
        owned_extension_urls: Extension URLs written by the mapper
        owned_identifier_systems: Identifier systems written by the mapper
            (None means every identifier is owned)
    """

    resource_type: str
    record_type: type
    owned_keys: frozenset = frozenset()
    owned_extension_urls: frozenset = frozenset()
    owned_identifier_systems: Optional[frozenset] = frozenset()

    def to_resource(self, record: R, base: Optional[Resource] = None) -> Resource:
        """Convert a domain record into a generic resource.

        Parameters:
            record: Domain record
            base: Existing resource to update; its unknown keys, extensions and
                identifiers are preserved

        Returns:
            New resource dictionary (``base`` is never modified)

        Raises:
            MappingError: If ``base`` is a different resource type
        """
        if not isinstance(record, self.record_type):
            raise MappingError(
                f"{type(self).__name__} cannot map {type(record).__name__}",
                resource_type=self.resource_type,
            )

        fields = self._build(record)
        extensions = [ext for ext in fields.pop("extension", []) if ext]
        identifiers = [ident for ident in fields.pop("identifier", []) if ident]

        resource: Resource = {"resourceType": self.resource_type}
        if getattr(record, "id", None):
            resource["id"] = record.id

        if base is not None:
            if base.get("resourceType") != self.resource_type:
                raise MappingError(
                    f"Cannot update a {base.get('resourceType')} resource with {self.resource_type} data",
                    resource_type=self.resource_type,
                )
            for key, value in base.items():
                if key in ("resourceType", "extension", "identifier") or key in self.owned_keys:
                    continue
                resource.setdefault(key, value)
            extensions += [
                ext for ext in base.get("extension") or []
                if not (isinstance(ext, dict) and ext.get("url") in self.owned_extension_urls)
            ]
            if self.owned_identifier_systems is not None:
                identifiers += [
                    ident for ident in base.get("identifier") or []
                    if not (isinstance(ident, dict) and ident.get("system") in self.owned_identifier_systems)
                ]

        resource.update({key: value for key, value in fields.items() if value not in (None, [], {}, "")})
        if identifiers:
            resource["identifier"] = identifiers
        if extensions:
            resource["extension"] = extensions
        return resource

    def from_resource(self, resource: Resource) -> R:
        """Convert a generic resource into a domain record.

        Raises:
            MappingError: If the resource is of the wrong type, carries a
                malformed reference, or fails domain validation
        """
        if not isinstance(resource, dict) or resource.get("resourceType") != self.resource_type:
            found = resource.get("resourceType") if isinstance(resource, dict) else type(resource).__name__
            raise MappingError(
                f"Expected a {self.resource_type} resource, got {found}",
                resource_type=self.resource_type,
            )
        try:
            return self._parse(resource)
        except MappingError:
            raise
        except (PydanticValidationError, ValueError, TypeError, KeyError, AttributeError) as e:
            raise MappingError(
                f"Invalid {self.resource_type} resource {resource.get('id', '<new>')}: {e}",
                resource_type=self.resource_type,
                details={"id": resource.get("id")},
            ) from e

    @abstractmethod
    def _build(self, record: R) -> dict:
        pass

    @abstractmethod
    def _parse(self, resource: Resource) -> R:
        pass


class ServiceCatalogMapper(RecordMapper[ServiceCatalogEntry]):
    """Maps ServiceCatalogEntry to and from an ActivityDefinition resource."""

    resource_type = "ActivityDefinition"
    record_type = ServiceCatalogEntry
    owned_keys = frozenset({
        "status", "title", "description", "topic",
        "specimenRequirement", "observationRequirement",
    })
    owned_extension_urls = NomenclatureExtension.ALL
    owned_identifier_systems = frozenset({SERVICE_CODE_SYSTEM})

    def _build(self, entry: ServiceCatalogEntry) -> dict:
        lab = entry.lab_integration
        return {
            "status": entry.status.value,
            "identifier": [{"system": SERVICE_CODE_SYSTEM, "value": entry.code}],
            "title": entry.title,
            "description": entry.description,
            "topic": [{"text": entry.group}] if entry.group else None,
            "specimenRequirement": [
                ResourceReference.of("SpecimenDefinition", i).to_fhir() for i in entry.specimen_definition_ids
            ],
            "observationRequirement": [
                ResourceReference.of("ObservationDefinition", i).to_fhir() for i in entry.observation_definition_ids
            ],
            "extension": [
                coded_extension(NomenclatureExtension.SUBGROUP, entry.subgroup, SERVICE_SUBGROUPS_VALUESET),
                coded_extension(NomenclatureExtension.SERVICE_TYPE, entry.service_type, SERVICE_TYPES_VALUESET),
                coded_extension(NomenclatureExtension.SERVICE_CATEGORY, entry.service_category, SERVICE_CATEGORIES_VALUESET),
                money_extension(NomenclatureExtension.BASE_PRICE, entry.base_price),
                money_extension(NomenclatureExtension.TOTAL_AMOUNT, entry.total_amount),
                string_extension(NomenclatureExtension.CALCULATION_METHOD, entry.calculation_method),
                string_extension(NomenclatureExtension.CREATED_DATE, entry.created_date),
                string_extension(NomenclatureExtension.TAGS, TAG_SEPARATOR.join(entry.tags)),
                list_extension(NomenclatureExtension.DEPARTMENTS, "department", entry.departments),
                {"url": NomenclatureExtension.LAB_INTEGRATION, "valueBoolean": True} if lab.enabled else None,
                string_extension(NomenclatureExtension.LAB_PROVIDER, lab.provider),
                string_extension(NomenclatureExtension.EXTERNAL_ORDER_CODE, entry.external_order_code),
                string_extension(NomenclatureExtension.CLASSIFICATION_CODE, entry.classification_code),
            ],
        }

    def _parse(self, resource: Resource) -> ServiceCatalogEntry:
        code = get_identifier_value(resource, SERVICE_CODE_SYSTEM)
        if not code:
            raise MappingError(
                f"ActivityDefinition {resource.get('id', '<new>')} has no service code identifier",
                resource_type=self.resource_type,
            )

        return ServiceCatalogEntry(
            id=resource.get("id"),
            code=code,
            title=resource.get("title"),
            description=resource.get("description"),
            group=_topic_code(resource),
            subgroup=read_code(resource, NomenclatureExtension.SUBGROUP),
            service_type=read_code(resource, NomenclatureExtension.SERVICE_TYPE),
            service_category=read_code(resource, NomenclatureExtension.SERVICE_CATEGORY),
            base_price=read_money(resource, NomenclatureExtension.BASE_PRICE),
            total_amount=read_money(resource, NomenclatureExtension.TOTAL_AMOUNT),
            calculation_method=read_string(resource, NomenclatureExtension.CALCULATION_METHOD),
            created_date=read_string(resource, NomenclatureExtension.CREATED_DATE),
            tags=read_tags(resource),
            departments=read_list(resource, NomenclatureExtension.DEPARTMENTS),
            lab_integration=read_lab_integration(resource),
            external_order_code=read_string(resource, NomenclatureExtension.EXTERNAL_ORDER_CODE),
            classification_code=read_string(resource, NomenclatureExtension.CLASSIFICATION_CODE),
            specimen_definition_ids=tuple(
                read_reference(item, "SpecimenDefinition").id for item in resource.get("specimenRequirement") or []
            ),
            observation_definition_ids=tuple(
                read_reference(item, "ObservationDefinition").id for item in resource.get("observationRequirement") or []
            ),
            status=resource.get("status") or "draft",
        )


def _topic_code(resource: Resource) -> Optional[str]:
    topics = resource.get("topic") or []
    if not topics:
        return None
    topic = topics[0]
    codings = topic.get("coding") or []
    if codings and codings[0].get("code"):
        return codings[0]["code"]
    return clean_text(topic.get("text"))


def read_lab_integration(resource: Resource) -> LabIntegration:
    """Read the lab-integration state of a service resource.

    A provider stored next to a disabled (or missing) flag is inconsistent
    legacy data; it is ignored with a warning.
    """
    flag = find_extension(resource, NomenclatureExtension.LAB_INTEGRATION)
    enabled = bool(flag and flag.get("valueBoolean") is True)
    provider = read_string(resource, NomenclatureExtension.LAB_PROVIDER)
    if provider and not enabled:
        logger.warning(
            f"Ignoring lab provider on {resource.get('resourceType')}/{resource.get('id', '<new>')}: "
            f"lab integration is disabled"
        )
        provider = None
    return LabIntegration(enabled=enabled, provider=provider)


class VisitMapper(RecordMapper[Visit]):
    """Maps Visit to and from an Encounter resource.

    Coverages are separate resources and are not part of the mapping; the
    visit service attaches them after reading. The ``display`` texts of
    ``class`` and ``subject`` written by other clients are kept on update
    while the class code and the patient stay the same.
    """

    resource_type = "Encounter"
    record_type = Visit
    owned_keys = frozenset({"status", "class", "subject", "period"})
    owned_extension_urls = frozenset({VisitExtension.REFERRER, VisitExtension.SENDING_ORGANIZATION})
    owned_identifier_systems = frozenset({
        VISIT_REGISTRATION_SYSTEM, AMBULATORY_REGISTRATION_SYSTEM, UNKNOWN_PATIENT_SYSTEM,
    })

    @staticmethod
    def registration_system(visit_type: VisitType, unknown_patient: bool = False) -> str:
        if unknown_patient:
            return UNKNOWN_PATIENT_SYSTEM
        if visit_type == VisitType.AMBULATORY:
            return AMBULATORY_REGISTRATION_SYSTEM
        return VISIT_REGISTRATION_SYSTEM

    def to_resource(self, visit: Visit, base: Optional[Resource] = None) -> Resource:
        resource = super().to_resource(visit, base)
        if base is not None:
            _keep_base_element(resource, base, "class", ("system", "code"))
            _keep_base_element(resource, base, "subject", ("reference",))
        return resource

    def _build(self, visit: Visit) -> dict:
        period = {}
        if visit.period.start:
            period["start"] = visit.period.start.isoformat()
        if visit.period.end:
            period["end"] = visit.period.end.isoformat()

        identifiers = []
        if visit.registration_number:
            identifiers.append({
                "system": self.registration_system(visit.visit_type, visit.unknown_patient),
                "value": visit.registration_number,
            })

        return {
            "status": visit.status.value,
            "class": {"system": ENCOUNTER_CLASS_SYSTEM, "code": visit.visit_type.class_code},
            "subject": visit.patient.to_fhir(),
            "period": period,
            "identifier": identifiers,
            "extension": [
                reference_extension(VisitExtension.REFERRER, visit.referrer),
                string_extension(VisitExtension.REFERRER, visit.referrer_name),
                reference_extension(VisitExtension.SENDING_ORGANIZATION, visit.sending_organization),
            ],
        }

    def _parse(self, resource: Resource) -> Visit:
        encounter_class = resource.get("class") or {}
        visit_type = VisitType.from_class_code(encounter_class.get("code"))
        patient = read_reference(resource.get("subject"), "Patient")
        if patient is None:
            raise MappingError(
                f"Encounter {resource.get('id', '<new>')} has no subject",
                resource_type=self.resource_type,
            )

        unknown_number = get_identifier_value(resource, UNKNOWN_PATIENT_SYSTEM)
        registration_number = (
            unknown_number
            or get_identifier_value(resource, self.registration_system(visit_type))
            or get_identifier_value(resource, VISIT_REGISTRATION_SYSTEM)
            or get_identifier_value(resource, AMBULATORY_REGISTRATION_SYSTEM)
        )
        referrer, referrer_name = read_referrer(resource)

        return Visit(
            id=resource.get("id"),
            patient=patient,
            status=resource.get("status"),
            visit_type=visit_type,
            period=Period(**(resource.get("period") or {})),
            referrer=referrer,
            referrer_name=referrer_name,
            sending_organization=read_reference_extension(resource, VisitExtension.SENDING_ORGANIZATION, "Organization"),
            registration_number=registration_number,
            unknown_patient=unknown_number is not None,
        )


class CoverageMapper(RecordMapper[Coverage]):
    """Maps Coverage to and from a Coverage resource."""

    resource_type = "Coverage"
    record_type = Coverage
    owned_keys = frozenset({
        "status", "type", "subscriberId", "beneficiary", "payor",
        "order", "period", "costToBeneficiary",
    })
    owned_extension_urls = frozenset({CoverageExtension.ENCOUNTER, CoverageExtension.REFERRAL_NUMBER})
    owned_identifier_systems = frozenset()

    def _build(self, coverage: Coverage) -> dict:
        period = {}
        if coverage.start_date:
            period["start"] = coverage.start_date.isoformat()
        if coverage.end_date:
            period["end"] = coverage.end_date.isoformat()

        cost = []
        if coverage.copay_percent is not None:
            cost.append({
                "type": {"text": "copay"},
                "valueQuantity": {"value": _json_number(coverage.copay_percent), "unit": "%"},
            })

        return {
            "status": coverage.status.value,
            "type": (
                {"coding": [{"system": INSURANCE_TYPES_VALUESET, "code": coverage.type_code}]}
                if coverage.type_code else None
            ),
            "subscriberId": coverage.subscriber_id,
            "beneficiary": coverage.beneficiary.to_fhir(),
            "payor": [coverage.payor.to_fhir()],
            "order": coverage.order,
            "period": period,
            "costToBeneficiary": cost,
            "extension": [
                reference_extension(CoverageExtension.ENCOUNTER, coverage.visit),
                string_extension(CoverageExtension.REFERRAL_NUMBER, coverage.referral_number),
            ],
        }

    def _parse(self, resource: Resource) -> Coverage:
        payors = resource.get("payor") or []
        if not payors:
            raise MappingError(
                f"Coverage {resource.get('id', '<new>')} has no payor",
                resource_type=self.resource_type,
            )
        visit = read_reference_extension(resource, CoverageExtension.ENCOUNTER, "Encounter")
        if visit is None:
            raise MappingError(
                f"Coverage {resource.get('id', '<new>')} is not linked to a visit",
                resource_type=self.resource_type,
            )

        type_codings = (resource.get("type") or {}).get("coding") or []
        period = resource.get("period") or {}

        copay = None
        for cost in resource.get("costToBeneficiary") or []:
            quantity = cost.get("valueQuantity") or {}
            if quantity.get("value") is not None:
                copay = to_money(quantity["value"])
                break

        return Coverage(
            id=resource.get("id"),
            visit=visit,
            beneficiary=read_reference(resource.get("beneficiary"), "Patient"),
            payor=read_reference(payors[0]),
            order=resource.get("order"),
            status=resource.get("status"),
            type_code=type_codings[0].get("code") if type_codings else None,
            subscriber_id=resource.get("subscriberId"),
            referral_number=read_string(resource, CoverageExtension.REFERRAL_NUMBER),
            start_date=period.get("start"),
            end_date=period.get("end"),
            copay_percent=copay,
        )


class PatientMapper(RecordMapper[Patient]):
    """Maps Patient to and from a Patient resource.

    The domain record carries every identifier, so the identifier list is
    owned in full.
    """

    resource_type = "Patient"
    record_type = Patient
    owned_keys = frozenset({"name", "birthDate", "gender", "telecom"})
    owned_identifier_systems = None

    def _build(self, patient: Patient) -> dict:
        name = {}
        if patient.family:
            name["family"] = patient.family
        if patient.given:
            name["given"] = list(patient.given)

        telecom = []
        for contact in patient.telecom:
            entry = {"system": contact.system.value, "value": contact.value}
            if contact.use:
                entry["use"] = contact.use
            telecom.append(entry)

        return {
            "identifier": [{"system": i.system, "value": i.value} for i in patient.identifiers],
            "name": [name] if name else None,
            "birthDate": patient.birth_date.isoformat() if patient.birth_date else None,
            "gender": patient.gender.value if patient.gender else None,
            "telecom": telecom,
        }

    def _parse(self, resource: Resource) -> Patient:
        names = resource.get("name") or [{}]
        name = names[0]
        return Patient(
            id=resource.get("id"),
            identifiers=tuple(
                Identifier(system=i.get("system"), value=i.get("value"))
                for i in resource.get("identifier") or []
            ),
            family=name.get("family"),
            given=tuple(name.get("given") or ()),
            birth_date=resource.get("birthDate"),
            gender=resource.get("gender"),
            telecom=tuple(
                ContactPoint(system=t.get("system"), value=t.get("value"), use=t.get("use"))
                for t in resource.get("telecom") or []
            ),
        )


class ResourceMapper:
    """Dispatches to the mapper registered for a record or resource type.

    Example Usage:
        ```python
        mapper = ResourceMapper()
        resource = mapper.to_resource(entry)
        entry_again = mapper.from_resource(resource)

        # read-modify-write keeps unknown extensions of the stored resource
        updated = mapper.to_resource(edited_entry, base=stored_resource)
        ```
    """

    def __init__(self, mappers: Optional[Iterable[RecordMapper]] = None):
        mappers = list(mappers) if mappers is not None else [
            ServiceCatalogMapper(), VisitMapper(), CoverageMapper(), PatientMapper(),
        ]
        self._by_record_type = {mapper.record_type: mapper for mapper in mappers}
        self._by_resource_type = {mapper.resource_type: mapper for mapper in mappers}

    def for_record(self, record: BaseModel) -> RecordMapper:
        mapper = self._by_record_type.get(type(record))
        if mapper is None:
            raise MappingError(f"No mapper registered for {type(record).__name__}")
        return mapper

    def for_resource_type(self, resource_type: Optional[str]) -> RecordMapper:
        mapper = self._by_resource_type.get(resource_type)
        if mapper is None:
            raise MappingError(f"No mapper registered for resource type {resource_type}", resource_type=resource_type)
        return mapper

    def to_resource(self, record: BaseModel, base: Optional[Resource] = None) -> Resource:
        return self.for_record(record).to_resource(record, base)

    def from_resource(self, resource: Resource) -> BaseModel:
        if not isinstance(resource, dict):
            raise MappingError(f"Expected a resource dictionary, got {type(resource).__name__}")
        return self.for_resource_type(resource.get("resourceType")).from_resource(resource)


resource_mapper = ResourceMapper()
