"""Stable identifier systems and extension URLs.

These strings are part of the persisted data contract: every record written
by this package is addressed through them, so they must never change.
"""

CURRENCY = "GEL"

# Identifier systems
SERVICE_CODE_SYSTEM = "http://medimind.ge/nomenclature/service-code"
PERSONAL_ID_SYSTEM = "http://medimind.ge/identifiers/personal-id"
REGISTRATION_NUMBER_SYSTEM = "http://medimind.ge/identifiers/registration-number"
UNKNOWN_PATIENT_SYSTEM = "http://medimind.ge/identifiers/unknown-patient-registration"
VISIT_REGISTRATION_SYSTEM = "http://medimind.ge/identifiers/visit-registration"
AMBULATORY_REGISTRATION_SYSTEM = "http://medimind.ge/identifiers/ambulatory-registration"

# Value sets
SERVICE_SUBGROUPS_VALUESET = "http://medimind.ge/valueset/service-subgroups"
SERVICE_TYPES_VALUESET = "http://medimind.ge/valueset/service-types"
SERVICE_CATEGORIES_VALUESET = "http://medimind.ge/valueset/service-categories"
INSURANCE_TYPES_VALUESET = "http://medimind.ge/valueset/insurance-types"
ENCOUNTER_CLASS_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"


class NomenclatureExtension:
    """Extension URLs carried by service catalog resources."""
    SUBGROUP = "http://medimind.ge/extensions/service-subgroup"
    SERVICE_TYPE = "http://medimind.ge/extensions/service-type"
    SERVICE_CATEGORY = "http://medimind.ge/extensions/service-category"
    BASE_PRICE = "http://medimind.ge/extensions/base-price"
    TOTAL_AMOUNT = "http://medimind.ge/extensions/total-amount"
    CALCULATION_METHOD = "http://medimind.ge/extensions/cal-hed"
    CREATED_DATE = "http://medimind.ge/extensions/created-date"
    TAGS = "http://medimind.ge/extensions/tags"
    DEPARTMENTS = "http://medimind.ge/extensions/assigned-departments"
    LAB_INTEGRATION = "http://medimind.ge/extensions/lis-integration"
    LAB_PROVIDER = "http://medimind.ge/extensions/lis-provider"
    EXTERNAL_ORDER_CODE = "http://medimind.ge/extensions/external-order-code"
    CLASSIFICATION_CODE = "http://medimind.ge/extensions/gis-code"

    ALL = frozenset({
        SUBGROUP, SERVICE_TYPE, SERVICE_CATEGORY, BASE_PRICE, TOTAL_AMOUNT,
        CALCULATION_METHOD, CREATED_DATE, TAGS, DEPARTMENTS, LAB_INTEGRATION,
        LAB_PROVIDER, EXTERNAL_ORDER_CODE, CLASSIFICATION_CODE,
    })


class VisitExtension:
    """Extension URLs carried by visit resources."""
    REFERRER = "http://medimind.ge/fhir/StructureDefinition/referrer"
    SENDING_ORGANIZATION = "http://medimind.ge/fhir/StructureDefinition/sending-organization"


class CoverageExtension:
    """Extension URLs carried by coverage resources."""
    ENCOUNTER = "http://medimind.ge/fhir/StructureDefinition/encounter"
    REFERRAL_NUMBER = "http://medimind.ge/fhir/StructureDefinition/referral-number"


LAB_INTEGRATION_URLS = frozenset({
    NomenclatureExtension.LAB_INTEGRATION,
    NomenclatureExtension.LAB_PROVIDER,
})
