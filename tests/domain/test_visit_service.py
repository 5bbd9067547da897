"""Unit tests for visit registration and search.

Tests cover:
- Registration number generation per visit type and year
- Soft closing by status transition
- Coverages attached on read
- Visit search by patient, insurer, dates and registration number
"""

from datetime import date, datetime

import pytest

from medrecords.adapters.storage import InMemoryResourceStore
from medrecords.domain.constants import (
    ENCOUNTER_CLASS_SYSTEM,
    PERSONAL_ID_SYSTEM,
    UNKNOWN_PATIENT_SYSTEM,
    VISIT_REGISTRATION_SYSTEM,
    VisitExtension,
)
from medrecords.domain.enums import VisitStatus, VisitType
from medrecords.domain.models import CoverageValues, Identifier, Patient, VisitSearchParams
from medrecords.domain.ports import NotFoundError, ValidationError
from medrecords.domain.references import ResourceReference
from medrecords.domain.services.resource_mapper import resource_mapper
from medrecords.domain.services.visit_service import VisitService, format_registration_number


@pytest.fixture
def store():
    return InMemoryResourceStore()


@pytest.fixture
def visits(store):
    return VisitService(store)


def _register_patient(store, personal_id, family, given):
    patient = Patient(
        identifiers=(Identifier(system=PERSONAL_ID_SYSTEM, value=personal_id),),
        family=family,
        given=(given,),
    )
    created = store.create(resource_mapper.to_resource(patient))
    return ResourceReference.of("Patient", created["id"])


class TestRegistrationNumbers:
    """Test suite for registration number generation."""

    def test_format(self):
        """Test ambulatory and other formats."""
        assert format_registration_number(VisitType.AMBULATORY, 12, 2024) == "a-12-2024"
        assert format_registration_number(VisitType.STATIONARY, 3, 2024) == "3-2024"

    def test_sequence_per_type_and_year(self, visits):
        """Test that each type and year counts separately."""
        patient = ResourceReference.of("Patient", "p1")
        first = visits.register_visit(patient, VisitType.AMBULATORY, start=datetime(2024, 1, 5))
        second = visits.register_visit(patient, VisitType.AMBULATORY, start=datetime(2024, 2, 5))
        stationary = visits.register_visit(patient, VisitType.STATIONARY, start=datetime(2024, 2, 5))
        next_year = visits.register_visit(patient, VisitType.AMBULATORY, start=datetime(2025, 1, 1))

        assert first.registration_number == "a-1-2024"
        assert second.registration_number == "a-2-2024"
        assert stationary.registration_number == "1-2024"
        assert next_year.registration_number == "a-1-2025"

    def test_unknown_patient_format(self):
        """Test the unknown-patient format, whatever the visit type."""
        assert format_registration_number(VisitType.AMBULATORY, 1, 2024, unknown_patient=True) == "UNK-1-2024"
        assert format_registration_number(VisitType.STATIONARY, 4, 2024, unknown_patient=True) == "UNK-4-2024"

    def test_unknown_patient_sequence_shared_across_types(self, visits, store):
        """Test that unknown-patient numbers count across visit types and use their own system."""
        patient = ResourceReference.of("Patient", "p1")
        visits.register_visit(patient, VisitType.STATIONARY, start=datetime(2024, 3, 1))
        first = visits.register_visit(patient, VisitType.STATIONARY, start=datetime(2024, 3, 1), unknown_patient=True)
        second = visits.register_visit(patient, VisitType.AMBULATORY, start=datetime(2024, 3, 2), unknown_patient=True)

        assert first.registration_number == "UNK-1-2024"
        assert second.registration_number == "UNK-2-2024"
        assert second.unknown_patient is True
        assert store.read("Encounter", second.id)["identifier"] == [
            {"system": UNKNOWN_PATIENT_SYSTEM, "value": "UNK-2-2024"}
        ]

    def test_explicit_number_kept(self, visits):
        """Test that a given registration number is used as is."""
        visit = visits.register_visit(
            ResourceReference.of("Patient", "p1"), VisitType.EMERGENCY, registration_number="77-2024"
        )
        assert visit.registration_number == "77-2024"


class TestVisitLifecycle:
    """Test suite for register, read, update and close."""

    def test_register_rejects_non_patient(self, visits):
        """Test that the subject must be a Patient reference."""
        with pytest.raises(ValidationError):
            visits.register_visit(ResourceReference.of("Organization", "o1"), VisitType.STATIONARY)

    def test_get_attaches_sorted_coverages(self, visits):
        """Test that reading a visit attaches its coverages in slot order."""
        visit = visits.register_visit(ResourceReference.of("Patient", "p1"), VisitType.STATIONARY)
        for order in (2, 1):
            visits.coverage_service.upsert_coverage(
                visit, CoverageValues(payor=ResourceReference.of("Organization", f"ins-{order}")), order
            )

        loaded = visits.get_visit(visit.id)

        assert [c.order for c in loaded.coverages] == [1, 2]

    def test_update_changes_referrer(self, visits):
        """Test that an edit is persisted."""
        visit = visits.register_visit(ResourceReference.of("Patient", "p1"), VisitType.STATIONARY)

        updated = visits.update_visit(
            visit.model_copy(update={"referrer": ResourceReference.of("Practitioner", "dr-1")})
        )

        assert visits.get_visit(visit.id).referrer == updated.referrer

    def test_register_rejects_both_referrer_forms(self, visits):
        """Test that a referrer reference and a referrer name cannot both be given."""
        with pytest.raises(ValidationError):
            visits.register_visit(
                ResourceReference.of("Patient", "p1"),
                VisitType.STATIONARY,
                referrer=ResourceReference.of("Practitioner", "dr-1"),
                referrer_name="Dr. Beridze",
            )

    def test_close_keeps_free_text_referrer(self, visits, store):
        """Test that closing a form-registered visit keeps its referrer text."""
        created = store.create({
            "resourceType": "Encounter",
            "status": "in-progress",
            "class": {"system": ENCOUNTER_CLASS_SYSTEM, "code": "IMP", "display": "inpatient encounter"},
            "subject": {"reference": "Patient/p1"},
            "identifier": [{"system": VISIT_REGISTRATION_SYSTEM, "value": "10357-2024"}],
            "extension": [{"url": VisitExtension.REFERRER, "valueString": "Dr. Beridze"}],
        })

        closed = visits.close_visit(created["id"], VisitStatus.CANCELLED)

        stored = store.read("Encounter", created["id"])
        assert closed.referrer_name == "Dr. Beridze"
        assert stored["status"] == "cancelled"
        assert stored["extension"] == [{"url": VisitExtension.REFERRER, "valueString": "Dr. Beridze"}]
        assert stored["class"]["display"] == "inpatient encounter"

    def test_close_finished_sets_end(self, visits):
        """Test that finishing a visit fills in its end time."""
        visit = visits.register_visit(
            ResourceReference.of("Patient", "p1"), VisitType.STATIONARY, start=datetime(2024, 1, 1, 8, 0)
        )

        closed = visits.close_visit(visit.id, VisitStatus.FINISHED)

        assert closed.status == VisitStatus.FINISHED
        assert closed.period.end is not None

    def test_close_defaults_to_entered_in_error(self, visits, store):
        """Test that closing keeps the record with a closing status."""
        visit = visits.register_visit(ResourceReference.of("Patient", "p1"), VisitType.STATIONARY)

        visits.close_visit(visit.id)

        assert store.read("Encounter", visit.id)["status"] == "entered-in-error"

    def test_close_with_open_status_rejected(self, visits):
        """Test that an open status is not a closing status."""
        visit = visits.register_visit(ResourceReference.of("Patient", "p1"), VisitType.STATIONARY)

        with pytest.raises(ValidationError):
            visits.close_visit(visit.id, VisitStatus.ARRIVED)

    def test_get_missing_raises(self, visits):
        """Test that an unknown visit raises NotFoundError."""
        with pytest.raises(NotFoundError):
            visits.get_visit("missing")


class TestVisitSearch:
    """Test suite for VisitService.search_visits."""

    @pytest.fixture
    def seeded(self, store, visits):
        nino = _register_patient(store, "01001011116", "Beridze", "Nino")
        giorgi = _register_patient(store, "01001011117", "Kapanadze", "Giorgi")
        first = visits.register_visit(nino, VisitType.STATIONARY, start=datetime(2024, 1, 10, 9, 0))
        second = visits.register_visit(nino, VisitType.AMBULATORY, start=datetime(2024, 3, 1, 9, 0))
        third = visits.register_visit(giorgi, VisitType.STATIONARY, start=datetime(2024, 2, 1, 9, 0))
        visits.coverage_service.upsert_coverage(
            third, CoverageValues(payor=ResourceReference.of("Organization", "ins-1")), 1
        )
        return {"first": first, "second": second, "third": third}

    def test_newest_first(self, visits, seeded):
        """Test that results are sorted by start date, newest first."""
        found = visits.search_visits(VisitSearchParams())
        assert [v.id for v in found] == [seeded["second"].id, seeded["third"].id, seeded["first"].id]

    def test_by_personal_id(self, visits, seeded):
        """Test search by the patient's personal id."""
        found = visits.search_visits(VisitSearchParams(personal_id="01001011117"))
        assert [v.id for v in found] == [seeded["third"].id]

    def test_by_name_prefix(self, visits, seeded):
        """Test search by given and family name prefixes."""
        found = visits.search_visits(VisitSearchParams(first_name="nin", last_name="Ber"))
        assert {v.id for v in found} == {seeded["first"].id, seeded["second"].id}

    def test_unknown_patient_returns_nothing(self, visits, seeded):
        """Test that patient criteria matching nobody give an empty result."""
        assert visits.search_visits(VisitSearchParams(personal_id="99999999999")) == []

    def test_by_insurer(self, visits, seeded):
        """Test search by insurance company."""
        found = visits.search_visits(VisitSearchParams(insurance_company_id="ins-1"))
        assert [v.id for v in found] == [seeded["third"].id]

    def test_any_insurer_placeholder(self, visits, seeded):
        """Test that insurer "0" means any insurer."""
        assert len(visits.search_visits(VisitSearchParams(insurance_company_id="0"))) == 3

    def test_by_date_range(self, visits, seeded):
        """Test that the date range is inclusive on both ends."""
        found = visits.search_visits(
            VisitSearchParams(date_from=date(2024, 1, 10), date_to=date(2024, 2, 1))
        )
        assert [v.id for v in found] == [seeded["third"].id, seeded["first"].id]

    def test_by_registration_number_and_type(self, visits, seeded):
        """Test search by registration number and visit type."""
        found = visits.search_visits(VisitSearchParams(registration_number="a-1-2024"))
        assert [v.id for v in found] == [seeded["second"].id]

        found = visits.search_visits(VisitSearchParams(visit_type=VisitType.STATIONARY))
        assert len(found) == 2

    def test_paging(self, visits, seeded):
        """Test count and offset."""
        found = visits.search_visits(VisitSearchParams(count=1, offset=1))
        assert [v.id for v in found] == [seeded["third"].id]
