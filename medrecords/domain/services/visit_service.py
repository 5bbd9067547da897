"""Visit registration, editing, closing and search.

Visits are never physically removed: closing is a status transition.

Architecture:
    - Domain service depending only on ResourceStorePort
    - Patient- and insurer-based search criteria are resolved to visit
      filters here, so every store only needs plain per-type search
"""

import logging
from datetime import datetime
from typing import Optional

from medrecords.domain.constants import PERSONAL_ID_SYSTEM
from medrecords.domain.enums import VisitStatus, VisitType
from medrecords.domain.models import Period, Visit, VisitSearchParams
from medrecords.domain.ports import ResourceStorePort, ValidationError
from medrecords.domain.references import ResourceReference
from medrecords.domain.services.coverage_ordering import CoverageOrderingService
from medrecords.domain.services.resource_mapper import ResourceMapper, VisitMapper, resource_mapper

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "Encounter"
CLOSED_STATUSES = (VisitStatus.FINISHED, VisitStatus.CANCELLED, VisitStatus.ENTERED_IN_ERROR)
ANY_INSURER = "0"


def format_registration_number(visit_type: VisitType, sequence: int, year: int, unknown_patient: bool = False) -> str:
    """``UNK-N-YYYY`` for unknown patients, ``a-N-YYYY`` for ambulatory visits, ``N-YYYY`` otherwise."""
    if unknown_patient:
        return f"UNK-{sequence}-{year}"
    if visit_type == VisitType.AMBULATORY:
        return f"a-{sequence}-{year}"
    return f"{sequence}-{year}"


class VisitService:
    """Visit lifecycle and search.

    Parameters:
        store: Resource store
        coverage_service: Coverage engine used to attach coverages to visits
        mapper: Resource mapper (defaults to the shared mapper)
    """

    def __init__(
        self,
        store: ResourceStorePort,
        coverage_service: Optional[CoverageOrderingService] = None,
        mapper: Optional[ResourceMapper] = None,
    ):
        self.store = store
        self.mapper = mapper or resource_mapper
        self.coverage_service = coverage_service or CoverageOrderingService(store, self.mapper)

    def next_registration_number(self, visit_type: VisitType, year: int, unknown_patient: bool = False) -> str:
        """Next free registration number of a visit type in a year.

        Unknown-patient visits share one sequence across visit types.
        Like patient registration, this is read-then-write: two concurrent
        registrations may compute the same number.
        """
        system = VisitMapper.registration_system(visit_type, unknown_patient)
        params = {} if unknown_patient else {"class": visit_type.class_code}
        suffix = f"-{year}"
        taken = 0
        for resource in self.store.search(RESOURCE_TYPE, params):
            for identifier in resource.get("identifier") or []:
                value = identifier.get("value") or ""
                if identifier.get("system") == system and value.endswith(suffix):
                    taken += 1
        return format_registration_number(visit_type, taken + 1, year, unknown_patient)

    def register_visit(
        self,
        patient: ResourceReference,
        visit_type: VisitType,
        start: Optional[datetime] = None,
        referrer: Optional[ResourceReference] = None,
        sending_organization: Optional[ResourceReference] = None,
        registration_number: Optional[str] = None,
        referrer_name: Optional[str] = None,
        unknown_patient: bool = False,
    ) -> Visit:
        """Create an in-progress visit, generating a registration number if none is given.

        Raises:
            ValidationError: If the patient reference is not a Patient or both
                referrer forms are given
            PersistenceError: If the store fails
        """
        start = start or datetime.now()
        try:
            visit = Visit(
                patient=patient,
                visit_type=visit_type,
                period=Period(start=start),
                referrer=referrer,
                referrer_name=referrer_name,
                sending_organization=sending_organization,
                registration_number=(
                    registration_number
                    or self.next_registration_number(visit_type, start.year, unknown_patient)
                ),
                unknown_patient=unknown_patient,
            )
        except ValueError as e:
            raise ValidationError(str(e), source="visit") from e

        saved = self.mapper.from_resource(self.store.create(self.mapper.to_resource(visit)))
        logger.info(f"Registered {visit_type.value} visit {saved.registration_number} ({RESOURCE_TYPE}/{saved.id})")
        return saved

    def get_visit(self, visit_id: str) -> Visit:
        """Visit with its coverages attached. Raises NotFoundError if absent."""
        visit = self.mapper.from_resource(self.store.read(RESOURCE_TYPE, visit_id))
        coverages = self.coverage_service.fetch_coverages_for_encounter(visit)
        return visit.model_copy(update={"coverages": tuple(coverages)})

    def update_visit(self, visit: Visit) -> Visit:
        """Save an edited visit, keeping data on the stored encounter this package does not manage.

        Coverages are managed through the coverage engine and are not written here.

        Raises:
            ValidationError: If the visit has no id
            NotFoundError: If the visit does not exist
            PermissionDeniedError: If the store refuses the update
        """
        if not visit.id:
            raise ValidationError("Cannot update a visit that has not been saved", source="id")
        stored = self.store.read(RESOURCE_TYPE, visit.id)
        saved = self.store.update(self.mapper.to_resource(visit, base=stored))
        return self.mapper.from_resource(saved).model_copy(update={"coverages": visit.coverages})

    def close_visit(self, visit_id: str, status: VisitStatus = VisitStatus.ENTERED_IN_ERROR) -> Visit:
        """Soft-close a visit by a status transition.

        Parameters:
            visit_id: Visit id
            status: Closing status: finished, cancelled or entered-in-error
        """
        if status not in CLOSED_STATUSES:
            raise ValidationError(f"{status.value} is not a closing status", source="status")

        visit = self.mapper.from_resource(self.store.read(RESOURCE_TYPE, visit_id))
        period = visit.period
        if status == VisitStatus.FINISHED and period.end is None:
            period = period.model_copy(update={"end": datetime.now()})

        closed = self.update_visit(visit.model_copy(update={"status": status, "period": period}))
        logger.info(f"Closed visit {RESOURCE_TYPE}/{visit_id} as {status.value}")
        return closed

    def search_visits(self, params: VisitSearchParams) -> list[Visit]:
        """Search visits by the fixed visit search parameter set.

        Patient criteria (personal id, names) and the insurer are resolved to
        patient and visit ids first; if either resolves to nothing the result
        is empty without searching visits.
        """
        query: dict = {
            "_count": str(params.count),
            "_offset": str(params.offset),
            "_sort": "-date",
        }

        patient_query = {}
        if params.personal_id:
            patient_query["identifier"] = f"{PERSONAL_ID_SYSTEM}|{params.personal_id}"
        if params.first_name:
            patient_query["given"] = params.first_name
        if params.last_name:
            patient_query["family"] = params.last_name
        if patient_query:
            patients = self.store.search("Patient", patient_query)
            if not patients:
                return []
            query["subject"] = ",".join(f"Patient/{p['id']}" for p in patients)

        if params.insurance_company_id and params.insurance_company_id != ANY_INSURER:
            coverages = self.store.search(
                "Coverage", {"payor": f"Organization/{params.insurance_company_id}"}
            )
            visit_ids = []
            for coverage in coverages:
                visit = self.mapper.from_resource(coverage).visit
                if visit.id not in visit_ids:
                    visit_ids.append(visit.id)
            if not visit_ids:
                return []
            query["_id"] = ",".join(visit_ids)

        dates = []
        if params.date_from:
            dates.append(f"ge{params.date_from.isoformat()}")
        if params.date_to:
            dates.append(f"le{params.date_to.isoformat()}")
        if dates:
            query["date"] = dates
        if params.registration_number:
            query["identifier"] = params.registration_number
        if params.status:
            query["status"] = params.status.value
        if params.visit_type:
            query["class"] = params.visit_type.class_code

        return [self.mapper.from_resource(resource) for resource in self.store.search(RESOURCE_TYPE, query)]
