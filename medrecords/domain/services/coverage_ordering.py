"""Coverage Ordering Engine.

Keeps at most three ranked insurance coverages per visit. The order value
(1 = primary) is a stable slot identity, not a position: deleting slot 2
leaves slots 1 and 3 as they are. Whether slots should ever be compacted is an
open product decision; nothing in this module renumbers coverages.

Architecture:
    - Domain service depending only on ResourceStorePort
    - Sorting helpers are pure and usable on raw resources
    - Single-entity operations are fail-fast
"""

import logging
from typing import Iterable, Optional, Union

from medrecords.domain.models import COVERAGE_ORDERS, Coverage, CoverageValues, Visit
from medrecords.domain.ports import Resource, ResourceStorePort, ValidationError
from medrecords.domain.references import ResourceReference
from medrecords.domain.services.resource_mapper import ResourceMapper, resource_mapper
from medrecords.domain.utils import created_at

logger = logging.getLogger(__name__)


def coverage_sort_key(resource: Resource) -> tuple:
    """Ascending order, coverages without an order last, then creation time."""
    order = resource.get("order")
    has_order = isinstance(order, int) and not isinstance(order, bool)
    return (not has_order, order if has_order else 0, created_at(resource))


def sort_coverage_resources(resources: Iterable[Resource]) -> list[Resource]:
    return sorted(resources, key=coverage_sort_key)


def _visit_reference(visit: Union[Visit, ResourceReference]) -> ResourceReference:
    if isinstance(visit, ResourceReference):
        return visit
    if not visit.id:
        raise ValidationError("Coverages can only be attached to a saved visit", source="visit")
    return visit.reference


class CoverageOrderingService:
    """Create, replace, delete and list the coverages of a visit.

    Parameters:
        store: Resource store
        mapper: Resource mapper (defaults to the shared mapper)

    Example Usage:
        ```python
        service = CoverageOrderingService(store)
        service.upsert_coverage(visit, CoverageValues(payor=insurer), order=1)
        service.upsert_coverage(visit, CoverageValues(payor=other), order=3)
        [c.order for c in service.fetch_coverages_for_encounter(visit)]   # [1, 3]
        ```
    """

    def __init__(self, store: ResourceStorePort, mapper: Optional[ResourceMapper] = None):
        self.store = store
        self.mapper = mapper or resource_mapper

    def _coverage_resources(self, visit_reference: ResourceReference) -> list[Resource]:
        return self.store.search("Coverage", {"encounter": str(visit_reference)})

    def fetch_coverages_for_encounter(self, visit: Union[Visit, ResourceReference]) -> list[Coverage]:
        """Coverages of a visit sorted by order (missing orders last, then creation time)."""
        resources = self._coverage_resources(_visit_reference(visit))
        return [self.mapper.from_resource(resource) for resource in sort_coverage_resources(resources)]

    def upsert_coverage(self, visit: Visit, values: CoverageValues, order: int) -> Coverage:
        """Create the coverage in slot ``order`` or replace the one occupying it.

        Replacing keeps the stored coverage's id and any data this package
        does not manage.

        Parameters:
            visit: Saved visit owning the coverage
            values: Coverage values
            order: Priority slot, 1, 2 or 3

        Returns:
            The stored coverage

        Raises:
            ValidationError: If ``order`` is not 1, 2 or 3 or the visit is unsaved
            PersistenceError: If the store fails
        """
        if isinstance(order, bool) or order not in COVERAGE_ORDERS:
            raise ValidationError(
                f"Coverage order must be one of {COVERAGE_ORDERS}, got {order!r}",
                source="order",
            )
        visit_reference = _visit_reference(visit)

        occupying = sort_coverage_resources(
            resource for resource in self._coverage_resources(visit_reference)
            if resource.get("order") == order
        )
        if len(occupying) > 1:
            logger.warning(
                f"{visit_reference} has {len(occupying)} coverages in slot {order}; "
                f"replacing the earliest ({occupying[0].get('id')})"
            )

        coverage = Coverage(
            **values.model_dump(),
            visit=visit_reference,
            beneficiary=visit.patient,
            order=order,
        )

        if occupying:
            base = occupying[0]
            coverage = coverage.model_copy(update={"id": base["id"]})
            saved = self.store.update(self.mapper.to_resource(coverage, base=base))
            logger.info(f"Replaced coverage {base['id']} in slot {order} of {visit_reference}")
        else:
            saved = self.store.create(self.mapper.to_resource(coverage))
            logger.info(f"Created coverage {saved.get('id')} in slot {order} of {visit_reference}")

        return self.mapper.from_resource(saved)

    def delete_coverage(self, coverage_id: str) -> None:
        """Delete exactly one coverage. Remaining coverages keep their order.

        Raises:
            NotFoundError: If the coverage does not exist
            PermissionDeniedError: If the store refuses the deletion
        """
        self.store.delete("Coverage", coverage_id)
        logger.info(f"Deleted coverage {coverage_id}")
