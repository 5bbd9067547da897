"""Service catalog operations.

Create, read, edit and retire medical service catalog entries. Entries are
never physically deleted: retiring sets their status to ``retired``.

Architecture:
    - Domain service depending only on ResourceStorePort
    - Edits are read-modify-write so data this package does not manage survives
"""

import logging
from typing import Optional

from medrecords.domain.constants import SERVICE_CODE_SYSTEM
from medrecords.domain.enums import ServiceStatus
from medrecords.domain.models import ServiceCatalogEntry
from medrecords.domain.ports import NotFoundError, Resource, ResourceStorePort, ValidationError
from medrecords.domain.services.resource_mapper import ResourceMapper, resource_mapper

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "ActivityDefinition"


class CatalogService:
    """Catalog of medical services.

    Parameters:
        store: Resource store
        mapper: Resource mapper (defaults to the shared mapper)
    """

    def __init__(self, store: ResourceStorePort, mapper: Optional[ResourceMapper] = None):
        self.store = store
        self.mapper = mapper or resource_mapper

    def _find_resources_by_code(self, code: str) -> list[Resource]:
        return self.store.search(RESOURCE_TYPE, {"identifier": f"{SERVICE_CODE_SYSTEM}|{code}"})

    def find_by_code(self, code: str) -> Optional[ServiceCatalogEntry]:
        """Entry with the given business code, or None."""
        resources = self._find_resources_by_code(code.strip())
        if not resources:
            return None
        return self.mapper.from_resource(resources[0])

    def code_exists(self, code: str, exclude_id: Optional[str] = None) -> bool:
        """Whether another entry already uses ``code``.

        Parameters:
            code: Business code to check
            exclude_id: Entry id to ignore (the entry being edited)
        """
        return any(
            resource.get("id") != exclude_id
            for resource in self._find_resources_by_code(code.strip())
        )

    def create_entry(self, entry: ServiceCatalogEntry) -> ServiceCatalogEntry:
        """Store a new entry.

        Raises:
            ValidationError: If the code is already used
            PersistenceError: If the store fails
        """
        if self.code_exists(entry.code):
            raise ValidationError(f"Service code already exists: {entry.code}", source="code")
        saved = self.store.create(self.mapper.to_resource(entry.model_copy(update={"id": None})))
        logger.debug(f"Created service {entry.code} as {RESOURCE_TYPE}/{saved.get('id')}")
        return self.mapper.from_resource(saved)

    def get_entry(self, entry_id: str) -> ServiceCatalogEntry:
        """Raises NotFoundError if the entry does not exist."""
        return self.mapper.from_resource(self.store.read(RESOURCE_TYPE, entry_id))

    def get_resource(self, entry_id: str) -> Resource:
        """Stored resource of an entry, as input for the link manager."""
        return self.store.read(RESOURCE_TYPE, entry_id)

    def update_entry(self, entry: ServiceCatalogEntry) -> ServiceCatalogEntry:
        """Save an edited entry, keeping everything on the stored resource this
        package does not manage.

        Raises:
            ValidationError: If the entry has no id or its code clashes with another entry
            NotFoundError: If the entry does not exist
        """
        if not entry.id:
            raise ValidationError("Cannot update a service that has not been saved", source="id")
        if self.code_exists(entry.code, exclude_id=entry.id):
            raise ValidationError(f"Service code already exists: {entry.code}", source="code")

        stored = self.store.read(RESOURCE_TYPE, entry.id)
        saved = self.store.update(self.mapper.to_resource(entry, base=stored))
        return self.mapper.from_resource(saved)

    def save_resource(self, resource: Resource) -> ServiceCatalogEntry:
        """Persist a service resource changed by the link manager.

        The resource is mapped before it is written, so a malformed link list
        is rejected without touching the store.

        Raises:
            NotFoundError: If the resource has no id or does not exist
            MappingError: If the resource is not a valid service
        """
        if not resource.get("id"):
            raise NotFoundError("Service resource has no id", resource_type=RESOURCE_TYPE)
        self.mapper.from_resource(resource)
        return self.mapper.from_resource(self.store.update(resource))

    def retire_entry(self, entry_id: str) -> ServiceCatalogEntry:
        """Soft-delete an entry by setting its status to ``retired``."""
        entry = self.get_entry(entry_id)
        if entry.status == ServiceStatus.RETIRED:
            return entry
        retired = self.update_entry(entry.model_copy(update={"status": ServiceStatus.RETIRED}))
        logger.info(f"Retired service {entry.code} ({RESOURCE_TYPE}/{entry_id})")
        return retired

    def search_entries(
        self,
        code: Optional[str] = None,
        title: Optional[str] = None,
        group: Optional[str] = None,
        status: Optional[ServiceStatus] = None,
        count: int = 100,
        offset: int = 0,
    ) -> list[ServiceCatalogEntry]:
        """Search the catalog.

        Parameters:
            code: Exact business code
            title: Title prefix (case-insensitive)
            group: Service group
            status: Catalog status
            count: Page size
            offset: Number of matches to skip
        """
        params = {"_count": str(count), "_offset": str(offset), "_sort": "title"}
        if code:
            params["identifier"] = f"{SERVICE_CODE_SYSTEM}|{code.strip()}"
        if title:
            params["title"] = title.strip()
        if group:
            params["topic"] = group.strip()
        if status:
            params["status"] = ServiceStatus(status).value
        return [self.mapper.from_resource(resource) for resource in self.store.search(RESOURCE_TYPE, params)]
