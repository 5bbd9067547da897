"""In-memory resource store.

Keeps resources in a process-local dictionary. Used for dry runs, tests and
local experiments; nothing survives the process.
"""

import copy
import logging
import uuid
from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from medrecords.domain.ports import (
    NotFoundError,
    PersistenceError,
    Resource,
    ResourceStorePort,
    SearchParams,
)
from medrecords.adapters.storage.search_matching import apply_search

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def stamp_meta(resource: Resource, previous: Optional[Resource] = None) -> Resource:
    """Set ``meta.versionId``/``meta.lastUpdated`` and keep ``meta.created`` stable.

    Parameters:
        resource: Resource being written (modified in place)
        previous: Stored version being replaced, None on create
    """
    now = utc_timestamp()
    meta = dict(resource.get("meta") or {})
    if previous is None:
        meta["versionId"] = "1"
        meta["created"] = now
    else:
        previous_meta = previous.get("meta") or {}
        meta["versionId"] = str(int(previous_meta.get("versionId") or 0) + 1)
        meta["created"] = previous_meta.get("created") or now
    meta["lastUpdated"] = now
    resource["meta"] = meta
    return resource


def require_type_and_id(resource: Resource, operation: str) -> tuple[str, Optional[str]]:
    resource_type = resource.get("resourceType")
    if not resource_type:
        raise PersistenceError("Resource has no resourceType", operation=operation)
    return resource_type, resource.get("id")


class InMemoryResourceStore(ResourceStorePort):
    """Thread-safe dictionary-backed ResourceStorePort.

    Every value going in or out is deep-copied, so callers can never mutate
    stored state by accident.
    """

    def __init__(self):
        self._resources: dict[tuple[str, str], Resource] = {}
        self._lock = Lock()

    def create(self, resource: Resource) -> Resource:
        resource_type, _ = require_type_and_id(resource, "create")
        stored = copy.deepcopy(resource)
        stored["id"] = str(uuid.uuid4())
        stamp_meta(stored)
        with self._lock:
            self._resources[(resource_type, stored["id"])] = stored
        logger.debug(f"Created {resource_type}/{stored['id']}")
        return copy.deepcopy(stored)

    def read(self, resource_type: str, resource_id: str) -> Resource:
        with self._lock:
            stored = self._resources.get((resource_type, resource_id))
        if stored is None:
            raise NotFoundError(f"{resource_type}/{resource_id} not found", resource_type, resource_id)
        return copy.deepcopy(stored)

    def update(self, resource: Resource) -> Resource:
        resource_type, resource_id = require_type_and_id(resource, "update")
        if not resource_id:
            raise NotFoundError(f"Cannot update a {resource_type} without an id", resource_type)
        with self._lock:
            previous = self._resources.get((resource_type, resource_id))
            if previous is None:
                raise NotFoundError(f"{resource_type}/{resource_id} not found", resource_type, resource_id)
            stored = stamp_meta(copy.deepcopy(resource), previous)
            self._resources[(resource_type, resource_id)] = stored
        return copy.deepcopy(stored)

    def delete(self, resource_type: str, resource_id: str) -> None:
        with self._lock:
            if self._resources.pop((resource_type, resource_id), None) is None:
                raise NotFoundError(f"{resource_type}/{resource_id} not found", resource_type, resource_id)
        logger.debug(f"Deleted {resource_type}/{resource_id}")

    def search(self, resource_type: str, params: Optional[SearchParams] = None) -> list[Resource]:
        with self._lock:
            candidates = [
                resource for (stored_type, _), resource in self._resources.items()
                if stored_type == resource_type
            ]
            found = apply_search(resource_type, candidates, params)
            return copy.deepcopy(found)

    def __len__(self) -> int:
        return len(self._resources)
