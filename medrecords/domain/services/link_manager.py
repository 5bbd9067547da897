"""Link/Association Manager.

Manages the many-to-many reference lists between a service resource and the
specimen and observation definitions it requires, plus its lab-integration
configuration.

Every function is pure: the input resource is never modified. When an
operation changes nothing, the very same object is returned, so callers can
detect "no change" with an identity check and skip the store round trip.

Architecture:
    - Pure domain service over generic service resources (ActivityDefinition)
    - Link lists hold ``{"reference": "Type/id"}`` elements in insertion order
    - Empty lists and disabled features leave no trace on the resource
"""

import logging
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from medrecords.domain.constants import LAB_INTEGRATION_URLS, NomenclatureExtension
from medrecords.domain.models import LabIntegration
from medrecords.domain.ports import Resource
from medrecords.domain.references import ResourceReference
from medrecords.domain.services.resource_mapper import read_lab_integration
from medrecords.domain.utils import without_extensions

logger = logging.getLogger(__name__)

SPECIMEN_FIELD = "specimenRequirement"
SPECIMEN_TYPE = "SpecimenDefinition"
OBSERVATION_FIELD = "observationRequirement"
OBSERVATION_TYPE = "ObservationDefinition"


class MedicalConfiguration(BaseModel):
    """Medical configuration of a service: linked definitions and lab setup."""

    model_config = ConfigDict(frozen=True)

    samples: tuple[str, ...] = ()
    components: tuple[str, ...] = ()
    lab_integration: LabIntegration = Field(default_factory=LabIntegration)


def _with_list(resource: Resource, field: str, items: list) -> Resource:
    updated = dict(resource)
    if items:
        updated[field] = items
    else:
        updated.pop(field, None)
    return updated


def _references(resource: Resource, field: str) -> list[str]:
    return [
        item.get("reference") for item in resource.get(field) or []
        if isinstance(item, dict)
    ]


def _link(resource: Resource, field: str, resource_type: str, target_id: str) -> Resource:
    return _bulk_link(resource, field, resource_type, [target_id])


def _bulk_link(resource: Resource, field: str, resource_type: str, target_ids: Iterable[str]) -> Resource:
    present = set(_references(resource, field))
    additions = []
    for target_id in target_ids:
        reference = str(ResourceReference.of(resource_type, target_id))
        if reference not in present:
            present.add(reference)
            additions.append({"reference": reference})

    if not additions:
        return resource
    return _with_list(resource, field, list(resource.get(field) or []) + additions)


def _unlink(resource: Resource, field: str, resource_type: str, target_id: str) -> Resource:
    reference = f"{resource_type}/{target_id}"
    current = resource.get(field) or []
    remaining = [
        item for item in current
        if not (isinstance(item, dict) and item.get("reference") == reference)
    ]
    if len(remaining) == len(current):
        return resource
    return _with_list(resource, field, remaining)


def _linked_ids(resource: Resource, field: str, resource_type: str) -> list[str]:
    ids = []
    for reference in _references(resource, field):
        parsed = ResourceReference.try_parse(reference, resource_type)
        if parsed is None:
            logger.debug(f"Discarding malformed {field} reference: {reference!r}")
            continue
        ids.append(parsed.id)
    return ids


# ============================================================================
# Specimen (sample) links
# ============================================================================

def link_sample(entry: Resource, specimen_id: str) -> Resource:
    """Link a specimen definition to a service.

    Parameters:
        entry: Service resource
        specimen_id: SpecimenDefinition id

    Returns:
        Updated copy, or ``entry`` itself if the id was already linked

    Raises:
        InvalidReferenceError: If ``specimen_id`` is not a valid resource id
    """
    return _link(entry, SPECIMEN_FIELD, SPECIMEN_TYPE, specimen_id)


def unlink_sample(entry: Resource, specimen_id: str) -> Resource:
    """Remove a specimen link by exact reference match; absent ids are a no-op."""
    return _unlink(entry, SPECIMEN_FIELD, SPECIMEN_TYPE, specimen_id)


def bulk_link_samples(entry: Resource, specimen_ids: Iterable[str]) -> Resource:
    """Link every specimen id not already linked, in one update."""
    return _bulk_link(entry, SPECIMEN_FIELD, SPECIMEN_TYPE, specimen_ids)


def get_linked_samples(entry: Resource) -> list[str]:
    """Ids of linked specimen definitions; malformed references are skipped."""
    return _linked_ids(entry, SPECIMEN_FIELD, SPECIMEN_TYPE)


# ============================================================================
# Observation (component) links
# ============================================================================

def link_component(entry: Resource, observation_id: str) -> Resource:
    """Link an observation definition (result component) to a service.

    Returns:
        Updated copy, or ``entry`` itself if the id was already linked
    """
    return _link(entry, OBSERVATION_FIELD, OBSERVATION_TYPE, observation_id)


def unlink_component(entry: Resource, observation_id: str) -> Resource:
    """Remove a component link by exact reference match; absent ids are a no-op."""
    return _unlink(entry, OBSERVATION_FIELD, OBSERVATION_TYPE, observation_id)


def bulk_link_components(entry: Resource, observation_ids: Iterable[str]) -> Resource:
    """Link every observation id not already linked, in one update."""
    return _bulk_link(entry, OBSERVATION_FIELD, OBSERVATION_TYPE, observation_ids)


def get_linked_components(entry: Resource) -> list[str]:
    """Ids of linked observation definitions; malformed references are skipped."""
    return _linked_ids(entry, OBSERVATION_FIELD, OBSERVATION_TYPE)


def clear_all_links(entry: Resource) -> Resource:
    """Remove both relationship lists in one call."""
    if SPECIMEN_FIELD not in entry and OBSERVATION_FIELD not in entry:
        return entry
    return {key: value for key, value in entry.items() if key not in (SPECIMEN_FIELD, OBSERVATION_FIELD)}


# ============================================================================
# Lab integration
# ============================================================================

def configure_lab_integration(entry: Resource, enabled: bool, provider: Optional[str] = None) -> Resource:
    """Set the lab-integration state of a service.

    Both lab-integration extensions are always removed first. Disabling leaves
    nothing behind; enabling writes the flag, and the provider only when one is
    supplied. A provider stored before is never carried over.

    Parameters:
        entry: Service resource
        enabled: Whether results are exchanged with an external lab system
        provider: Lab system name (ignored when disabling)

    Returns:
        Updated copy of ``entry``
    """
    extensions = without_extensions(entry.get("extension"), LAB_INTEGRATION_URLS)

    if enabled:
        extensions.append({"url": NomenclatureExtension.LAB_INTEGRATION, "valueBoolean": True})
        provider = provider.strip() if provider else None
        if provider:
            extensions.append({"url": NomenclatureExtension.LAB_PROVIDER, "valueString": provider})

    return _with_list(entry, "extension", extensions)


def get_lab_integration(entry: Resource) -> LabIntegration:
    return read_lab_integration(entry)


def is_lab_integration_enabled(entry: Resource) -> bool:
    return read_lab_integration(entry).enabled


def get_medical_configuration(entry: Resource) -> MedicalConfiguration:
    """Linked samples, linked components and lab setup of a service."""
    return MedicalConfiguration(
        samples=tuple(get_linked_samples(entry)),
        components=tuple(get_linked_components(entry)),
        lab_integration=get_lab_integration(entry),
    )
