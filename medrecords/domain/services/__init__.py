"""Domain services: mapping, linking, coverage ordering, duplicate detection, import."""

from medrecords.domain.services.bulk_import import BulkImportPipeline, ImportSummary
from medrecords.domain.services.catalog_service import CatalogService
from medrecords.domain.services.coverage_ordering import CoverageOrderingService
from medrecords.domain.services.duplicate_detection import DuplicatePatientDetector
from medrecords.domain.services.resource_mapper import ResourceMapper, resource_mapper
from medrecords.domain.services.visit_service import VisitService

__all__ = [
    "BulkImportPipeline",
    "CatalogService",
    "CoverageOrderingService",
    "DuplicatePatientDetector",
    "ImportSummary",
    "ResourceMapper",
    "VisitService",
    "resource_mapper",
]
