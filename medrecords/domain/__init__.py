"""Domain layer for MedRecords.

This module contains the domain records, the ports adapters implement and the
domain services. Domain models depend on nothing beyond Pydantic.
"""

from .models import (
    Coverage,
    CoverageValues,
    Patient,
    ServiceCatalogEntry,
    Visit,
)

__all__ = [
    "Coverage",
    "CoverageValues",
    "Patient",
    "ServiceCatalogEntry",
    "Visit",
]
