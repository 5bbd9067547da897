"""MedRecords: resource mapping and validation layer for clinical records."""

__version__ = "1.0.0"
