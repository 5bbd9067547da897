"""Adapters layer for MedRecords.

This module contains input/output adapters that interface with external systems.
Adapters implement Port interfaces defined in the domain layer: row readers
feed the bulk import, resource stores persist generic records.
"""
