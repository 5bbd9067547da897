"""Audit infrastructure components.

This package provides the audit trail for duplicate-patient overrides.
"""

from medrecords.infrastructure.audit.override_audit_logger import OverrideAuditLogger

__all__ = ['OverrideAuditLogger']
