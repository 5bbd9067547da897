"""Override Audit Logger.

This module records every decision to register a patient despite a detected
duplicate. Each entry names the personal id, the existing record that was
overridden, the newly created record and who made the decision.

Security Impact:
    - Creates an append-only audit trail of duplicate overrides
    - Enables review of registrations that bypassed duplicate detection
    - Personal ids are masked before they are written or logged

Architecture:
    - Infrastructure layer component called by the duplicate detection service
    - Keeps an in-memory buffer; optionally appends JSON lines to a file
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import List, Optional

logger = logging.getLogger(__name__)


def mask_identifier(value: Optional[str]) -> Optional[str]:
    """Keep the last 4 characters of an identifier, mask the rest."""
    if not value:
        return value
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]


class OverrideAuditLogger:
    """Audit trail for duplicate-patient overrides.

    Parameters:
        log_path: Optional JSON-lines file each entry is appended to

    Example Usage:
        ```python
        audit = OverrideAuditLogger(log_path="reports/overrides.jsonl")
        audit.log_override(
            personal_id="01001011116",
            existing_reference="Patient/p1",
            created_reference="Patient/p2",
            actor="registrar-7",
        )
        audit.get_logs()
        ```
    """

    def __init__(self, log_path: Optional[str] = None):
        self.log_path = Path(log_path) if log_path else None
        self._logs: List[dict] = []
        self._lock = Lock()

    def log_override(
        self,
        personal_id: str,
        existing_reference: Optional[str],
        created_reference: Optional[str],
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> dict:
        """Record one override decision.

        Parameters:
            personal_id: Personal id shared by both records (masked on write)
            existing_reference: Reference of the record that was overridden
            created_reference: Reference of the record created anyway
            actor: User or system that made the decision
            reason: Free-text justification

        Returns:
            The audit entry that was recorded
        """
        entry = {
            "audit_id": str(uuid.uuid4()),
            "event_type": "DUPLICATE_OVERRIDE",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "personal_id": mask_identifier(personal_id),
            "existing_reference": existing_reference,
            "created_reference": created_reference,
            "actor": actor or "unknown",
            "reason": reason,
        }

        with self._lock:
            self._logs.append(entry)
            if self.log_path is not None:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, ensure_ascii=False) + "\n")

        logger.info(
            f"Duplicate override by {entry['actor']}: created {created_reference} "
            f"despite existing {existing_reference}"
        )
        return entry

    def get_logs(self) -> List[dict]:
        """Get a copy of all recorded entries."""
        with self._lock:
            return list(self._logs)

    def clear_logs(self) -> None:
        """Clear the in-memory buffer (the file, if any, is left untouched)."""
        with self._lock:
            self._logs.clear()

    def get_log_count(self) -> int:
        return len(self._logs)
