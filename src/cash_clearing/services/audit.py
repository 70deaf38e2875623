"""Audit trail recorder."""

from typing import Any, Optional

from cash_clearing.core import Clock, get_logger, utc_now
from cash_clearing.models.audit import AuditAction, AuditEntry, EntityType
from cash_clearing.repository.base import CashClearingRepository

logger = get_logger(__name__)


class AuditTrail:
    """Appends audit entries for every state change."""

    def __init__(self, repository: CashClearingRepository, clock: Clock = utc_now):
        self._repository = repository
        self._clock = clock

    def record(
        self,
        actor: str,
        action: AuditAction,
        entity_type: EntityType,
        entity_id: str,
        batch_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            timestamp=self._clock(),
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            batch_id=batch_id,
            details=details or {},
        )
        self._repository.add_audit_entry(entry)
        logger.debug(
            "audit_entry_recorded",
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
        )
        return entry

    def entries_for(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        return self._repository.get_audit_entries(
            entity_type=entity_type, entity_id=entity_id, batch_id=batch_id
        )
