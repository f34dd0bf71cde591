from enum import StrEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog


class AuditAction(StrEnum):
    """Standard audit actions."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    REACTIVATE = "REACTIVATE"

    # Domain-specific actions
    ASSIGN_FEE_STRUCTURE = "ASSIGN_FEE_STRUCTURE"
    BULK_ASSIGN_FEE_STRUCTURE = "BULK_ASSIGN_FEE_STRUCTURE"
    ASSIGN_FEE_STRUCTURE_TO_ALL = "ASSIGN_FEE_STRUCTURE_TO_ALL"
    REMOVE_FEE_ASSIGNMENT = "REMOVE_FEE_ASSIGNMENT"
    APPLY_PAYMENT = "APPLY_PAYMENT"
    APPLY_ADDITIONAL_FEE = "APPLY_ADDITIONAL_FEE"
    RECONCILE_BALANCES = "RECONCILE_BALANCES"
    MIGRATE_LEGACY_BALANCES = "MIGRATE_LEGACY_BALANCES"


class AuditService:
    """Service for creating audit logs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str | AuditAction,
        entity_type: str,
        entity_id: int,
        actor: str | None = None,
        entity_identifier: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        comment: str | None = None,
    ) -> AuditLog:
        """Create an audit log entry."""
        audit_log = AuditLog(
            actor=actor,
            action=str(action),
            entity_type=entity_type,
            entity_id=entity_id,
            entity_identifier=entity_identifier,
            old_values=old_values,
            new_values=new_values,
            comment=comment,
        )

        self.db.add(audit_log)
        await self.db.flush()

        return audit_log

    async def list_for_entity(self, entity_type: str, entity_id: int) -> list[AuditLog]:
        """Audit trail of one entity, oldest first."""
        result = await self.db.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id)
        )
        return list(result.scalars().all())
