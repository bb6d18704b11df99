import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from crewsync.models.audit import AuditLog


def write_audit(db: AsyncSession, *, entity_type: str, entity_id: uuid.UUID | None, action: str,
                user_id: uuid.UUID | None = None,
                old_values: dict | None = None, new_values: dict | None = None) -> AuditLog:
    """Fügt einen Audit-Eintrag zur laufenden Transaktion hinzu (kein Commit)."""
    log = AuditLog(
        user_id=user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        old_values=old_values,
        new_values=new_values,
    )
    db.add(log)
    return log
