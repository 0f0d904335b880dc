"""
Audit Service — hash-chained trail of payment actions per entity.
"""
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.utils.hashing import generate_chain_hash


class AuditService:
    """Creates tamper-evident audit log entries with hash chaining."""

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: str,
        action: str,
        payload: Optional[Dict] = None,
        actor: Optional[str] = None,
        commit: bool = True,
    ) -> AuditLog:
        """Append an audit entry for an entity.

        Args:
            db: Database session.
            entity_type: PAYMENT_INTENT, PAYMENT_STAGE, PAYMENT_PLAN or BOOKING.
            entity_id: Id of the entity the action applied to.
            action: Action identifier (e.g. SECOND_LINK_CREATED).
            payload: Data hashed into the chain and stored as metadata.
            actor: Admin user id, or "system" for jobs and webhooks.
            commit: Pass False to leave the entry in the caller's transaction.

        Returns:
            The created AuditLog entry.
        """
        # Chain to the last entry of the same entity
        last_entry = (
            db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id.desc())
            .first()
        )
        previous_hash = last_entry.payload_hash if last_entry else ""

        payload_data = payload or {}
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            payload_hash=generate_chain_hash(payload_data, previous_hash),
            previous_hash=previous_hash,
            actor=actor or "system",
            log_metadata=payload_data,
            timestamp=datetime.utcnow(),
        )
        db.add(entry)
        if commit:
            db.commit()
            db.refresh(entry)
        else:
            db.flush()
        return entry

    @staticmethod
    def get_trail(db: Session, entity_type: str, entity_id: str) -> list[AuditLog]:
        return (
            db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.id.asc())
            .all()
        )

    @staticmethod
    def verify_chain(db: Session, entity_type: str, entity_id: str) -> dict:
        """Verify the integrity of an entity's audit chain.

        Returns:
            dict with 'valid' (bool), 'total_entries', and 'broken_at' (if invalid).
        """
        entries = AuditService.get_trail(db, entity_type, entity_id)
        if not entries:
            return {"valid": True, "total_entries": 0, "broken_at": None}

        for i, entry in enumerate(entries):
            expected_prev = entries[i - 1].payload_hash if i > 0 else ""
            expected_hash = generate_chain_hash(entry.log_metadata or {}, expected_prev)
            if entry.previous_hash != expected_prev or entry.payload_hash != expected_hash:
                return {
                    "valid": False,
                    "total_entries": len(entries),
                    "broken_at": entry.id,
                    "message": f"Chain broken at entry {entry.id} ({entry.action})",
                }

        return {"valid": True, "total_entries": len(entries), "broken_at": None}
