"""
Audit Log Model — tamper-evident trail of payment actions.
Every entry is SHA-256 hashed and chained to the previous entry of the same entity.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON

from app.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    entity_type = Column(String(32), nullable=False, index=True)   # PAYMENT_INTENT | PAYMENT_STAGE | BOOKING
    entity_id = Column(String(36), nullable=False, index=True)

    action = Column(String(50), nullable=False)
    # Actions: STATUS_EXPIRED, SECOND_LINK_CREATED, STAGE_CHECKOUT_CREATED,
    #          STAGE_DELETED, PLAN_REPLACED, REFUND_INITIATED, SETTLEMENT_APPLIED

    payload_hash = Column(String(64))       # chain hash of this entry
    previous_hash = Column(String(64))      # Hash chain for tamper detection

    actor = Column(String(64), default="system")
    log_metadata = Column(JSON, default=dict)
    timestamp = Column(DateTime, default=datetime.utcnow)
