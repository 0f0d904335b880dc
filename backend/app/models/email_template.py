"""
Email Template Model — versioned subject/HTML pairs keyed by template type.
"""
from datetime import datetime

from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime

from app.database import Base


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(64), nullable=False, index=True)
    # PAYMENT_REMINDER_UPCOMING, PAYMENT_REMINDER_OVERDUE, BOOKING_PAYMENT_REMINDER,
    # BOOKING_PAYMENT_OVERDUE, SECOND_PAYMENT_CREATED

    subject = Column(String(256), nullable=False)
    html = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
