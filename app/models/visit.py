"""Visit model for scheduled and completed service engagements."""

from sqlalchemy import Column, String, DateTime, Text, Float, Boolean, JSON
from sqlalchemy.sql import func
import uuid

from app.database import Base


class Visit(Base):
    """A single service visit at a branch, regular or emergency."""

    __tablename__ = "visits"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    visit_id = Column(String(40), nullable=True, index=True)  # VISIT-2025-0001

    # Relationships (by business id)
    branch_id = Column(String(40), nullable=False, index=True)
    company_id = Column(String(20), nullable=False, index=True)
    contract_id = Column(String(30), nullable=True, index=True)

    type = Column(String(20), nullable=False, default="regular")  # regular, emergency, followup
    status = Column(String(20), nullable=False, default="scheduled")
    # scheduled, in_progress, completed, cancelled, rescheduled

    # Dates are canonical DD-Mon-YYYY text
    scheduled_date = Column(String(40), nullable=True, index=True)
    scheduled_time = Column(String(10), nullable=True)
    completed_date = Column(String(40), nullable=True)
    completed_time = Column(String(10), nullable=True)
    duration = Column(Float, nullable=True)  # hours

    assigned_team = Column(String(100), nullable=True)
    assigned_technician = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    services = Column(JSON, nullable=True)  # {"fire_extinguisher_maintenance": true, ...}
    results = Column(JSON, nullable=True)  # {"overall_status", "issues", "recommendations", ...}
    attachments = Column(JSON, nullable=True)  # metadata only

    # Emergency intake
    emergency_ticket_number = Column(String(20), nullable=True, index=True)
    priority = Column(String(10), nullable=True)  # low, medium, high, critical
    reported_by = Column(String(100), nullable=True)
    contact_number = Column(String(30), nullable=True)
    customer_complaints = Column(JSON, nullable=True)

    is_archived = Column(Boolean, default=False, nullable=False)

    # Audit
    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Visit {self.visit_id} {self.scheduled_date} {self.status}>"
