"""Contract model for recurring fire-safety service agreements."""

from sqlalchemy import Column, String, DateTime, Text, Integer, Float, Boolean, JSON
from sqlalchemy.sql import func
import uuid

from app.database import Base


class Contract(Base):
    """Service agreement that visits are planned against."""

    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    contract_id = Column(String(30), nullable=True, index=True)  # 0001-001
    company_id = Column(String(20), nullable=False, index=True)

    # Terms (dates are canonical DD-Mon-YYYY text)
    contract_start_date = Column(String(40), nullable=True)
    contract_end_date = Column(String(40), nullable=True)
    contract_period_months = Column(Integer, nullable=True)
    contract_value = Column(Float, nullable=True)
    contract_document = Column(JSON, nullable=True)  # reference only, storage is external
    notes = Column(Text, nullable=True)

    # Ordered service batches (JSON array)
    service_batches = Column(JSON, nullable=True)
    # Example: [
    #   {"batch_id": "BATCH-1A2B3C4D", "services": {"fire_extinguisher_maintenance": true},
    #    "branch_ids": ["0001-JED-001-0001"], "regular_visits_per_year": 4,
    #    "emergency_visits_per_year": 2, "emergency_visit_cost": 350.0}
    # ]

    status = Column(String(20), default="active")  # active, archived, expired, cancelled

    # Renewal chain
    is_renewed = Column(Boolean, default=False)
    original_contract_id = Column(String(36), nullable=True, index=True)  # predecessor contract_id
    renewed_contract_id = Column(String(36), nullable=True)

    # Append-only trails
    addendums = Column(JSON, nullable=True)
    contract_history = Column(JSON, nullable=True)

    # Archival
    is_archived = Column(Boolean, default=False, nullable=False)
    archive_reason = Column(Text, nullable=True)
    archived_by = Column(String(100), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    # Audit
    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Contract {self.contract_id} {self.status}>"
