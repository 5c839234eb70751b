"""Visit activity log (secondary audit collection)."""

from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
import uuid

from app.database import Base


class VisitLog(Base):
    __tablename__ = "visit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    visit_id = Column(String(40), nullable=False, index=True)
    action = Column(String(40), nullable=False)  # completed, emergency_created
    performed_by = Column(String(100), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
