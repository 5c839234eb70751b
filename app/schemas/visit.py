"""Visit schemas for request/response validation."""

from pydantic import BaseModel, Field
from typing import Optional, Any, Literal
from datetime import datetime

from app.schemas.types import CanonicalDate, EmergencyPriority, VisitStatus, VisitType

PlannedVisitType = Literal["regular", "followup"]


class VisitResults(BaseModel):
    overall_status: Optional[str] = None
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    next_visit_date: Optional[CanonicalDate] = None


class VisitBase(BaseModel):
    """Fields shared by regular and emergency visits."""
    branch_id: str = Field(..., min_length=1)
    company_id: str = Field(..., min_length=1)
    contract_id: Optional[str] = None
    scheduled_date: Optional[CanonicalDate] = None
    scheduled_time: Optional[str] = None
    duration: Optional[float] = Field(None, ge=0)
    assigned_team: Optional[str] = None
    assigned_technician: Optional[str] = None
    notes: Optional[str] = None
    services: Optional[dict[str, Any]] = None


class VisitCreate(VisitBase):
    """Schema for creating a planned visit."""
    type: PlannedVisitType = "regular"
    status: Optional[VisitStatus] = None


class EmergencyVisitCreate(VisitBase):
    """Emergency intake; the ticket number is generated from the branch city."""
    priority: EmergencyPriority
    reported_by: str = Field(..., min_length=1)
    contact_number: Optional[str] = None
    customer_complaints: list[str] = Field(..., min_length=1)


class VisitUpdate(BaseModel):
    """Schema for updating a visit (all fields optional)."""
    branch_id: Optional[str] = None
    company_id: Optional[str] = None
    contract_id: Optional[str] = None
    type: Optional[VisitType] = None
    status: Optional[VisitStatus] = None
    scheduled_date: Optional[CanonicalDate] = None
    scheduled_time: Optional[str] = None
    completed_date: Optional[CanonicalDate] = None
    completed_time: Optional[str] = None
    duration: Optional[float] = Field(None, ge=0)
    assigned_team: Optional[str] = None
    assigned_technician: Optional[str] = None
    notes: Optional[str] = None
    services: Optional[dict[str, Any]] = None
    results: Optional[VisitResults] = None


class VisitComplete(BaseModel):
    completed_date: Optional[CanonicalDate] = None
    completed_time: Optional[str] = None
    duration: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    results: Optional[VisitResults] = None


class VisitCancel(BaseModel):
    reason: str = Field(..., min_length=1)


class VisitReschedule(BaseModel):
    new_date: CanonicalDate
    new_time: Optional[str] = None
    reason: str = Field(..., min_length=1)


class VisitResponse(BaseModel):
    """Schema for visit response."""
    id: str
    visit_id: Optional[str] = None
    branch_id: str
    company_id: str
    contract_id: Optional[str] = None
    type: str
    status: str
    scheduled_date: Optional[str] = None
    scheduled_time: Optional[str] = None
    completed_date: Optional[str] = None
    completed_time: Optional[str] = None
    duration: Optional[float] = None
    assigned_team: Optional[str] = None
    assigned_technician: Optional[str] = None
    notes: Optional[str] = None
    services: Optional[dict[str, Any]] = None
    results: Optional[dict[str, Any]] = None
    attachments: Optional[list[dict[str, Any]]] = None

    emergency_ticket_number: Optional[str] = None
    priority: Optional[str] = None
    reported_by: Optional[str] = None
    contact_number: Optional[str] = None
    customer_complaints: Optional[list[str]] = None

    is_archived: bool = False
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VisitListResponse(BaseModel):
    items: list[VisitResponse]
    total: int


class VisitLogResponse(BaseModel):
    id: str
    visit_id: str
    action: str
    performed_by: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
