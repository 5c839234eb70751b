"""Contract schemas for request/response validation."""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, Any
from datetime import datetime

from app.schemas.types import CanonicalDate


class ServiceBatch(BaseModel):
    """A group of branches sharing one service package and visit quota."""
    batch_id: Optional[str] = None
    services: dict[str, Any] = Field(default_factory=dict)
    branch_ids: list[str] = Field(default_factory=list)
    regular_visits_per_year: int = Field(0, ge=0)
    emergency_visits_per_year: int = Field(0, ge=0)
    emergency_visit_cost: float = Field(0, ge=0)
    notes: Optional[str] = None


class ContractCreate(BaseModel):
    """Schema for creating a contract."""
    company_id: str = Field(..., min_length=1)
    contract_start_date: Optional[CanonicalDate] = None
    contract_end_date: Optional[CanonicalDate] = None
    contract_period_months: Optional[int] = Field(None, gt=0)
    contract_value: Optional[float] = Field(None, ge=0)
    contract_document: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    service_batches: list[ServiceBatch] = Field(default_factory=list)

    @model_validator(mode="after")
    def needs_duration(self):
        if not self.contract_end_date and not self.contract_period_months:
            raise ValueError("a contract needs an end date or a period in months")
        return self


class RenewContractRequest(BaseModel):
    """Optional overrides for the successor contract."""
    contract_value: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    contract_document: Optional[dict[str, Any]] = None
    service_batches: Optional[list[ServiceBatch]] = None


class ArchiveRequest(BaseModel):
    reason: str = Field("Contract archived", min_length=1)


class AddendumCreate(BaseModel):
    description: str = Field(..., min_length=1)
    services: dict[str, Any] = Field(default_factory=dict)
    effective_date: Optional[CanonicalDate] = None
    contract_value: Optional[float] = None
    notes: Optional[str] = None


class ContractResponse(BaseModel):
    """Schema for contract response."""
    id: str
    contract_id: Optional[str] = None
    company_id: str
    contract_start_date: Optional[str] = None
    contract_end_date: Optional[str] = None
    contract_period_months: Optional[int] = None
    contract_value: Optional[float] = None
    contract_document: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    service_batches: list[dict[str, Any]] = Field(default_factory=list)
    status: Optional[str] = None
    is_renewed: Optional[bool] = False
    original_contract_id: Optional[str] = None
    renewed_contract_id: Optional[str] = None
    addendums: list[dict[str, Any]] = Field(default_factory=list)
    contract_history: list[dict[str, Any]] = Field(default_factory=list)
    is_archived: bool = False
    archive_reason: Optional[str] = None
    archived_by: Optional[str] = None
    archived_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ContractListResponse(BaseModel):
    items: list[ContractResponse]
    total: int


class RenewalResponse(BaseModel):
    success: bool
    new_contract: Optional[ContractResponse] = None
    archived_contract: Optional[ContractResponse] = None
    error: Optional[str] = None
    needs_reconciliation: bool = False


class ObligationResponse(BaseModel):
    batch_id: str
    branch_ids: list[str]
    regular_visits: int
    emergency_visits: int
    emergency_budget: float
    services: dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True
