"""Company and branch schemas."""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class CompanyCreate(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class CompanyResponse(BaseModel):
    id: str
    company_id: Optional[str] = None
    company_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    is_archived: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BranchCreate(BaseModel):
    company_id: str = Field(..., min_length=1)
    branch_name: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1)
    location: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None


class BranchResponse(BaseModel):
    id: str
    branch_id: Optional[str] = None
    company_id: str
    branch_name: str
    city: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    is_archived: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
