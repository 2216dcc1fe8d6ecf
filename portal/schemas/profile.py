from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime
from uuid import UUID


class CompanyDetails(BaseModel):
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    company_phone: Optional[str] = None
    company_registration: Optional[str] = None
    contact_person: Optional[str] = None


class ProfileCreate(CompanyDetails):
    """Sent once after signup; id and email come from the identity token"""
    email: EmailStr


class ProfileUpdate(CompanyDetails):
    pass


class RoleUpdate(BaseModel):
    role: str  # vendor, admin


class ProfileOut(CompanyDetails):
    id: UUID
    email: str
    role: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
