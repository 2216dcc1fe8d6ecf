from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from uuid import UUID


# ------------------------
# Category Schemas
# ------------------------
class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class CategoryOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


# ------------------------
# RFP Schemas
# ------------------------
class RFPBase(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category_id: UUID
    submission_deadline: datetime
    estimated_value: Optional[Decimal] = None
    requirements: Optional[str] = None
    evaluation_criteria: Optional[str] = None


class RFPCreate(RFPBase):
    """created_by comes from the current user"""
    publish_now: bool = False


class RFPUpdate(BaseModel):
    """Schema for editing RFP details (draft/published/closed only)"""
    title: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[UUID] = None
    submission_deadline: Optional[datetime] = None
    estimated_value: Optional[Decimal] = None
    requirements: Optional[str] = None
    evaluation_criteria: Optional[str] = None


class RFPStatusUpdate(BaseModel):
    status: str  # draft, published, closed, cancelled


class RFPDocumentOut(BaseModel):
    id: UUID
    rfp_id: UUID
    name: str
    file_size: int
    file_type: str
    created_at: datetime

    class Config:
        from_attributes = True


class RFPOut(RFPBase):
    id: UUID
    reference_number: str
    status: str
    created_by: UUID
    created_at: datetime
    updated_at: datetime
    published_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RFPDetailOut(RFPOut):
    category: Optional[CategoryOut] = None
    documents: List[RFPDocumentOut] = []


class RFPSubmissionOut(BaseModel):
    rfp: RFPDetailOut
    failed_documents: List[str] = []
