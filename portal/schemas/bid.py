from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from decimal import Decimal


class BidDocumentOut(BaseModel):
    id: UUID
    bid_id: UUID
    name: str
    file_size: int
    file_type: str
    created_at: datetime

    class Config:
        from_attributes = True


class BidOut(BaseModel):
    """Vendor view of a bid; admin notes are left out"""
    id: UUID
    rfp_id: UUID
    vendor_id: UUID
    amount: Decimal
    proposal: str
    status: str
    submitted_at: datetime
    updated_at: datetime
    documents: List[BidDocumentOut] = []

    class Config:
        from_attributes = True


class BidAdminOut(BidOut):
    admin_notes: Optional[str] = None


class BidSubmissionOut(BaseModel):
    bid: BidOut
    failed_documents: List[str] = []


class BidStatusUpdate(BaseModel):
    status: str  # expected: pending, under_review, shortlisted, rejected
    admin_notes: Optional[str] = None


class BidNotesUpdate(BaseModel):
    admin_notes: Optional[str] = None

