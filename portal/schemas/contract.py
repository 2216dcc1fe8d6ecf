from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal


class AwardContractRequest(BaseModel):
    """Terms of the contract created when a bid is awarded"""
    contract_value: Decimal
    start_date: date
    end_date: date
    terms: Optional[str] = None


class ContractStatusUpdate(BaseModel):
    status: str  # completed, terminated


class ContractOut(BaseModel):
    id: UUID
    rfp_id: UUID
    bid_id: UUID
    vendor_id: UUID
    contract_value: Decimal
    start_date: date
    end_date: date
    status: str
    terms: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
