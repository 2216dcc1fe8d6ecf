from pydantic import BaseModel


class AdminStats(BaseModel):
    """Counters for the admin dashboard"""
    total_rfps: int
    published_rfps: int
    total_bids: int
    pending_bids: int
    total_vendors: int
    active_contracts: int


class VendorStats(BaseModel):
    """Counters for a vendor's own dashboard"""
    total_bids: int
    pending_bids: int
    approved_bids: int
    open_rfps: int
