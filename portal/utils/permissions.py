"""
Role-based access control utilities
"""
from fastapi import HTTPException
from portal.db.models import Profile, Bid

ROLES = {
    "admin": 100,   # Manage RFPs, review bids, award contracts
    "vendor": 20,   # Submit and track own bids
}


def is_admin(user: Profile) -> bool:
    return user.role == "admin"


def is_vendor(user: Profile) -> bool:
    return user.role == "vendor"


def require_admin(user: Profile):
    """Raise exception if user is not an admin"""
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="Requires admin role")


def require_vendor(user: Profile):
    if not is_vendor(user):
        raise HTTPException(status_code=403, detail="Only vendors can submit bids")


def can_view_bid(user: Profile, bid: Bid) -> bool:
    """Vendors see their own bids, admins see all"""
    return is_admin(user) or bid.vendor_id == user.id


def can_view_rfp(user: Profile, rfp_status: str) -> bool:
    """Drafts are admin-only; everything else is public"""
    return is_admin(user) or rfp_status != "draft"
