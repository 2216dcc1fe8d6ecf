from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from portal.db.session import get_db
from portal.db.models import RFP, Bid, Contract, Profile
from portal.core.deps import get_current_admin, get_current_vendor
from portal.schemas.stats import AdminStats, VendorStats
from portal.utils.clock import utcnow
from portal.utils.status_machine import BidStateMachine, BidStatus, ContractStatus, RFPStatus

router = APIRouter(prefix="/stats", tags=["stats"])

# Bids an admin still has to look at
AWAITING_REVIEW = [BidStatus.PENDING.value, BidStatus.UNDER_REVIEW.value]


@router.get("/admin", response_model=AdminStats)
def admin_stats(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_admin)
):
    return {
        "total_rfps": db.query(RFP).count(),
        "published_rfps": db.query(RFP).filter(RFP.status == RFPStatus.PUBLISHED.value).count(),
        "total_bids": db.query(Bid).count(),
        "pending_bids": db.query(Bid).filter(Bid.status.in_(AWAITING_REVIEW)).count(),
        "total_vendors": db.query(Profile).filter(Profile.role == "vendor").count(),
        "active_contracts": db.query(Contract).filter(
            Contract.status == ContractStatus.ACTIVE.value
        ).count(),
    }


@router.get("/vendor", response_model=VendorStats)
def vendor_stats(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_vendor)
):
    """
    The caller's bids by outcome, plus how many RFPs are open for bidding
    right now (published with the deadline still ahead).
    """
    own_bids = db.query(Bid).filter(Bid.vendor_id == current_user.id)
    return {
        "total_bids": own_bids.count(),
        "pending_bids": own_bids.filter(Bid.status.in_([s.value for s in BidStateMachine.OPEN])).count(),
        "approved_bids": own_bids.filter(Bid.status == BidStatus.APPROVED.value).count(),
        "open_rfps": db.query(RFP).filter(
            RFP.status == RFPStatus.PUBLISHED.value,
            RFP.submission_deadline > utcnow(),
        ).count(),
    }
