from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from portal.db.session import get_db
from portal.db.models import Bid
from portal.schemas.bid import BidAdminOut, BidNotesUpdate, BidOut, BidStatusUpdate
from portal.schemas.contract import AwardContractRequest, ContractOut
from portal.core.deps import get_current_admin, get_current_user, get_current_vendor, get_lifecycle
from portal.services.lifecycle import LifecycleManager
from portal.utils.permissions import can_view_bid, is_admin
from portal.utils.pagination import PaginatedResponse, PaginationParams, paginate

router = APIRouter(prefix="/bids", tags=["bids"])


@router.get("/", response_model=PaginatedResponse[BidAdminOut])
def list_bids(
    status: Optional[str] = None,
    rfp_id: Optional[UUID] = None,
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_admin),
):
    """List all bids for review, newest first"""
    query = db.query(Bid)
    if status:
        query = query.filter(Bid.status == status)
    if rfp_id:
        query = query.filter(Bid.rfp_id == rfp_id)
    query = query.order_by(Bid.submitted_at.desc())
    return paginate(query, pagination)


@router.get("/mine", response_model=List[BidOut])
def list_my_bids(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_vendor),
):
    """All bids submitted by the current vendor"""
    return db.query(Bid).filter(Bid.vendor_id == current_user.id).order_by(Bid.submitted_at.desc()).all()


@router.get("/{bid_id}")
def get_bid(
    bid_id: UUID,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Bid details; admin notes are only included for admins"""
    bid = db.query(Bid).filter(Bid.id == bid_id).first()
    if not bid or not can_view_bid(current_user, bid):
        raise HTTPException(status_code=404, detail="Bid not found")
    schema = BidAdminOut if is_admin(current_user) else BidOut
    return schema.model_validate(bid).model_dump(mode="json")


@router.put("/{bid_id}/status", response_model=BidAdminOut)
def update_bid_status(
    bid_id: UUID,
    payload: BidStatusUpdate,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    """
    Set a bid's review status and notes. 'approved' is only reachable by
    awarding the contract.
    """
    return lifecycle.set_bid_status(bid_id, payload.status, payload.admin_notes)


@router.put("/{bid_id}/notes", response_model=BidAdminOut)
def update_bid_notes(
    bid_id: UUID,
    payload: BidNotesUpdate,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    return lifecycle.save_admin_notes(bid_id, payload.admin_notes)


@router.post("/{bid_id}/withdraw", response_model=BidOut)
def withdraw_bid(
    bid_id: UUID,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_vendor),
):
    """Withdraw own bid while the RFP is still published"""
    return lifecycle.withdraw_bid(bid_id, current_user.id)


@router.post("/{bid_id}/award", response_model=ContractOut)
def award_contract(
    bid_id: UUID,
    award_request: AwardContractRequest,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    """
    Award the RFP to this bid: creates the contract, approves the bid,
    marks the RFP awarded, rejects the remaining open bids and notifies
    the vendor, all in one transaction.
    """
    return lifecycle.award_contract(
        bid_id,
        contract_value=award_request.contract_value,
        start_date=award_request.start_date,
        end_date=award_request.end_date,
        terms=award_request.terms,
    )
