from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from portal.db.session import get_db
from portal.db.models import RFP, Bid
from portal.schemas.rfp import (
    RFPCreate, RFPDetailOut, RFPOut, RFPStatusUpdate, RFPSubmissionOut, RFPUpdate,
)
from portal.schemas.bid import BidAdminOut, BidSubmissionOut
from portal.core.deps import get_current_admin, get_current_user, get_current_vendor, get_lifecycle
from portal.services.lifecycle import LifecycleManager, UploadedDocument
from portal.utils.permissions import can_view_rfp, is_admin
from portal.utils.pagination import PaginatedResponse, PaginationParams, paginate

router = APIRouter(prefix="/rfps", tags=["rfps"])


async def read_uploads(files: Optional[List[UploadFile]]) -> List[UploadedDocument]:
    documents = []
    for file in files or []:
        if not file.filename:
            continue
        documents.append(UploadedDocument(
            name=file.filename,
            content=await file.read(),
            content_type=file.content_type or "application/octet-stream",
        ))
    return documents


@router.post("/", response_model=RFPDetailOut)
def create_rfp(
    data: RFPCreate,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    """
    Create an RFP in 'draft' status, or 'published' right away with publish_now.
    Attach documents separately with POST /rfps/{rfp_id}/documents.
    """
    result = lifecycle.create_rfp(
        created_by=current_user.id,
        title=data.title,
        description=data.description,
        category_id=data.category_id,
        submission_deadline=data.submission_deadline,
        estimated_value=data.estimated_value,
        requirements=data.requirements,
        evaluation_criteria=data.evaluation_criteria,
        publish_now=data.publish_now,
    )
    return result.record


@router.get("/", response_model=PaginatedResponse[RFPOut])
def list_rfps(
    status: Optional[str] = None,
    category_id: Optional[UUID] = None,
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """
    List RFPs, newest first. Vendors never see drafts.
    """
    query = db.query(RFP)
    if not is_admin(current_user):
        query = query.filter(RFP.status != "draft")
    if status:
        query = query.filter(RFP.status == status)
    if category_id:
        query = query.filter(RFP.category_id == category_id)
    query = query.order_by(RFP.created_at.desc())
    return paginate(query, pagination)


@router.get("/{rfp_id}", response_model=RFPDetailOut)
def get_rfp(
    rfp_id: UUID,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    rfp = db.query(RFP).filter(RFP.id == rfp_id).first()
    if not rfp or not can_view_rfp(current_user, rfp.status):
        raise HTTPException(status_code=404, detail="RFP not found")
    return rfp


@router.put("/{rfp_id}", response_model=RFPDetailOut)
def update_rfp(
    rfp_id: UUID,
    data: RFPUpdate,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    """
    Update RFP details. Only draft, published or closed RFPs can be edited,
    and the deadline is fixed once bids have come in.
    """
    return lifecycle.update_rfp(rfp_id, **data.model_dump(exclude_unset=True))


@router.put("/{rfp_id}/status", response_model=RFPOut)
def update_rfp_status(
    rfp_id: UUID,
    status_update: RFPStatusUpdate,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    """
    Move the RFP along its state machine. Awarding happens through
    POST /bids/{bid_id}/award.
    """
    return lifecycle.set_rfp_status(rfp_id, status_update.status)


@router.delete("/{rfp_id}")
def delete_rfp(
    rfp_id: UUID,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    """Refused with 409 once any bid exists"""
    lifecycle.delete_rfp(rfp_id)
    return {"message": "RFP deleted", "rfp_id": str(rfp_id)}


@router.post("/{rfp_id}/documents", response_model=RFPSubmissionOut)
async def upload_rfp_documents(
    rfp_id: UUID,
    files: List[UploadFile] = File(...),
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    documents = await read_uploads(files)
    result = lifecycle.add_rfp_documents(rfp_id, current_user.id, documents)
    return {"rfp": result.record, "failed_documents": result.failed_documents}


@router.get("/{rfp_id}/bids", response_model=List[BidAdminOut])
def list_bids_for_rfp(
    rfp_id: UUID,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_admin),
):
    rfp = db.query(RFP).filter(RFP.id == rfp_id).first()
    if not rfp:
        raise HTTPException(status_code=404, detail="RFP not found")
    return db.query(Bid).filter(Bid.rfp_id == rfp_id).order_by(Bid.submitted_at.asc()).all()


@router.post("/{rfp_id}/bids", response_model=BidSubmissionOut)
async def submit_bid(
    rfp_id: UUID,
    amount: str = Form(...),
    proposal: str = Form(...),
    files: Optional[List[UploadFile]] = File(None),
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_vendor),
):
    """
    Submit a bid with optional attachments. Attachments that fail to upload
    are listed in failed_documents; the bid itself is kept.
    """
    documents = await read_uploads(files)
    result = lifecycle.submit_bid(
        rfp_id=rfp_id,
        vendor_id=current_user.id,
        amount=amount,
        proposal=proposal,
        documents=documents,
    )
    return {"bid": result.record, "failed_documents": result.failed_documents}
