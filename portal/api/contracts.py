from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from portal.db.session import get_db
from portal.db.models import Contract
from portal.schemas.contract import ContractOut, ContractStatusUpdate
from portal.core.deps import get_current_admin, get_current_user, get_lifecycle
from portal.services.lifecycle import LifecycleManager
from portal.utils.permissions import is_admin
from portal.utils.pagination import PaginatedResponse, PaginationParams, paginate

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.get("/", response_model=PaginatedResponse[ContractOut])
def list_contracts(
    status: Optional[str] = None,
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Admins see every contract, vendors only their own"""
    query = db.query(Contract)
    if not is_admin(current_user):
        query = query.filter(Contract.vendor_id == current_user.id)
    if status:
        query = query.filter(Contract.status == status)
    query = query.order_by(Contract.created_at.desc())
    return paginate(query, pagination)


@router.get("/{contract_id}", response_model=ContractOut)
def get_contract(
    contract_id: UUID,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    contract = db.query(Contract).filter(Contract.id == contract_id).first()
    if not contract or not (is_admin(current_user) or contract.vendor_id == current_user.id):
        raise HTTPException(status_code=404, detail="Contract not found")
    return contract


@router.put("/{contract_id}/status", response_model=ContractOut)
def update_contract_status(
    contract_id: UUID,
    payload: ContractStatusUpdate,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    """Mark an active contract completed or terminated"""
    return lifecycle.set_contract_status(contract_id, payload.status)
