from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from portal.db.session import get_db
from portal.schemas.profile import ProfileCreate, ProfileOut, ProfileUpdate, RoleUpdate
from portal.core.deps import get_current_admin, get_current_user, get_token_subject
from portal.services import profile_service
from portal.utils.permissions import ROLES
from portal.utils.pagination import PaginatedResponse, PaginationParams, paginate

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.post("/", response_model=ProfileOut)
def create_profile(
    data: ProfileCreate,
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_token_subject),
):
    """
    Called once right after signup. Creates the vendor profile and its company
    details in a single write.
    """
    try:
        return profile_service.create_profile(
            db,
            user_id=user_id,
            email=data.email,
            role="vendor",
            **data.model_dump(exclude={"email"}),
        )
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")


@router.get("/me", response_model=ProfileOut)
def get_my_profile(current_user=Depends(get_current_user)):
    return current_user


@router.put("/me", response_model=ProfileOut)
def update_my_profile(
    data: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return profile_service.update_profile(db, current_user.id, **data.model_dump(exclude_unset=True))


@router.get("/", response_model=PaginatedResponse[ProfileOut])
def list_profiles(
    role: Optional[str] = None,
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_admin),
):
    query = profile_service.list_profiles(db, role=role)
    return paginate(query, pagination)


@router.put("/{user_id}/role", response_model=ProfileOut)
def update_user_role(
    user_id: UUID,
    role_update: RoleUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_admin),
):
    """Change a user's role. Admins cannot demote themselves."""
    if role_update.role not in ROLES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid role. Must be one of: {', '.join(ROLES.keys())}"
        )
    if user_id == current_user.id and role_update.role != "admin":
        raise HTTPException(status_code=400, detail="Admins cannot remove their own admin role")
    return profile_service.set_role(db, user_id, role_update.role)
