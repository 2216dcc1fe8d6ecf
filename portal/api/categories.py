from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List

from portal.db.session import get_db
from portal.db.models import Category
from portal.schemas.rfp import CategoryCreate, CategoryOut
from portal.core.deps import get_current_admin, get_current_user, get_lifecycle
from portal.services.lifecycle import LifecycleManager

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("/", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    return db.query(Category).order_by(Category.name).all()


@router.post("/", response_model=CategoryOut)
def create_category(
    data: CategoryCreate,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    try:
        return lifecycle.create_category(data.name, data.description)
    except IntegrityError:
        lifecycle.db.rollback()
        raise HTTPException(status_code=409, detail="Category already exists")
