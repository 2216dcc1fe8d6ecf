"""
Pagination for list endpoints: skip/limit query parameters in, a page
envelope out.
"""
from typing import Generic, TypeVar
from pydantic import BaseModel
from fastapi import Query

T = TypeVar('T')

MAX_PAGE_SIZE = 200


class PaginationParams:
    """
    Query parameters shared by every list endpoint

    Usage:
        @router.get("/rfps/")
        def list_rfps(pagination: PaginationParams = Depends()):
            return paginate(query, pagination)
    """
    def __init__(
        self,
        skip: int = Query(0, ge=0, description="Rows to skip"),
        limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE, description=f"Page size (max {MAX_PAGE_SIZE})")
    ):
        self.skip = skip
        self.limit = limit


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of a list plus the size of the whole result"""
    items: list[T]
    total: int
    skip: int
    limit: int
    has_more: bool


def paginate(query, pagination: PaginationParams) -> dict:
    """
    Fetch one page of an ordered query.

    The total is counted with the ORDER BY stripped.
    """
    total = query.order_by(None).count()
    items = query.offset(pagination.skip).limit(pagination.limit).all()
    return {
        "items": items,
        "total": total,
        "skip": pagination.skip,
        "limit": pagination.limit,
        "has_more": pagination.skip + len(items) < total,
    }
