"""Standardized API Response Schemas"""

from typing import Generic, List, Sequence, TypeVar
from pydantic import BaseModel, Field


T = TypeVar('T')


class SuccessResponse(BaseModel, Generic[T]):
    """
    Standard success response envelope.

    Example:
        {
            "success": true,
            "data": {...},
            "message": "Operation successful"
        }
    """
    success: bool = True
    data: T
    message: str = "Operation successful"


class PaginationMeta(BaseModel):
    """Pagination metadata"""
    page: int = Field(..., ge=1, description="Current page number")
    page_size: int = Field(..., ge=1, le=500, description="Items per page")
    total: int = Field(..., ge=0, description="Total number of items")
    total_pages: int = Field(..., ge=0, description="Total number of pages")


class PaginatedResponse(BaseModel, Generic[T]):
    """
    Paginated response with metadata.

    Example:
        {
            "success": true,
            "data": [...],
            "meta": {"page": 1, "page_size": 100, "total": 250, "total_pages": 3},
            "message": "Operation successful"
        }
    """
    success: bool = True
    data: List[T]
    meta: PaginationMeta
    message: str = "Operation successful"

    @classmethod
    def paginate(cls, items: Sequence[T], page: int, limit: int) -> "PaginatedResponse[T]":
        """Slice an already-loaded list into one page"""
        total = len(items)
        start = (page - 1) * limit
        return cls(
            data=list(items[start:start + limit]),
            meta=PaginationMeta(
                page=page,
                page_size=limit,
                total=total,
                total_pages=(total + limit - 1) // limit,
            ),
        )
