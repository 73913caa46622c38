from typing import Annotated, Generic, List, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel, ConfigDict, Field

from loginguard.schemas.base_schema import SortOrder

T = TypeVar("T")


class DataWrapper(BaseModel, Generic[T]):
    data: T


class PaginationParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number (1-based)")
    page_size: int = Field(
        default=20, ge=1, le=100, description="Items per page (max 100)"
    )
    # Allowed fields depend on the listing; services validate them
    sort_by: Optional[str] = Field(default=None, description="Field to sort by")
    sort_order: SortOrder = Field(default=SortOrder.DESC, description="Sort order")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PaginatedResponse(BaseModel, Generic[T]):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: List[T]
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(
        cls, items: Sequence, total_items: int, pagination: PaginationParams
    ) -> "PaginatedResponse":
        total_pages = (total_items + pagination.page_size - 1) // pagination.page_size
        return cls(
            items=list(items),
            total_items=total_items,
            total_pages=total_pages,
            current_page=pagination.page,
            page_size=pagination.page_size,
            has_next=pagination.page < total_pages,
            has_prev=pagination.page > 1,
        )


def get_pagination_params(
    page: Annotated[int, Query(ge=1, description="Page number (1-based)")] = 1,
    page_size: Annotated[
        int, Query(ge=1, le=100, description="Items per page (max 100)")
    ] = 20,
    sort_by: Annotated[Optional[str], Query(description="Field to sort by")] = None,
    sort_order: Annotated[
        str, Query(pattern="^(asc|desc)$", description="Sort order")
    ] = "desc",
) -> PaginationParams:
    return PaginationParams(
        page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order
    )
