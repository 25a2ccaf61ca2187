from typing import Generic, List, TypeVar
from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginationMeta(BaseModel):
    skip: int
    take: int
    page: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T] = Field(default_factory=list)  # type: ignore[assignment]
    pagination: PaginationMeta


def build_pagination(skip: int, take: int, total: int) -> PaginationMeta:
    total_pages = max(1, (total + take - 1) // take)
    return PaginationMeta(
        skip=skip,
        take=take,
        page=skip // take + 1,
        total=total,
        total_pages=total_pages,
        has_next=skip + take < total,
        has_prev=skip > 0,
    )
