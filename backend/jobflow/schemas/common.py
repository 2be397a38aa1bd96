"""Common schemas used across the application."""

from typing import Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated response wrapper.

    Usage:
        response_model=PaginatedResponse[JobCardOut]
    """
    items: list[T]
    total: int
    limit: int
    offset: int


class ReasonBody(BaseModel):
    """Body for transitions that only carry a free-text reason."""
    reason: str = ""
