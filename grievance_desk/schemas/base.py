"""Base schemas and common types for the Grievance Desk API."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


# =============================================================================
# BASE SCHEMAS
# =============================================================================


class GrievanceBaseModel(BaseModel):
    """Base model with common configuration. Serialized keys are camelCase."""

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode
        populate_by_name=True,
        use_enum_values=True,
        alias_generator=to_camel,
    )


class ApiResponse(GrievanceBaseModel, Generic[T]):
    """Envelope for every response, success or failure."""

    success: bool = True
    message: str | None = None
    data: T | None = None

    @classmethod
    def ok(cls, data: T | None = None, message: str | None = None) -> "ApiResponse[T]":
        return cls(success=True, message=message, data=data)


def error_body(message: str, errors: list[dict] | None = None) -> dict:
    """Envelope for failures, as a plain dict for JSONResponse."""
    body: dict = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


# =============================================================================
# PAGINATION
# =============================================================================


class PaginationParams(BaseModel):
    """Query parameters for pagination."""

    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    page_size: int = Field(
        default=20, ge=1, le=100, description="Items per page"
    )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class Page(GrievanceBaseModel, Generic[T]):
    """A page of results with counts."""

    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def create(cls, items: list[T], total: int, page: int, page_size: int) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=(total + page_size - 1) // page_size,
        )
