"""Common schemas for AlertCase API."""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )


class PaginatedResponse(BaseSchema):
    """Base schema for paginated responses."""

    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def calculate_total_pages(cls, total: int, page_size: int) -> int:
        """Calculate total pages from total items and page size."""
        return (total + page_size - 1) // page_size if page_size > 0 else 0

