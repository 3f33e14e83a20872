"""
Common API Response Schemas

Pagination models shared by every list endpoint.
"""
from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Pagination Models
# ============================================================================

class PaginationParams(BaseModel):
    """
    Standardized pagination parameters for list endpoints.

    Uses offset-based pagination which is simple and predictable.
    """
    offset: int = Field(
        default=0,
        ge=0,
        description="Number of records to skip (for pagination)"
    )
    limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum number of records to return (1-500)"
    )

    @field_validator('limit')
    @classmethod
    def validate_limit(cls, v: int) -> int:
        """Ensure limit is within acceptable range."""
        if v < 1:
            return 1
        if v > 500:
            return 500
        return v


class PaginationMeta(BaseModel):
    """Pagination metadata included in list responses."""
    total: int = Field(..., description="Total number of records matching the query")
    offset: int = Field(..., description="Current offset (number of records skipped)")
    limit: int = Field(..., description="Maximum records per page")
    returned: int = Field(..., description="Number of records in this response")
