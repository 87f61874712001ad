"""Schemas for rate limit rejection responses."""

from pydantic import BaseModel, Field


class RateLimitErrorBody(BaseModel):
    """JSON body returned with a 429 response."""

    error: str = "Rate limit exceeded"
    message: str
    retry_after: int = Field(serialization_alias="retryAfter", ge=0)
    reset_at: str = Field(serialization_alias="resetAt", description="ISO-8601 UTC reset time")
    limit_type: str | None = Field(
        default=None,
        serialization_alias="limitType",
        description="Namespace of the limit that denied a composite check",
    )
