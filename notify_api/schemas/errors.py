"""Pydantic schemas for error responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error body shared by every non-2xx response (404, 429, 503, ...)."""

    code: int = Field(..., description="HTTP status code.")
    message: str = Field(..., description="HTTP reason phrase, e.g. 'Too Many Requests'.")
    details: str | None = Field(
        default=None,
        description="Human-readable explanation; for 429 includes the retry delay.",
    )
