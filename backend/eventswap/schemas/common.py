"""
Common Pydantic schemas
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response"""
    status: str


class ReadyResponse(BaseModel):
    """Readiness check response"""
    status: str
    database: str
    redis: str


class ErrorResponse(BaseModel):
    """Error body rendered by the API exception handlers"""
    error: str = Field(..., description="Human-readable message")
    code: str = Field(..., description="Stable machine-readable error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Structured context")
    trace_id: str = Field(..., description="Request trace id")


class PaginationMeta(BaseModel):
    page: int
    per_page: int
    total: int
