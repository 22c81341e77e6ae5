"""
EchoLog Backend — Shared Response Schemas
===========================================

What:  Error envelope and health check models shared by every router.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "unsupported_format",
            "message": "Unsupported file format '.ogg'. Allowed: .mp3, .wav",
            "details": null,
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[str] = Field(
        default=None, description="Upstream or diagnostic detail, when available"
    )
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Service and dependency status returned by GET /health."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    gemini: str = Field(description="Gemini API status: available, unavailable")
    blob_backend: str = Field(description="Configured blob store backend: local or gcs")
    uptime_seconds: float = Field(description="Seconds since service started")
