"""
Shared response models: the error envelope and the health report.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error body returned by every exception handler.

    Example:
        {
            "error": "not_found",
            "message": "address '42 nowhere lane' was not found",
            "details": {"resource": "address"},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    vision: str = Field(description="Vision status: available, unavailable, circuit_open")
    vision_provider: str = Field(description="Active vision provider: gemini or mock")
    uptime_seconds: float = Field(description="Seconds since service started")
