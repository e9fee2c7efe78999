"""
Shared Pydantic models used across the bridge service.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error response model used across all endpoints.

    Provides a consistent error format with a human-readable error title,
    a detail message and, for guardrail rejections, a machine-readable code.

    Example:
        {
            "error": "Rate limit exceeded",
            "detail": "Maximum 20 messages per minute.",
            "code": "rate_limit"
        }
    """

    error: str = Field(..., description="Error title or type")
    detail: Optional[str] = Field(None, description="Human-readable error details")
    code: Optional[str] = Field(None, description="Machine-readable rejection code")


class HealthStatus(str, Enum):
    """
    Tri-state health signal.

    Produced by the HealthMonitor from the most recent evaluation window and
    reported by the /health endpoint.
    """

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """
    Standard health check response model for /health endpoints.

    Example:
        {
            "status": "healthy",
            "version": "1.0.0",
            "details": {
                "last_check": "2025-01-01T12:00:00+00:00",
                "api_latency_ms": 182.4,
                "error_rate": 0.0,
                "cache_hit_rate": 0.8
            }
        }
    """

    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Service version identifier")
    details: Dict[str, Any] = Field(
        default_factory=dict, description="Service-specific health details"
    )
