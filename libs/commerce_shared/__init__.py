"""
Shared utilities for the commerce chat bridge.

This package provides the resilience primitives (retry, cache, health),
the guardrail filter, middleware, logging and models used by the service.
"""

# Caching
from .cache import BoundedTTLCache

# Configuration
from .config import BaseServiceConfig

# Context helpers
from .context import RequestContext, parse_bearer

# Error helpers
from .errors import guardrail_error, not_found_error, service_error

# Guardrails
from .guardrails import (
    GuardrailConfig,
    Guardrails,
    GuardrailViolation,
)

# Health check
from .health import HealthMonitor, HealthSnapshot, format_health_response

# Logging
from .logging import get_logger

# Metrics
from .metrics import Metrics

# Middleware
from .middleware import CorrelationIdMiddleware, MetricsMiddleware

# Models
from .models import ErrorResponse, HealthResponse, HealthStatus

# Retry
from .retry import RetryExhaustedError, RetryPolicy, with_retry

__all__ = [
    # Caching
    "BoundedTTLCache",
    # Configuration
    "BaseServiceConfig",
    # Context
    "RequestContext",
    "parse_bearer",
    # Errors
    "guardrail_error",
    "not_found_error",
    "service_error",
    # Guardrails
    "GuardrailConfig",
    "Guardrails",
    "GuardrailViolation",
    # Health
    "HealthMonitor",
    "HealthSnapshot",
    "format_health_response",
    # Logging
    "get_logger",
    # Middleware
    "CorrelationIdMiddleware",
    "MetricsMiddleware",
    # Metrics
    "Metrics",
    # Models
    "ErrorResponse",
    "HealthResponse",
    "HealthStatus",
    # Retry
    "RetryExhaustedError",
    "RetryPolicy",
    "with_retry",
]
