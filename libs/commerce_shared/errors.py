# libs/commerce_shared/errors.py
"""
HTTP exceptions with the bridge's structured error body.

Every rejection the API returns is an ``ErrorResponse`` dict placed in
``HTTPException.detail``; the app's exception handler renders it as the body.
"""

from typing import Optional, Union

from fastapi import HTTPException, status

from .guardrails import (
    BLOCKED_CONTENT,
    CONVERSATION_LIMIT,
    INJECTION,
    LENGTH,
    OFF_TOPIC,
    RATE_LIMIT,
    GuardrailViolation,
)
from .models import ErrorResponse

_GUARDRAIL_TITLES = {
    LENGTH: "Invalid message",
    BLOCKED_CONTENT: "Invalid message",
    INJECTION: "Invalid message",
    OFF_TOPIC: "Off-topic message",
    RATE_LIMIT: "Rate limit exceeded",
    CONVERSATION_LIMIT: "Conversation limit exceeded",
}


def guardrail_error(violation: GuardrailViolation) -> HTTPException:
    """
    Map a guardrail rejection to an HTTP exception.

    Throttling violations become 429, content violations 400. The body
    carries the violation type as ``code``.

    Args:
        violation: The rejection raised by the guardrail pipeline

    Returns:
        HTTPException with structured error content
    """
    status_code = (
        status.HTTP_429_TOO_MANY_REQUESTS
        if violation.is_throttling
        else status.HTTP_400_BAD_REQUEST
    )
    title = _GUARDRAIL_TITLES.get(violation.violation_type, "Invalid message")
    return HTTPException(
        status_code=status_code,
        detail=ErrorResponse(
            error=title, detail=violation.message, code=violation.violation_type
        ).model_dump(),
    )


def not_found_error(kind: str, key: Union[str, int], hint: Optional[str] = None) -> HTTPException:
    """404 for an unknown conversation (or any other keyed resource)."""
    message = f"{kind.capitalize()} '{key}' does not exist"
    if hint:
        message = f"{message}: {hint}"
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=ErrorResponse(error="Not Found", detail=message).model_dump(),
    )


def service_error(
    message: str = "The chat service failed to process the request",
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
) -> HTTPException:
    """
    Generic failure of the bridge itself.

    Used for unexpected orchestrator exceptions (500) and for requests that
    arrive before the process finished starting (503).
    """
    return HTTPException(
        status_code=status_code,
        detail=ErrorResponse(error="Service Error", detail=message).model_dump(),
    )
