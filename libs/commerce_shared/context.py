# libs/commerce_shared/context.py
"""
Caller identity and tracing for one chat turn.

The correlation id of the request being served lives in a context variable
so every log line written while serving it can carry the id.
"""

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional

ANONYMOUS_USER = "anonymous"

current_correlation_id: ContextVar[Optional[str]] = ContextVar(
    "current_correlation_id", default=None
)


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    """Token from an ``Authorization: Bearer <token>`` header value, if any."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


@dataclass
class RequestContext:
    """
    Who is asking, and under which correlation id.

    A caller counts as authenticated exactly when it presented an access
    token. The token itself is never logged; ``to_dict`` omits it.
    """

    user_id: Optional[str] = None
    access_token: Optional[str] = None
    conversation_id: Optional[str] = None
    correlation_id: Optional[str] = None

    @classmethod
    def resolve(
        cls,
        user_id: Optional[str],
        header_token: Optional[str],
        body_token: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> "RequestContext":
        """Header token wins over a token sent in the request body."""
        return cls(
            user_id=user_id,
            access_token=header_token or body_token,
            conversation_id=conversation_id,
            correlation_id=current_correlation_id.get(),
        )

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    @property
    def identity(self) -> str:
        """Key used for per-caller limits."""
        return self.user_id or ANONYMOUS_USER

    def to_dict(self) -> dict:
        return {
            "user_id": self.identity,
            "is_authenticated": self.is_authenticated,
            "conversation_id": self.conversation_id,
            "correlation_id": self.correlation_id,
        }
