# libs/commerce_shared/guardrails.py
"""
Guardrails and safety mechanisms for chat traffic.

Inbound messages pass a short-circuiting validation pipeline (length,
blocked content, prompt injection, rate limit, conversation limit, topic
relevance). Outbound assistant text is always sanitized for PII.

Rate-limit and conversation-limit state is process-local.
"""

import re
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Pattern, Set

from pydantic import BaseModel, Field

from .context import ANONYMOUS_USER
from .logging import get_logger

logger = get_logger(__name__)

REDACTED = "[REDACTED]"

# Violation types. The two throttling ones map to HTTP 429, the rest to 400.
LENGTH = "length"
BLOCKED_CONTENT = "blocked_content"
INJECTION = "injection"
RATE_LIMIT = "rate_limit"
CONVERSATION_LIMIT = "conversation_limit"
OFF_TOPIC = "off_topic"

THROTTLING_VIOLATIONS = frozenset({RATE_LIMIT, CONVERSATION_LIMIT})


class GuardrailViolation(Exception):
    """
    Exception raised when input violates safety guardrails.

    This can include:
    - Oversized messages
    - Prohibited content or injection attempts
    - Rate limiting or conversation limit violations
    - Off-topic requests
    """

    def __init__(self, message: str, violation_type: str = "general"):
        self.message = message
        self.violation_type = violation_type
        super().__init__(self.message)

    @property
    def is_throttling(self) -> bool:
        """True for rejections a caller should back off from and retry later."""
        return self.violation_type in THROTTLING_VIOLATIONS

    def __str__(self):
        return f"Guardrail violation ({self.violation_type}): {self.message}"


# Credential/admin terms, destructive SQL and jailbreak vocabulary
BLOCKED_PATTERNS: List[Pattern] = [
    re.compile(r"\b(jailbreak|ignore\s+instructions|forget\s+previous|act\s+as)\b", re.IGNORECASE),
    re.compile(r"\b(sql\s+injection|drop\s+table|delete\s+from)\b", re.IGNORECASE),
    re.compile(r"\b(admin|root|sudo|password|token|secret|api[_-]?key)\b", re.IGNORECASE),
]

# Role-spoofing tokens and instruction-override phrasing
INJECTION_PATTERNS: List[Pattern] = [
    re.compile(r"system:", re.IGNORECASE),
    re.compile(r"assistant:", re.IGNORECASE),
    re.compile(r"\[INST\]", re.IGNORECASE),
    re.compile(r"\[/INST\]", re.IGNORECASE),
    re.compile(r"<\|im_start\|>", re.IGNORECASE),
    re.compile(r"<\|im_end\|>", re.IGNORECASE),
    re.compile(r"ignore\s+(all\s+)?(previous|above|prior)\s+instructions", re.IGNORECASE),
    re.compile(r"disregard\s+(all\s+)?previous", re.IGNORECASE),
    re.compile(r"forget\s+everything", re.IGNORECASE),
    re.compile(r"you\s+are\s+now", re.IGNORECASE),
    re.compile(r"new\s+instructions", re.IGNORECASE),
]

COMMERCE_KEYWORDS = [
    "product", "order", "cart", "buy", "purchase", "price", "shipping",
    "delivery", "return", "category", "promotion", "discount", "sale",
    "stock", "available", "camera", "lens", "webcam", "electronics",
]

GREETING_PATTERN = re.compile(r"^(hi|hello|hey|thanks|thank you|goodbye|bye)", re.IGNORECASE)
QUESTION_PATTERN = re.compile(r"\b(what|how|when|where|which|can|do|does|is|are)\b", re.IGNORECASE)

OFF_TOPIC_PATTERNS: List[Pattern] = [
    re.compile(r"write\s+(a\s+)?(code|script|program)", re.IGNORECASE),
    re.compile(r"create\s+(a\s+|an\s+)?(website|app|application)", re.IGNORECASE),
    re.compile(r"political|religious|medical\s+advice|legal\s+advice", re.IGNORECASE),
]

CREDIT_CARD_PATTERN = re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")
PHONE_PATTERN = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")


class GuardrailConfig(BaseModel):
    """Tunable guardrail limits."""

    max_message_length: int = Field(2000, ge=1)
    max_messages_per_minute: int = Field(20, ge=1)
    max_conversations_per_user: int = Field(10, ge=1)
    rate_limit_window_seconds: float = Field(60.0, gt=0)
    safe_email_domain: str = "example.com"


@dataclass
class _RateWindow:
    count: int
    reset_at: float


@dataclass
class _Tracking:
    windows: Dict[str, _RateWindow] = field(default_factory=dict)
    conversations: Dict[str, Set[str]] = field(default_factory=dict)


class Guardrails:
    """
    Inbound validation pipeline and outbound sanitizer.

    Every check raises GuardrailViolation on failure; ``validate_request``
    runs them in order and stops at the first failure.
    """

    def __init__(
        self,
        config: Optional[GuardrailConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or GuardrailConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._tracking = _Tracking()

        domain = re.escape(self.config.safe_email_domain)
        self._email_pattern = re.compile(
            rf"\b[A-Za-z0-9._%+-]+@(?!{domain}\b)[A-Za-z0-9.-]+\.[A-Za-z]{{2,}}\b"
        )

    # --- Inbound ------------------------------------------------------------

    def validate_request(
        self,
        message: str,
        user_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> None:
        """
        Run the full inbound pipeline.

        Raises:
            GuardrailViolation: At the first failing check
        """
        try:
            self.validate_message_content(message)
            self.check_rate_limit(user_id)
            self.check_conversation_limit(user_id, conversation_id)
            self.validate_topic(message)
        except GuardrailViolation as violation:
            logger.warning(
                "Guardrail rejected message",
                extra={
                    "violation_type": violation.violation_type,
                    "reason": violation.message,
                    "user_id": user_id or ANONYMOUS_USER,
                },
            )
            raise

        logger.debug("All guardrails passed", extra={"user_id": user_id or ANONYMOUS_USER})

    def validate_message_content(self, message: str) -> None:
        """Check length, blocked patterns and prompt-injection patterns."""
        max_length = self.config.max_message_length
        if len(message) > max_length:
            raise GuardrailViolation(
                f"Message exceeds maximum length of {max_length} characters",
                violation_type=LENGTH,
            )

        for pattern in BLOCKED_PATTERNS:
            if pattern.search(message):
                logger.warning("Blocked pattern detected", extra={"pattern": pattern.pattern})
                raise GuardrailViolation(
                    "Message contains prohibited content", violation_type=BLOCKED_CONTENT
                )

        if detect_prompt_injection(message):
            raise GuardrailViolation(
                "Potential prompt injection detected", violation_type=INJECTION
            )

    def check_rate_limit(self, user_id: Optional[str]) -> None:
        """Fixed-window message counter per identity."""
        user_key = user_id or ANONYMOUS_USER
        now = self._clock()
        limit = self.config.max_messages_per_minute

        with self._lock:
            window = self._tracking.windows.get(user_key)
            if window is None or now >= window.reset_at:
                self._tracking.windows[user_key] = _RateWindow(
                    count=1, reset_at=now + self.config.rate_limit_window_seconds
                )
                return

            if window.count >= limit:
                raise GuardrailViolation(
                    f"Rate limit exceeded. Maximum {limit} messages per minute.",
                    violation_type=RATE_LIMIT,
                )
            window.count += 1

    def check_conversation_limit(
        self, user_id: Optional[str], conversation_id: Optional[str] = None
    ) -> None:
        """Reject new conversations once an identity tracks too many."""
        user_key = user_id or ANONYMOUS_USER
        limit = self.config.max_conversations_per_user

        with self._lock:
            conversations = self._tracking.conversations.setdefault(user_key, set())
            if conversation_id:
                conversations.add(conversation_id)
                return

            if len(conversations) >= limit:
                raise GuardrailViolation(
                    f"Maximum {limit} concurrent conversations reached",
                    violation_type=CONVERSATION_LIMIT,
                )

    def track_conversation(self, user_id: Optional[str], conversation_id: str) -> None:
        """Record a server-generated conversation id against its owner."""
        with self._lock:
            self._tracking.conversations.setdefault(user_id or ANONYMOUS_USER, set()).add(
                conversation_id
            )

    def validate_topic(self, message: str) -> None:
        """Reject a short list of clearly off-domain requests."""
        if is_on_topic(message):
            return

        if any(pattern.search(message) for pattern in OFF_TOPIC_PATTERNS):
            raise GuardrailViolation(
                "This assistant is focused on helping with product inquiries and orders",
                violation_type=OFF_TOPIC,
            )

    # --- Outbound -----------------------------------------------------------

    def sanitize_response(self, response: str) -> str:
        """Redact card numbers, foreign e-mail addresses and phone numbers."""
        sanitized = CREDIT_CARD_PATTERN.sub(REDACTED, response)
        sanitized = self._email_pattern.sub(REDACTED, sanitized)
        sanitized = PHONE_PATTERN.sub(REDACTED, sanitized)
        return sanitized

    def reset(self) -> None:
        """Drop all rate-limit windows and tracked conversations."""
        with self._lock:
            self._tracking = _Tracking()


def detect_prompt_injection(message: str) -> bool:
    return any(pattern.search(message) for pattern in INJECTION_PATTERNS)


def is_on_topic(message: str) -> bool:
    """
    Permissive relevance heuristic.

    Commerce keywords, greetings and interrogatives count as on-topic.
    """
    lower_message = message.lower()
    if any(keyword in lower_message for keyword in COMMERCE_KEYWORDS):
        return True
    return bool(GREETING_PATTERN.search(message) or QUESTION_PATTERN.search(message))
