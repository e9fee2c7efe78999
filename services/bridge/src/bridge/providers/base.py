# services/bridge/src/bridge/providers/base.py
"""
Completion-provider abstraction.

A provider takes the recent conversation, a system prompt and optionally a
tool catalog, and returns either text, tool invocations, or both.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from ..models import Message


class ProviderName(str, Enum):
    CLAUDE = "claude"
    OPENAI = "openai"
    GEMINI = "gemini"


class ProviderError(Exception):
    """A completion request failed. Fatal to the current turn."""


class ProviderConfigurationError(ProviderError):
    """A provider cannot be constructed (unknown name or missing API key)."""


@dataclass
class ToolInvocation:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CompletionResponse:
    text: str = ""
    tokens_used: Optional[int] = None
    stop_reason: Optional[str] = None
    tool_invocations: List[ToolInvocation] = field(default_factory=list)


class CompletionProvider(ABC):
    """
    Base class for completion providers.

    ``tools`` is a provider-neutral list of ``{"name", "description",
    "input_schema"}`` dicts. ``tool_choice`` names a tool the model must call;
    None lets the model decide.
    """

    name: str

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    async def complete(
        self,
        messages: Sequence["Message"],
        system_prompt: str,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
    ) -> CompletionResponse:
        """Request the next assistant turn."""
