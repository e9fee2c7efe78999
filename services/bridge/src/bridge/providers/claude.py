# services/bridge/src/bridge/providers/claude.py

from typing import Any, Dict, List, Optional, Sequence

import anthropic
from libs.commerce_shared.logging import get_logger

from ..models import Message
from .base import (
    CompletionProvider,
    CompletionResponse,
    ProviderError,
    ToolInvocation,
)

logger = get_logger(__name__)


class ClaudeProvider(CompletionProvider):
    """Anthropic Messages API with native tool use."""

    name = "claude"

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        super().__init__(api_key, model, max_tokens, temperature)
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)

    async def complete(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
    ) -> CompletionResponse:
        params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": format_messages(messages),
        }
        if tools:
            params["tools"] = list(tools)
            if tool_choice:
                params["tool_choice"] = {"type": "tool", "name": tool_choice}

        try:
            response = await self._client.messages.create(**params)
        except anthropic.APIError as e:
            logger.error(f"Claude request failed: {e}", extra={"model": self.model})
            raise ProviderError(f"Claude request failed: {e}") from e

        text_parts = []
        invocations = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                invocations.append(
                    ToolInvocation(id=block.id, name=block.name, arguments=dict(block.input))
                )

        usage = getattr(response, "usage", None)
        return CompletionResponse(
            text="\n".join(text_parts),
            tokens_used=getattr(usage, "output_tokens", None),
            stop_reason=response.stop_reason,
            tool_invocations=invocations,
        )


def format_messages(messages: Sequence[Message]) -> List[Dict[str, Any]]:
    """
    Convert conversation messages to Anthropic message params.

    Leading assistant messages are dropped; the API expects the first
    message to come from the user.
    """
    formatted = []
    for message in messages:
        if not formatted and message.role != "user":
            continue
        if isinstance(message.content, str):
            content: Any = message.content
        else:
            content = [block.model_dump() for block in message.content]
        formatted.append({"role": message.role, "content": content})
    return formatted
