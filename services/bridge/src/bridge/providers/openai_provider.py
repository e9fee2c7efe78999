# services/bridge/src/bridge/providers/openai_provider.py

import json
from typing import Any, Dict, List, Optional, Sequence

import openai
from libs.commerce_shared.logging import get_logger

from ..models import Message, TextBlock, ToolResultBlock, ToolUseBlock
from .base import (
    CompletionProvider,
    CompletionResponse,
    ProviderError,
    ToolInvocation,
)

logger = get_logger(__name__)


class OpenAIProvider(CompletionProvider):
    """OpenAI chat completions with function calling."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        super().__init__(api_key, model, max_tokens, temperature)
        self._client = client or openai.AsyncOpenAI(api_key=api_key)

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
            "messages": format_messages(messages, system_prompt),
        }
        if tools:
            params["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool["name"],
                        "description": tool["description"],
                        "parameters": tool["input_schema"],
                    },
                }
                for tool in tools
            ]
            if tool_choice:
                params["tool_choice"] = {
                    "type": "function",
                    "function": {"name": tool_choice},
                }

        try:
            response = await self._client.chat.completions.create(**params)
        except openai.OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}", extra={"model": self.model})
            raise ProviderError(f"OpenAI request failed: {e}") from e

        if not response.choices:
            raise ProviderError("OpenAI returned no choices")

        choice = response.choices[0]
        invocations = []
        for call in choice.message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning(
                    "Malformed tool arguments from model",
                    extra={"tool": call.function.name},
                )
                arguments = {}
            invocations.append(
                ToolInvocation(id=call.id, name=call.function.name, arguments=arguments)
            )

        usage = getattr(response, "usage", None)
        return CompletionResponse(
            text=choice.message.content or "",
            tokens_used=getattr(usage, "total_tokens", None),
            stop_reason=choice.finish_reason,
            tool_invocations=invocations,
        )


def format_messages(
    messages: Sequence[Message], system_prompt: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Convert conversation messages to chat-completion message params.

    Assistant tool_use blocks become ``tool_calls``; user tool_result blocks
    become one ``tool`` message each.
    """
    formatted: List[Dict[str, Any]] = []
    if system_prompt:
        formatted.append({"role": "system", "content": system_prompt})

    for message in messages:
        if isinstance(message.content, str):
            formatted.append({"role": message.role, "content": message.content})
            continue

        texts = [b.text for b in message.content if isinstance(b, TextBlock)]
        if message.role == "assistant":
            tool_calls = [
                {
                    "id": b.id,
                    "type": "function",
                    "function": {"name": b.name, "arguments": json.dumps(b.input)},
                }
                for b in message.content
                if isinstance(b, ToolUseBlock)
            ]
            entry: Dict[str, Any] = {
                "role": "assistant",
                "content": "\n".join(texts) or None,
            }
            if tool_calls:
                entry["tool_calls"] = tool_calls
            formatted.append(entry)
            continue

        for block in message.content:
            if isinstance(block, ToolResultBlock):
                formatted.append(
                    {
                        "role": "tool",
                        "tool_call_id": block.tool_use_id,
                        "content": block.content,
                    }
                )
        if texts:
            formatted.append({"role": "user", "content": "\n".join(texts)})

    return formatted
