# services/bridge/src/bridge/providers/gemini.py

import json
from typing import Any, Dict, List, Optional, Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from libs.commerce_shared.logging import get_logger

from ..models import Message
from .base import CompletionProvider, CompletionResponse, ProviderError

logger = get_logger(__name__)


class GeminiProvider(CompletionProvider):
    """
    Google Gemini chat, text only.

    Tools and tool_choice are accepted for interface compatibility and
    ignored; Gemini turns never produce tool invocations.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, max_tokens, temperature)
        genai.configure(api_key=api_key)

    async def complete(
        self,
        messages: Sequence[Message],
        system_prompt: str,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
    ) -> CompletionResponse:
        if not messages:
            raise ProviderError("Gemini requires at least one message")

        model = genai.GenerativeModel(
            model_name=self.model,
            generation_config=genai.GenerationConfig(
                max_output_tokens=self.max_tokens,
                temperature=self.temperature,
            ),
            system_instruction=system_prompt,
        )
        chat = model.start_chat(history=format_history(messages[:-1]))

        try:
            response = await chat.send_message_async(message_text(messages[-1]))
            text = response.text
        except (google_exceptions.GoogleAPIError, ValueError) as e:
            logger.error(f"Gemini request failed: {e}", extra={"model": self.model})
            raise ProviderError(f"Gemini request failed: {e}") from e

        usage = getattr(response, "usage_metadata", None)
        stop_reason = None
        if response.candidates:
            stop_reason = response.candidates[0].finish_reason.name

        return CompletionResponse(
            text=text,
            tokens_used=getattr(usage, "total_token_count", None),
            stop_reason=stop_reason,
        )


def message_text(message: Message) -> str:
    if isinstance(message.content, str):
        return message.content
    return json.dumps([block.model_dump() for block in message.content])


def format_history(messages: Sequence[Message]) -> List[Dict[str, Any]]:
    return [
        {
            "role": "model" if message.role == "assistant" else "user",
            "parts": [message_text(message)],
        }
        for message in messages
    ]
