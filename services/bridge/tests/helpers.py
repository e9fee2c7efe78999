# services/bridge/tests/helpers.py
# Test data factories and assertion helpers shared by unit and integration tests

import json
from typing import Any, Dict

from bridge.models import Message, MessageMetadata
from bridge.providers.base import CompletionResponse, ToolInvocation

# ============== Test Data Factories ==============


def create_text_response(text: str, tokens: int = 10) -> CompletionResponse:
    """Completion that only carries text."""
    return CompletionResponse(text=text, tokens_used=tokens, stop_reason="end_turn")


def create_tool_response(*calls, text: str = "") -> CompletionResponse:
    """Completion requesting tools; each call is ``(name, arguments)``."""
    return CompletionResponse(
        text=text,
        tokens_used=10,
        stop_reason="tool_use",
        tool_invocations=[
            ToolInvocation(id=f"call_{i}_{name}", name=name, arguments=args)
            for i, (name, args) in enumerate(calls)
        ],
    )


def create_user_message(content: str) -> Message:
    return Message(role="user", content=content)


def create_system_message(content: str) -> Message:
    """Assistant message pinned during pruning."""
    return Message(
        role="assistant",
        content=content,
        metadata=MessageMetadata(tools_used=["system"]),
    )


SAMPLE_ADDRESS = {
    "firstName": "Ada",
    "lastName": "Lovelace",
    "line1": "1 Main Street",
    "town": "New York",
    "postalCode": "10001",
    "countryIsocode": "US",
    "regionIsocode": "US-NY",
}

SAMPLE_PAYMENT = {
    "accountHolderName": "Ada Lovelace",
    "cardNumber": "4111111111111111",
    "cardTypeCode": "visa",
    "expiryMonth": "12",
    "expiryYear": "2030",
    "cvv": "123",
    "billingAddress": SAMPLE_ADDRESS,
}


# ============== Assertion Helpers ==============


def assert_response_format(data: Dict[str, Any]) -> None:
    """Assert a /chat response body has the documented shape."""
    assert "conversation_id" in data
    assert "message" in data
    metadata = data["metadata"]
    for key in (
        "products_found",
        "tools_used",
        "tokens_used",
        "provider",
        "requires_reauth",
        "error",
    ):
        assert key in metadata, f"missing metadata.{key}"


def tool_results_in(call: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Map tool_use_id to decoded content for the tool results fed to a provider call."""
    results = {}
    for message in call["messages"]:
        if message.role != "user" or isinstance(message.content, str):
            continue
        for block in message.content:
            if block.type == "tool_result":
                results[block.tool_use_id] = {
                    "content": json.loads(block.content),
                    "is_error": block.is_error,
                }
    return results


def tool_uses_in(call: Dict[str, Any]):
    """Tool-use blocks of the assistant messages fed to a provider call."""
    return [
        block
        for message in call["messages"]
        if message.role == "assistant" and not isinstance(message.content, str)
        for block in message.content
        if block.type == "tool_use"
    ]
