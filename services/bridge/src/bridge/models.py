# services/bridge/src/bridge/models.py

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .providers.base import ProviderName


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


## CONTENT BLOCKS ##


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A tool invocation requested by the completion model (or auto-chained)."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """The serialized outcome of one tool invocation, fed back to the model."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock], Field(discriminator="type")
]


## CATALOG MODELS ##


class Product(BaseModel):
    """Compact product summary surfaced to the caller from search results."""

    code: str
    name: Optional[str] = None
    price: Optional[Any] = None
    stock: Optional[Any] = None
    image_url: Optional[str] = None


class DeliveryMode(BaseModel):
    """Shipping option descriptor as returned for a cart."""

    code: str
    name: str = ""

    model_config = {"extra": "allow"}


## CONVERSATION MODELS ##


class MessageMetadata(BaseModel):
    products: Optional[List[Product]] = None
    tools_used: List[str] = Field(default_factory=list)
    tokens_used: Optional[int] = None
    provider: Optional[str] = None
    requires_reauth: bool = False
    error: bool = False


class Message(BaseModel):
    """
    One conversation entry.

    Content is plain text for ordinary turns, or an ordered list of typed
    blocks for tool exchanges.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant"]
    content: Union[str, List[ContentBlock]]
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Optional[MessageMetadata] = None

    @property
    def is_system_context(self) -> bool:
        """Assistant messages tagged with the ``system`` tool are pinned during pruning."""
        return (
            self.role == "assistant"
            and self.metadata is not None
            and "system" in self.metadata.tools_used
        )

    def text(self) -> Optional[str]:
        """Plain-text content, or None for block content."""
        return self.content if isinstance(self.content, str) else None


class Conversation(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


## CHAT MODELS ##


class ChatRequest(BaseModel):
    """
    Request model for the chat endpoint.

    Contains the message plus optional conversation, identity and provider
    information.
    """

    message: str = Field(..., min_length=1)
    conversation_id: Optional[str] = None
    user_id: Optional[str] = None
    is_authenticated: bool = False
    user_access_token: Optional[str] = None
    provider: Optional[ProviderName] = None


class ResponseMetadata(BaseModel):
    products_found: int = 0
    tools_used: List[str] = Field(default_factory=list)
    tokens_used: Optional[int] = None
    provider: Optional[str] = None
    requires_reauth: bool = False
    error: bool = False


class ChatResponse(BaseModel):
    """
    Response model for the chat endpoint.

    Contains the assistant reply and per-turn metadata.
    """

    conversation_id: str
    message: str
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)


class ClearResponse(BaseModel):
    success: bool = True
    message: str = "Conversation cleared"
