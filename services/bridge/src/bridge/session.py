"""
Session management for the bridge service.

The SessionStore owns every conversation together with its checkout state
(active cart, last fetched delivery modes, last referenced order code) and
the per-conversation locks. All state is process-local and lives for the
lifetime of the process.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from libs.commerce_shared.logging import get_logger

from .models import Conversation, DeliveryMode, Message

logger = get_logger(__name__)


class ConversationNotFound(KeyError):
    """Raised when appending to a conversation that does not exist."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")


@dataclass
class CheckoutState:
    cart_id: Optional[str] = None
    delivery_modes: List[DeliveryMode] = field(default_factory=list)
    last_order_code: Optional[str] = None


@dataclass
class _Locks:
    turn: asyncio.Lock = field(default_factory=asyncio.Lock)
    cart: asyncio.Lock = field(default_factory=asyncio.Lock)


def prune_messages(messages: List[Message], limit: int) -> List[Message]:
    """
    Keep at most ``limit`` messages.

    System-context messages are kept first; the remaining slots go to the
    most recent other messages. Relative order is preserved.
    """
    if len(messages) <= limit:
        return messages

    pinned = [i for i, m in enumerate(messages) if m.is_system_context]
    if len(pinned) >= limit:
        keep = set(pinned[-limit:])
    else:
        others = [i for i, m in enumerate(messages) if not m.is_system_context]
        keep = set(pinned) | set(others[-(limit - len(pinned)):])

    return [m for i, m in enumerate(messages) if i in keep]


class SessionStore:
    """
    In-memory store for conversations and their checkout state.

    Conversations are bounded to ``max_messages`` messages each; once more
    than ``max_conversations`` exist, the least recently updated ones are
    evicted together with their checkout state and locks.
    """

    def __init__(self, max_messages: int = 50, max_conversations: int = 1000):
        self.max_messages = max_messages
        self.max_conversations = max_conversations
        self._conversations: Dict[str, Conversation] = {}
        self._checkout: Dict[str, CheckoutState] = {}
        self._locks: Dict[str, _Locks] = {}

    # --- Conversations ----------------------------------------------------

    def create_conversation(
        self, owner_id: Optional[str] = None, conversation_id: Optional[str] = None
    ) -> Conversation:
        conversation = Conversation(
            id=conversation_id or str(uuid.uuid4()), owner_id=owner_id
        )
        self._conversations[conversation.id] = conversation
        self._checkout[conversation.id] = CheckoutState()
        logger.debug("Created conversation", extra={"conversation_id": conversation.id})
        self._evict_oldest()
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def get_or_create(
        self, conversation_id: Optional[str], owner_id: Optional[str] = None
    ) -> Conversation:
        """Return the conversation, creating it (under the given id if any) when unknown."""
        if conversation_id:
            conversation = self._conversations.get(conversation_id)
            if conversation is not None:
                return conversation
        return self.create_conversation(owner_id, conversation_id)

    def append_message(self, conversation_id: str, message: Message) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)

        conversation.messages.append(message)
        conversation.updated_at = datetime.now(timezone.utc)
        conversation.messages = prune_messages(conversation.messages, self.max_messages)

    def get_messages(self, conversation_id: str) -> Tuple[Message, ...]:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return ()
        return tuple(conversation.messages)

    def clear(self, conversation_id: str) -> bool:
        """Empty messages and reset checkout state. The id stays valid."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return False

        conversation.messages = []
        conversation.updated_at = datetime.now(timezone.utc)
        self._checkout[conversation_id] = CheckoutState()
        logger.info("Cleared conversation", extra={"conversation_id": conversation_id})
        return True

    def delete(self, conversation_id: str) -> bool:
        existed = self._conversations.pop(conversation_id, None) is not None
        self._checkout.pop(conversation_id, None)
        self._locks.pop(conversation_id, None)
        return existed

    def stats(self) -> Dict[str, Any]:
        return {
            "total": len(self._conversations),
            "total_messages": sum(
                len(c.messages) for c in self._conversations.values()
            ),
            "active_carts": sum(1 for s in self._checkout.values() if s.cart_id),
        }

    def _evict_oldest(self) -> None:
        overflow = len(self._conversations) - self.max_conversations
        if overflow <= 0:
            return

        oldest = sorted(self._conversations.values(), key=lambda c: c.updated_at)
        for conversation in oldest[:overflow]:
            self.delete(conversation.id)
        logger.info("Evicted old conversations", extra={"count": overflow})

    # --- Checkout state ---------------------------------------------------

    def _state(self, conversation_id: str) -> Optional[CheckoutState]:
        """Checkout state of a live conversation; None once it was deleted or evicted."""
        if conversation_id not in self._conversations:
            logger.debug(
                "Ignoring checkout update for unknown conversation",
                extra={"conversation_id": conversation_id},
            )
            return None
        return self._checkout.setdefault(conversation_id, CheckoutState())

    def get_cart_id(self, conversation_id: str) -> Optional[str]:
        state = self._checkout.get(conversation_id)
        return state.cart_id if state else None

    def set_cart_id(self, conversation_id: str, cart_id: str) -> None:
        state = self._state(conversation_id)
        if state is not None:
            state.cart_id = cart_id

    def clear_cart(self, conversation_id: str) -> None:
        """Forget the active cart and its delivery modes (after an order is placed)."""
        state = self._state(conversation_id)
        if state is not None:
            state.cart_id = None
            state.delivery_modes = []

    def get_delivery_modes(self, conversation_id: str) -> Tuple[DeliveryMode, ...]:
        state = self._checkout.get(conversation_id)
        return tuple(state.delivery_modes) if state else ()

    def set_delivery_modes(
        self, conversation_id: str, modes: Sequence[DeliveryMode]
    ) -> None:
        state = self._state(conversation_id)
        if state is not None:
            state.delivery_modes = list(modes)

    def get_last_order_code(self, conversation_id: str) -> Optional[str]:
        state = self._checkout.get(conversation_id)
        return state.last_order_code if state else None

    def set_last_order_code(self, conversation_id: str, order_code: str) -> None:
        state = self._state(conversation_id)
        if state is not None:
            state.last_order_code = order_code

    # --- Locks ------------------------------------------------------------

    def _locks_for(self, conversation_id: str) -> _Locks:
        # unknown ids get throwaway locks so nothing outlives its conversation
        if conversation_id not in self._conversations:
            return _Locks()
        return self._locks.setdefault(conversation_id, _Locks())

    def turn_lock(self, conversation_id: str) -> asyncio.Lock:
        """Serializes turns within one conversation."""
        return self._locks_for(conversation_id).turn

    def cart_lock(self, conversation_id: str) -> asyncio.Lock:
        """Guards resolve-or-create of the conversation's cart."""
        return self._locks_for(conversation_id).cart
