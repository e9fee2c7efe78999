# services/bridge/src/bridge/orchestrator.py
"""
Tool-call orchestration.

One turn: append the user message, ask the completion provider for the next
action, execute the tools it asks for through the gateway (resolving the
conversation's cart, correcting delivery-mode codes and chaining dependent
checkout steps along the way), feed the results back and store the reply.
"""

import asyncio
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape
from libs.commerce_shared.guardrails import Guardrails
from libs.commerce_shared.logging import get_logger

from .config import BridgeConfig, config
from .gateway import ToolGateway, ToolResult
from .heuristics import (
    APOLOGY_REPLY,
    EMPTY_CART,
    EMPTY_REPLY,
    REAUTH_REPLY,
    correct_delivery_mode_code,
    decode_result,
    extract_cart_id,
    extract_order_code,
    find_order_code,
    is_auth_failure,
    is_order_inquiry,
    latest_order_code,
    parse_delivery_modes,
    parse_products,
)
from .models import (
    ChatRequest,
    ChatResponse,
    Message,
    MessageMetadata,
    Product,
    ResponseMetadata,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from .providers.base import CompletionProvider, ProviderError, ToolInvocation
from .session import ConversationNotFound, SessionStore
from .tools import (
    CART_MUTATING_TOOLS,
    TOOL_SPECS,
    ToolName,
    ToolSpec,
    catalog_for,
    parse_tool_name,
)

logger = get_logger(__name__)

# Steps run automatically after a successful predecessor
CHAINED_TOOLS = {
    ToolName.SET_DELIVERY_ADDRESS: ToolName.GET_DELIVERY_MODES,
    ToolName.SET_PAYMENT_DETAILS: ToolName.PLACE_ORDER,
}
PRODUCT_LISTING_TOOLS = frozenset(
    {
        ToolName.SEARCH_PRODUCTS,
        ToolName.SEARCH_PRODUCTS_ADVANCED,
        ToolName.GET_PRODUCTS_BY_CATEGORY,
    }
)


@dataclass
class CartResolution:
    """Outcome of resolve-or-create; exactly one of cart_id / error is set."""

    cart_id: Optional[str] = None
    error: Optional[ToolResult] = None


@dataclass
class TurnState:
    conversation_id: str
    caller_token: Optional[str]
    is_authenticated: bool
    provider_name: str
    tools_used: List[str] = field(default_factory=list)
    products: List[Product] = field(default_factory=list)
    tokens_used: Optional[int] = None
    requires_reauth: bool = False

    def add_tokens(self, tokens: Optional[int]) -> None:
        if tokens is not None:
            self.tokens_used = (self.tokens_used or 0) + tokens


class ChatOrchestrator:
    def __init__(
        self,
        sessions: SessionStore,
        gateway: ToolGateway,
        provider_factory,
        guardrails: Optional[Guardrails] = None,
        settings: BridgeConfig = config,
    ):
        self.sessions = sessions
        self.gateway = gateway
        self.provider_factory = provider_factory
        self.guardrails = guardrails
        self.settings = settings
        self.categories: Optional[List[Dict[str, Any]]] = None
        self.site_config: Optional[Dict[str, Any]] = None

        prompts_dir = os.path.join(os.path.dirname(__file__), "prompts")
        self.env = Environment(
            loader=FileSystemLoader(prompts_dir),
            autoescape=select_autoescape(),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        tpl_file = settings.system_prompt_template.split("/")[-1]
        self.system_tpl = self.env.get_template(tpl_file)
        logger.info(f"Loaded system prompt template: {tpl_file}")

    async def load_reference_data(self) -> None:
        """Fetch categories and site configuration once, for the system prompt."""
        result = await self.gateway.execute(ToolName.GET_CATEGORIES.value)
        payload = decode_result(result.content)
        if result.is_error or not isinstance(payload, dict):
            logger.warning("Categories unavailable", extra={"result": result.content})
        else:
            self.categories = payload.get("categories") or []

        result = await self.gateway.execute(ToolName.GET_SITE_CONFIG.value)
        payload = decode_result(result.content)
        if not result.is_error and isinstance(payload, dict):
            self.site_config = payload

        logger.info(
            "Reference data loaded",
            extra={
                "categories": len(self.categories or []),
                "site_config": self.site_config is not None,
            },
        )

    def render_system_prompt(
        self, user_id: Optional[str], is_authenticated: bool, tools: Sequence[ToolSpec]
    ) -> str:
        return self.system_tpl.render(
            user_id=user_id,
            is_authenticated=is_authenticated,
            tools=tools,
            categories=self.categories,
            site_config=self.site_config,
        )

    async def handle_message(self, request: ChatRequest) -> ChatResponse:
        """
        Run one conversational turn.

        Turns of the same conversation are serialized. A provider failure or
        an expired turn deadline yields an apology flagged with
        ``metadata.error``; the user's message stays stored, the apology
        does not.
        """
        conversation = self.sessions.get_or_create(
            request.conversation_id, request.user_id
        )
        conversation_id = conversation.id
        provider_name = (request.provider or self.settings.default_provider).value
        turn = TurnState(
            conversation_id=conversation_id,
            caller_token=request.user_access_token,
            is_authenticated=request.is_authenticated,
            provider_name=provider_name,
        )

        async with self.sessions.turn_lock(conversation_id):
            self.sessions.append_message(
                conversation_id, Message(role="user", content=request.message)
            )
            try:
                return await asyncio.wait_for(
                    self._run_turn(request, turn),
                    timeout=self.settings.turn_timeout_seconds,
                )
            except ProviderError as e:
                logger.error(
                    f"Completion provider failed: {e}",
                    extra={"conversation_id": conversation_id, "provider": provider_name},
                )
            except asyncio.TimeoutError:
                logger.error(
                    "Turn deadline exceeded",
                    extra={
                        "conversation_id": conversation_id,
                        "timeout_seconds": self.settings.turn_timeout_seconds,
                    },
                )

        return ChatResponse(
            conversation_id=conversation_id,
            message=APOLOGY_REPLY,
            metadata=ResponseMetadata(
                tools_used=turn.tools_used,
                tokens_used=turn.tokens_used,
                provider=provider_name,
                error=True,
            ),
        )

    async def _run_turn(self, request: ChatRequest, turn: TurnState) -> ChatResponse:
        conversation_id = turn.conversation_id
        provider: CompletionProvider = self.provider_factory.get(request.provider)
        turn.provider_name = provider.name

        history = list(self.sessions.get_messages(conversation_id))
        working = history[-self.settings.context_window:]

        catalog = catalog_for(turn.is_authenticated)
        tool_schemas = [spec.provider_schema() for spec in catalog]
        system_prompt = self.render_system_prompt(
            request.user_id, turn.is_authenticated, catalog
        )

        forced_tool, forced_code = self._forced_order_lookup(
            conversation_id, request, history
        )

        response = None
        for round_number in range(self.settings.max_tool_rounds + 1):
            final_round = round_number == self.settings.max_tool_rounds
            response = await provider.complete(
                working,
                system_prompt,
                tools=None if final_round else tool_schemas,
                tool_choice=forced_tool if round_number == 0 else None,
            )
            turn.add_tokens(response.tokens_used)

            if final_round or not response.tool_invocations:
                break

            tool_uses, tool_results = await self._execute_invocations(
                response.tool_invocations,
                turn,
                forced_code if round_number == 0 else None,
            )
            if turn.requires_reauth:
                logger.warning(
                    "Caller token rejected by backend",
                    extra={"conversation_id": conversation_id},
                )
                return self._finish(turn, REAUTH_REPLY)

            assistant_content: List[Any] = []
            if response.text:
                assistant_content.append(TextBlock(text=response.text))
            assistant_content.extend(tool_uses)
            working.append(Message(role="assistant", content=assistant_content))
            working.append(Message(role="user", content=tool_results))

        if not response.text:
            logger.warning(
                "Provider returned empty content",
                extra={"conversation_id": conversation_id, "provider": provider.name},
            )
        return self._finish(turn, response.text or EMPTY_REPLY)

    def _forced_order_lookup(
        self, conversation_id: str, request: ChatRequest, history: Sequence[Message]
    ) -> Tuple[Optional[str], Optional[str]]:
        """Force get-order-status for a signed-in order inquiry with a known code."""
        tracked = latest_order_code(history, self.settings.order_code_lookback)
        if tracked:
            self.sessions.set_last_order_code(conversation_id, tracked)

        if not request.is_authenticated or not is_order_inquiry(request.message):
            return None, None

        code = find_order_code(request.message) or tracked
        if code is None:
            code = self.sessions.get_last_order_code(conversation_id)
        if code is None:
            return None, None

        logger.info("Forcing order status lookup", extra={"order_code": code})
        return ToolName.GET_ORDER_STATUS.value, code

    async def _execute_invocations(
        self,
        invocations: Sequence[ToolInvocation],
        turn: TurnState,
        forced_code: Optional[str] = None,
    ) -> Tuple[List[ToolUseBlock], List[ToolResultBlock]]:
        tool_uses: List[ToolUseBlock] = []
        tool_results: List[ToolResultBlock] = []

        pending = [(inv.id, inv.name, dict(inv.arguments)) for inv in invocations]
        while pending:
            call_id, name, arguments = pending.pop(0)
            if (
                forced_code
                and name == ToolName.GET_ORDER_STATUS.value
                and not arguments.get("orderCode")
            ):
                arguments["orderCode"] = forced_code

            result = await self._execute_tool(name, arguments, turn)
            tool_uses.append(ToolUseBlock(id=call_id, name=name, input=arguments))
            tool_results.append(
                ToolResultBlock(
                    tool_use_id=call_id, content=result.content, is_error=result.is_error
                )
            )
            if turn.requires_reauth:
                break

            chained = CHAINED_TOOLS.get(parse_tool_name(name))
            if chained is not None and not result.is_error:
                logger.info(
                    f"Chaining {chained.value} after {name}",
                    extra={"conversation_id": turn.conversation_id},
                )
                pending.insert(0, (f"chain_{uuid.uuid4().hex}", chained.value, {}))

        return tool_uses, tool_results

    async def _execute_tool(
        self, name: str, arguments: Dict[str, Any], turn: TurnState
    ) -> ToolResult:
        conversation_id = turn.conversation_id
        tool = parse_tool_name(name)
        if tool is None:
            turn.tools_used.append(name)
            return await self.gateway.execute(name, arguments, turn.caller_token)

        spec = TOOL_SPECS[tool]
        if spec.internal:
            turn.tools_used.append(name)
            return ToolResult.error({"error": f"Tool {name} is not available"})
        if spec.requires_auth and not turn.is_authenticated:
            turn.tools_used.append(name)
            return ToolResult.error(
                {
                    "error": "Authentication required",
                    "message": "Please sign in to use this feature.",
                }
            )

        if tool == ToolName.GET_CART:
            turn.tools_used.append(name)
            cart_id = self.sessions.get_cart_id(conversation_id)
            if cart_id is None:
                return ToolResult.ok(EMPTY_CART)
            result = await self.gateway.execute(
                name, arguments, turn.caller_token, cart_id=cart_id
            )
        elif tool in CART_MUTATING_TOOLS:
            resolution = await self._resolve_cart(turn)
            turn.tools_used.append(name)
            if resolution.error is not None:
                result = resolution.error
            else:
                if tool == ToolName.SET_DELIVERY_MODE:
                    arguments = self._correct_delivery_mode(conversation_id, arguments)
                result = await self.gateway.execute(
                    name, arguments, turn.caller_token, cart_id=resolution.cart_id
                )
        else:
            turn.tools_used.append(name)
            cart_id = (
                self.sessions.get_cart_id(conversation_id) if spec.requires_cart else None
            )
            result = await self.gateway.execute(
                name, arguments, turn.caller_token, cart_id=cart_id
            )

        self._observe_result(tool, result, turn)
        return result

    def _observe_result(self, tool: ToolName, result: ToolResult, turn: TurnState) -> None:
        """Update turn and checkout state from one tool outcome."""
        conversation_id = turn.conversation_id
        if result.is_error:
            if is_auth_failure(result.content):
                turn.requires_reauth = True
            return

        payload = decode_result(result.content)
        if tool in PRODUCT_LISTING_TOOLS:
            turn.products.extend(parse_products(payload))
        elif tool == ToolName.GET_DELIVERY_MODES:
            modes = parse_delivery_modes(payload)
            self.sessions.set_delivery_modes(conversation_id, modes)
            logger.info(
                "Delivery modes stored",
                extra={"conversation_id": conversation_id, "modes": [m.code for m in modes]},
            )
        elif tool == ToolName.PLACE_ORDER:
            self.sessions.clear_cart(conversation_id)
            order_code = extract_order_code(payload)
            if order_code:
                self.sessions.set_last_order_code(conversation_id, order_code)
            logger.info(
                "Order placed",
                extra={"conversation_id": conversation_id, "order_code": order_code},
            )

    def _correct_delivery_mode(
        self, conversation_id: str, arguments: Dict[str, Any]
    ) -> Dict[str, Any]:
        requested = arguments.get("deliveryModeCode") or arguments.get(
            "delivery_mode_code"
        )
        if not requested:
            return arguments

        corrected = correct_delivery_mode_code(
            str(requested), self.sessions.get_delivery_modes(conversation_id)
        )
        if corrected != requested:
            logger.info(
                "Corrected delivery mode code",
                extra={"requested": requested, "corrected": corrected},
            )
        return {**arguments, "deliveryModeCode": corrected}

    async def _resolve_cart(self, turn: TurnState) -> CartResolution:
        """Return the conversation's cart, creating it on first use."""
        conversation_id = turn.conversation_id
        async with self.sessions.cart_lock(conversation_id):
            cart_id = self.sessions.get_cart_id(conversation_id)
            if cart_id:
                return CartResolution(cart_id=cart_id)

            turn.tools_used.append(ToolName.CREATE_CART.value)
            result = await self.gateway.execute(
                ToolName.CREATE_CART.value, {}, turn.caller_token
            )
            if result.is_error:
                return CartResolution(error=result)

            cart_id = extract_cart_id(
                decode_result(result.content), prefer_guid=not turn.caller_token
            )
            if not cart_id:
                return CartResolution(
                    error=ToolResult.error({"error": "Cart creation returned no cart id"})
                )

            self.sessions.set_cart_id(conversation_id, cart_id)
            logger.info(
                "Cart created", extra={"conversation_id": conversation_id, "cart_id": cart_id}
            )
            return CartResolution(cart_id=cart_id)

    def _finish(self, turn: TurnState, text: str) -> ChatResponse:
        reply = self.guardrails.sanitize_response(text) if self.guardrails else text
        metadata = MessageMetadata(
            products=turn.products or None,
            tools_used=turn.tools_used,
            tokens_used=turn.tokens_used,
            provider=turn.provider_name,
            requires_reauth=turn.requires_reauth,
        )
        try:
            self.sessions.append_message(
                turn.conversation_id,
                Message(role="assistant", content=reply, metadata=metadata),
            )
        except ConversationNotFound:
            logger.warning(
                "Conversation removed before the reply was stored",
                extra={"conversation_id": turn.conversation_id},
            )

        logger.info(
            "Turn completed",
            extra={
                "conversation_id": turn.conversation_id,
                "tools_used": turn.tools_used,
                "products_found": len(turn.products),
                "tokens_used": turn.tokens_used,
            },
        )
        return ChatResponse(
            conversation_id=turn.conversation_id,
            message=reply,
            metadata=ResponseMetadata(
                products_found=len(turn.products),
                tools_used=turn.tools_used,
                tokens_used=turn.tokens_used,
                provider=turn.provider_name,
                requires_reauth=turn.requires_reauth,
            ),
        )
