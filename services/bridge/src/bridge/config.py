"""Bridge service configuration."""

import json
from typing import List, Optional

from libs.commerce_shared.config import BaseServiceConfig
from libs.commerce_shared.guardrails import GuardrailConfig
from libs.commerce_shared.retry import RetryPolicy
from pydantic import Field, field_validator

from .providers.base import ProviderName


class BridgeConfig(BaseServiceConfig):
    """Bridge service specific configuration."""

    # Service settings
    port: int = Field(8080, env="PORT")

    # Commerce backend (OCC REST API)
    commerce_base_url: str = Field(
        "https://localhost:9002/occ/v2", env="COMMERCE_BASE_URL"
    )
    commerce_base_site: str = Field("electronics", env="COMMERCE_BASE_SITE")
    commerce_client_id: Optional[str] = Field(None, env="COMMERCE_CLIENT_ID")
    commerce_client_secret: Optional[str] = Field(None, env="COMMERCE_CLIENT_SECRET")
    commerce_timeout_seconds: float = Field(15.0, env="COMMERCE_TIMEOUT_SECONDS")
    commerce_verify_ssl: bool = Field(True, env="COMMERCE_VERIFY_SSL")

    # Resilience
    retry_max_attempts: int = Field(3, env="RETRY_MAX_ATTEMPTS")
    retry_initial_delay: float = Field(1.0, env="RETRY_INITIAL_DELAY")
    retry_max_delay: float = Field(5.0, env="RETRY_MAX_DELAY")
    retry_backoff_factor: float = Field(2.0, env="RETRY_BACKOFF_FACTOR")
    cache_ttl_seconds: float = Field(300.0, env="CACHE_TTL_SECONDS")
    cache_max_size: int = Field(1000, env="CACHE_MAX_SIZE")
    health_check_interval: float = Field(60.0, env="HEALTH_CHECK_INTERVAL")

    # Guardrails
    max_message_length: int = Field(2000, env="MAX_MESSAGE_LENGTH")
    max_messages_per_minute: int = Field(20, env="MAX_MESSAGES_PER_MINUTE")
    max_conversations_per_user: int = Field(10, env="MAX_CONVERSATIONS_PER_USER")

    # Sessions
    session_max_messages: int = Field(50, env="SESSION_MAX_MESSAGES")
    session_max_conversations: int = Field(1000, env="SESSION_MAX_CONVERSATIONS")

    # Orchestration
    context_window: int = Field(10, env="CONTEXT_WINDOW")
    order_code_lookback: int = Field(5, env="ORDER_CODE_LOOKBACK")
    max_tool_rounds: int = Field(3, ge=1, env="MAX_TOOL_ROUNDS")
    turn_timeout_seconds: float = Field(90.0, env="TURN_TIMEOUT_SECONDS")

    # Completion providers
    default_provider: ProviderName = Field(ProviderName.CLAUDE, env="DEFAULT_PROVIDER")
    claude_model: str = Field("claude-3-5-sonnet-20241022", env="CLAUDE_MODEL")
    openai_model: str = Field("gpt-4-turbo-preview", env="OPENAI_MODEL")
    gemini_model: str = Field("gemini-1.5-pro", env="GEMINI_MODEL")
    anthropic_api_key: Optional[str] = Field(None, env="ANTHROPIC_API_KEY")
    openai_api_key: Optional[str] = Field(None, env="OPENAI_API_KEY")
    google_api_key: Optional[str] = Field(None, env="GOOGLE_API_KEY")
    max_tokens: int = Field(2048, env="MAX_TOKENS")
    temperature: float = Field(0.7, env="TEMPERATURE")

    # CORS settings
    allowed_origins: List[str] = Field(
        default=["http://localhost:4200", "http://localhost:3000"],
        env="ALLOWED_ORIGINS",
    )

    # Prompt template settings
    system_prompt_template: str = Field(
        "system_prompt.j2", env="SYSTEM_PROMPT_TEMPLATE"
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_origins(cls, v):
        if isinstance(v, str):
            if v.startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(",")]
        return v

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            initial_delay=self.retry_initial_delay,
            max_delay=self.retry_max_delay,
            backoff_factor=self.retry_backoff_factor,
        )

    def guardrail_config(self) -> GuardrailConfig:
        return GuardrailConfig(
            max_message_length=self.max_message_length,
            max_messages_per_minute=self.max_messages_per_minute,
            max_conversations_per_user=self.max_conversations_per_user,
        )


# Singleton instance
config = BridgeConfig()
