# services/bridge/src/bridge/providers/factory.py

from typing import Dict, Optional, Tuple, Type, Union

from libs.commerce_shared.logging import get_logger

from ..config import BridgeConfig
from .base import CompletionProvider, ProviderConfigurationError, ProviderName
from .claude import ClaudeProvider
from .gemini import GeminiProvider
from .openai_provider import OpenAIProvider

logger = get_logger(__name__)

PROVIDER_CLASSES: Dict[ProviderName, Type[CompletionProvider]] = {
    ProviderName.CLAUDE: ClaudeProvider,
    ProviderName.OPENAI: OpenAIProvider,
    ProviderName.GEMINI: GeminiProvider,
}


class ProviderFactory:
    """
    Builds and caches one provider instance per (provider, model) pair.

    Raises ProviderConfigurationError for unknown provider names or when the
    provider's API key is not configured.
    """

    def __init__(self, settings: BridgeConfig):
        self.settings = settings
        self._providers: Dict[Tuple[ProviderName, str], CompletionProvider] = {}

    def get(self, name: Union[ProviderName, str, None] = None) -> CompletionProvider:
        try:
            provider_name = ProviderName(name or self.settings.default_provider)
        except ValueError as e:
            raise ProviderConfigurationError(f"Unsupported AI provider: {name}") from e

        model = self._model_for(provider_name)
        key = (provider_name, model)
        if key in self._providers:
            return self._providers[key]

        api_key = self._api_key_for(provider_name)
        if not api_key:
            raise ProviderConfigurationError(
                f"API key not configured for provider: {provider_name.value}"
            )

        provider = PROVIDER_CLASSES[provider_name](
            api_key=api_key,
            model=model,
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
        )
        self._providers[key] = provider
        logger.info(
            "Completion provider created",
            extra={"provider": provider_name.value, "model": model},
        )
        return provider

    def _model_for(self, name: ProviderName) -> str:
        return {
            ProviderName.CLAUDE: self.settings.claude_model,
            ProviderName.OPENAI: self.settings.openai_model,
            ProviderName.GEMINI: self.settings.gemini_model,
        }[name]

    def _api_key_for(self, name: ProviderName) -> Optional[str]:
        return {
            ProviderName.CLAUDE: self.settings.anthropic_api_key,
            ProviderName.OPENAI: self.settings.openai_api_key,
            ProviderName.GEMINI: self.settings.google_api_key,
        }[name]
