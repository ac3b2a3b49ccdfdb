"""Factory for creating LLM clients.

The provider is chosen from whichever API key is configured, in the
priority order forge > openrouter > openai > anthropic.
"""

from typing import Any

from ..config import Settings
from ..exceptions import ConfigError
from .anthropic import AnthropicClient
from .base import BaseLLMClient
from .openai_compat import OpenAICompatibleClient

# registry of provider configurations
_PROVIDER_REGISTRY: dict[str, dict[str, Any]] = {
    "forge": {
        "client": OpenAICompatibleClient,
        "api_key_env": "FORGE_KEY",
        "default_model": "anthropic/claude-3.5-sonnet",
    },
    "openrouter": {
        "client": OpenAICompatibleClient,
        "api_key_env": "OPENROUTER_API_KEY",
        "default_model": "anthropic/claude-3.5-sonnet",
    },
    "openai": {
        "client": OpenAICompatibleClient,
        "api_key_env": "OPENAI_API_KEY",
        "default_model": "gpt-4o",
    },
    "anthropic": {
        "client": AnthropicClient,
        "api_key_env": "ANTHROPIC_API_KEY",
        "default_model": "claude-sonnet-4-5-20250929",
    },
}


def get_available_providers() -> list[str]:
    """Get list of available provider names in priority order."""
    return list(_PROVIDER_REGISTRY.keys())


def get_default_model(provider: str) -> str:
    """Get the default model for a provider.

    Raises:
        ConfigError: If provider is unknown.
    """
    if provider not in _PROVIDER_REGISTRY:
        raise ConfigError(f"Unknown provider. Available: {get_available_providers()}", key=provider)
    return _PROVIDER_REGISTRY[provider]["default_model"]


def create_client(
    settings: Settings,
    provider: str | None = None,
    model: str | None = None,
    client_config: dict | None = None,
) -> BaseLLMClient:
    """Create the LLM client for the configured provider.

    Args:
        settings: Loaded settings holding API keys and endpoint overrides.
        provider: Optional explicit provider; defaults to ``settings.detect_provider()``.
        model: Optional default model override.
        client_config: Optional configuration dict for the client.

    Returns:
        An initialized LLM client instance.

    Raises:
        ConfigError: If no provider is configured or its API key is missing.
    """
    provider = provider or settings.detect_provider()
    if provider is None:
        raise ConfigError(
            "No provider API key found. Set one of FORGE_KEY, OPENROUTER_API_KEY, "
            "OPENAI_API_KEY or ANTHROPIC_API_KEY",
            key="FORGE_KEY",
        )

    resolved_model = model or get_default_model(provider)
    config = _PROVIDER_REGISTRY[provider]

    api_key = settings.get_api_key_for_provider(provider)
    if not api_key:
        raise ConfigError(f"{config['api_key_env']} not set in environment", key=config["api_key_env"])

    if config["client"] is AnthropicClient:
        return AnthropicClient(api_key=api_key, model=resolved_model, client_config=client_config)

    return OpenAICompatibleClient(
        api_key=api_key,
        model=resolved_model,
        base_url=settings.get_base_url_for_provider(provider),
        provider_name=provider,
        client_config=client_config,
    )
