"""centralized configuration management using pydantic settings.

this module provides type-safe, validated configuration for the runtime.
configuration is loaded from environment variables and optional .env files.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

FORGE_BASE_URL = "https://antinomy.ai/api/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class Settings(BaseSettings):
    """main settings class for forge.

    configuration is loaded from environment variables. a .env file in the
    working directory is also loaded if present.

    attributes:
        forge_key: api key for the forge gateway (openai-compatible)
        openrouter_api_key: api key for openrouter
        openai_api_key: api key for openai or an openai-compatible endpoint
        anthropic_api_key: api key for anthropic
        openai_url: endpoint override for openai-compatible providers
        log_level: logging level (DEBUG, INFO, WARNING, ERROR)
        max_dispatch_depth: how deep agent-triggered dispatch may recurse
        provider_max_attempts: total provider attempts per model call
        retry_initial_delay: first backoff delay in seconds
        retry_max_delay: backoff ceiling in seconds
        tool_timeout: per-tool execution timeout in seconds
        require_approval: pause for user approval before confirmable tools
        max_tool_iterations: tool round-trips allowed in one turn
        event_log: optional path of the append-only event/message log
        learnings_file: optional file exposed to templates as ``learnings``
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore extra env vars
        populate_by_name=True,
    )

    # api keys, listed in provider priority order
    forge_key: str | None = Field(default=None, alias="FORGE_KEY")
    openrouter_api_key: str | None = Field(default=None, alias="OPENROUTER_API_KEY")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    openai_url: str | None = Field(default=None, alias="OPENAI_URL")

    # runtime configuration
    log_level: str = Field(default="WARNING", alias="FORGE_LOG_LEVEL")
    max_dispatch_depth: int = Field(default=4, ge=0, alias="FORGE_MAX_DISPATCH_DEPTH")
    provider_max_attempts: int = Field(default=3, ge=1, alias="FORGE_PROVIDER_MAX_ATTEMPTS")
    retry_initial_delay: float = Field(default=1.0, ge=0, alias="FORGE_RETRY_INITIAL_DELAY")
    retry_max_delay: float = Field(default=30.0, ge=0, alias="FORGE_RETRY_MAX_DELAY")
    tool_timeout: float = Field(default=300.0, gt=0, alias="FORGE_TOOL_TIMEOUT")
    require_approval: bool = Field(default=False, alias="FORGE_REQUIRE_APPROVAL")
    max_tool_iterations: int = Field(default=50, ge=1, alias="FORGE_MAX_TOOL_ITERATIONS")
    event_log: str | None = Field(default=None, alias="FORGE_EVENT_LOG")
    learnings_file: str | None = Field(default=None, alias="FORGE_LEARNINGS_FILE")

    def detect_provider(self) -> str | None:
        """auto-detect provider based on available api keys.

        returns:
            provider name or None if no keys are set
        """
        if self.forge_key:
            return "forge"
        if self.openrouter_api_key:
            return "openrouter"
        if self.openai_api_key:
            return "openai"
        if self.anthropic_api_key:
            return "anthropic"
        return None

    def get_api_key_for_provider(self, provider: str) -> str | None:
        """get the api key for a specific provider.

        args:
            provider: provider name (forge, openrouter, openai, anthropic)

        returns:
            api key or None if not set
        """
        key_map = {
            "forge": self.forge_key,
            "openrouter": self.openrouter_api_key,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }
        return key_map.get(provider)

    def get_base_url_for_provider(self, provider: str) -> str | None:
        """get the endpoint for an openai-compatible provider.

        returns:
            base url, or None to use the sdk default
        """
        if provider == "forge":
            return FORGE_BASE_URL
        if provider == "openrouter":
            return OPENROUTER_BASE_URL
        if provider == "openai":
            return self.openai_url
        return None


@lru_cache
def get_settings() -> Settings:
    """get the singleton settings instance.

    uses lru_cache to ensure only one instance is created.
    call get_settings.cache_clear() to reload settings if needed.

    returns:
        the settings instance
    """
    return Settings()
