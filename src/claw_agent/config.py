"""
Configuration management for claw-agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from .llm.base import SamplingParams


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "claw-agent"
    log_level: str = "INFO"

    # Credentials
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    brave_search_api_key: str = Field(default="", description="Brave Search API key")

    # Completion endpoint
    base_url: str = Field(default="https://openrouter.ai/api/v1", description="OpenAI-compatible API root")
    http_referer: str = Field(default="https://github.com/claw-agent", description="Sent as HTTP-Referer")
    request_timeout: float = Field(default=60.0, gt=0, description="Per-request timeout in seconds")

    # Model settings
    default_model: str = "anthropic/claude-sonnet-4-5"
    system_prompt: str = ""
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, gt=0)
    stream: bool = True

    # Agent loop
    max_conversation_history: int = Field(default=50, gt=0, description="Max messages sent per request")
    max_tool_hops: int = Field(default=10, gt=0, description="Max model/tool cycles per turn")
    tool_concurrency: int = Field(default=4, gt=0, description="Max tool calls executed in parallel")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/claw.db",
        description="Database connection URL"
    )

    # Features
    enable_web_search: bool = True
    enable_web_fetch: bool = True
    enable_memory_tools: bool = True

    @field_validator("system_prompt", mode="before")
    @classmethod
    def strip_system_prompt(cls, v: str | None) -> str:
        return v.strip() if v else ""

    def sampling_params(self) -> "SamplingParams":
        """Build sampling parameters for a completion request."""
        from .llm.base import SamplingParams

        return SamplingParams(
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=self.stream,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
