"""
LLM factory for creating provider instances.
"""

from ..config import Settings, get_settings
from ..credentials import CredentialStore, SettingsCredentialStore
from .base import BaseLLM
from .openrouter import OpenRouterLLM


def create_llm(
    settings: Settings | None = None,
    credentials: CredentialStore | None = None,
) -> BaseLLM:
    """Create an LLM instance based on configuration.

    The API key is not read here; it is looked up on every request so that
    a key saved after startup takes effect without rebuilding the client.
    """
    settings = settings or get_settings()
    credentials = credentials or SettingsCredentialStore(settings)

    return OpenRouterLLM(
        credentials=credentials,
        model=settings.default_model,
        base_url=settings.base_url,
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
        timeout=settings.request_timeout,
        http_referer=settings.http_referer,
        app_title=settings.app_name,
    )
