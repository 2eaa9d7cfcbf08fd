"""
Credential lookup for API keys.

The agent only ever reads credentials; a missing key surfaces as a
``NoCredential`` error on the request that needed it.
"""

from enum import Enum
from typing import Protocol

import structlog

from .config import Settings, get_settings

logger = structlog.get_logger()


class APIKeyService(str, Enum):
    """Services the agent holds API keys for."""
    OPENROUTER = "openrouter"
    BRAVE_SEARCH = "brave_search"


class CredentialStore(Protocol):
    def retrieve(self, service: APIKeyService) -> str | None:
        ...


class SettingsCredentialStore:
    """Reads API keys from settings (environment variables or .env)."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def retrieve(self, service: APIKeyService) -> str | None:
        key_map = {
            APIKeyService.OPENROUTER: self.settings.openrouter_api_key,
            APIKeyService.BRAVE_SEARCH: self.settings.brave_search_api_key,
        }
        value = key_map.get(service, "").strip()
        return value or None


class InMemoryCredentialStore:
    """Mutable credential store, used for runtime key updates and tests."""

    def __init__(self, keys: dict[APIKeyService, str] | None = None):
        self._keys: dict[APIKeyService, str] = dict(keys or {})

    def save(self, service: APIKeyService, value: str) -> None:
        self._keys[service] = value
        logger.info("Credential saved", service=service.value)

    def delete(self, service: APIKeyService) -> None:
        if self._keys.pop(service, None) is not None:
            logger.info("Credential deleted", service=service.value)

    def retrieve(self, service: APIKeyService) -> str | None:
        return self._keys.get(service) or None
