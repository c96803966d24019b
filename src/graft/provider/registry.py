"""
Registry of available AI providers.

The registry is an ordinary object created at startup and passed to the
code that needs a provider; there is no module-level instance.
:func:`create_registry` builds one from the loaded configuration.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from graft.provider.base import Provider, ProviderError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


class ProviderRegistry:
    """Named collection of providers with a default."""

    def __init__(self, default_name: str = "") -> None:
        self._providers: Dict[str, Provider] = {}
        self._default_name = default_name

    def register(self, provider: Provider) -> None:
        """Add ``provider``, replacing any provider with the same name."""
        self._providers[provider.name] = provider

    def get(self, name: Optional[str] = None) -> Provider:
        """Return the provider called ``name``, or the default when empty.

        Raises
        ------
        ProviderError
            If no such provider is registered.
        """
        key = name or self._default_name
        try:
            return self._providers[key]
        except KeyError:
            available = self.names()
            if not available:
                raise ProviderError("no providers registered") from None
            raise ProviderError(f"unknown provider '{key}'; available: {', '.join(available)}") from None

    def default(self) -> Provider:
        return self.get(self._default_name)

    def set_default(self, name: str) -> None:
        if name not in self._providers:
            raise ProviderError(f"provider '{name}' not registered")
        self._default_name = name

    def has(self, name: str) -> bool:
        return name in self._providers

    def names(self) -> List[str]:
        return sorted(self._providers)

    @property
    def default_name(self) -> str:
        return self._default_name

    def close(self) -> None:
        for provider in self._providers.values():
            provider.close()


def create_registry(config: Dict[str, Any], model_override: Optional[str] = None) -> ProviderRegistry:
    """Build a registry holding every provider the configuration allows.

    ``ollama`` and ``mock`` are always available; ``anthropic`` only when an
    API key is configured.
    """
    from graft.provider.anthropic import AnthropicProvider
    from graft.provider.mock import MockProvider
    from graft.provider.ollama import DEFAULT_MODEL as OLLAMA_DEFAULT_MODEL
    from graft.provider.ollama import OllamaClient, OllamaProvider

    registry = ProviderRegistry(default_name=config.get("provider") or "ollama")
    default_name = registry.default_name
    timeout = float(config.get("request_timeout", 120))

    def model_for(name: str, fallback: str) -> str:
        if model_override:
            return model_override
        # The configured model belongs to the configured provider only
        if name == default_name and config.get("model"):
            return config["model"]
        return fallback

    registry.register(
        OllamaProvider(
            OllamaClient(
                base_url=config.get("ollama_base_url", "http://localhost"),
                port=int(config.get("ollama_port", 11434)),
                model=model_for("ollama", OLLAMA_DEFAULT_MODEL),
                request_timeout=timeout,
                max_tokens=config.get("max_tokens"),
            )
        )
    )
    api_key = config.get("anthropic_api_key")
    if api_key:
        registry.register(AnthropicProvider(api_key, model=model_for("anthropic", ""), request_timeout=timeout))
    else:
        logger.debug("No Anthropic API key configured; anthropic provider unavailable")
    registry.register(MockProvider())
    return registry
