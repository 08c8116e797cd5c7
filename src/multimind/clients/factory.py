"""
multimind: One cached ``ApiClient`` per provider.

Clients are built on first use and reused afterwards so each provider keeps a
single HTTP session. ``clear_cache()`` forces recreation, e.g. after the user
changes API keys or gateway URLs.
"""

from __future__ import annotations

import logging
from typing import Callable

from multimind.clients.anthropic import AnthropicAdapter
from multimind.clients.base import ApiClient, ClientConfig, ProviderAdapter
from multimind.clients.cloudflare import CloudflareAdapter
from multimind.clients.google import GoogleAdapter
from multimind.clients.openai import OpenAIAdapter
from multimind.clients.openrouter import OpenRouterAdapter
from multimind.credentials import CredentialStore
from multimind.models import Provider
from multimind.providers import to_provider

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ClientConfig], ProviderAdapter]

# Adapter registry: provider → adapter class
_ADAPTER_REGISTRY: dict[Provider, AdapterFactory] = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.ANTHROPIC: AnthropicAdapter,
    Provider.GOOGLE: GoogleAdapter,
    Provider.OPENROUTER: OpenRouterAdapter,
    Provider.CLOUDFLARE: CloudflareAdapter,
}


class ClientFactory:
    """Creates and caches provider clients.

    Example::

        factory = ClientFactory(EnvCredentialStore())
        client = factory.get("openai")
        assert factory.get(Provider.OPENAI) is client
        await factory.clear_cache()
    """

    def __init__(
        self,
        credentials: CredentialStore,
        config: ClientConfig | None = None,
    ) -> None:
        self.credentials = credentials
        self.config = config or ClientConfig()
        self._clients: dict[Provider, ApiClient] = {}

    def get(self, provider: Provider | str) -> ApiClient:
        """Return the cached client for ``provider``, creating it if needed.

        Raises:
            ValueError: If ``provider`` is not a recognized provider.
        """
        key = to_provider(provider)
        client = self._clients.get(key)
        if client is None:
            adapter = _ADAPTER_REGISTRY[key](self.config)
            client = ApiClient(adapter, self.credentials, self.config)
            self._clients[key] = client
            logger.debug(f"Created API client for {key.value}")
        return client

    def cached_providers(self) -> list[Provider]:
        return list(self._clients)

    async def clear_cache(self) -> None:
        """Close and forget every cached client."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Error closing {client.provider.value} client: {e}")

    async def close(self) -> None:
        await self.clear_cache()


def register_adapter(provider: Provider | str, adapter_factory: AdapterFactory) -> None:
    """Replace the adapter used for a provider.

    Example::

        class StagingOpenAIAdapter(OpenAIAdapter):
            ...

        register_adapter("openai", StagingOpenAIAdapter)
    """
    _ADAPTER_REGISTRY[to_provider(provider)] = adapter_factory
