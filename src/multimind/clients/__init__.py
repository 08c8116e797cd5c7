"""multimind: Provider API clients."""

from multimind.clients.anthropic import AnthropicAdapter
from multimind.clients.base import ApiClient, ClientConfig, PreparedRequest, ProviderAdapter
from multimind.clients.cloudflare import CloudflareAdapter
from multimind.clients.factory import ClientFactory, register_adapter
from multimind.clients.google import GoogleAdapter
from multimind.clients.openai import OpenAIAdapter
from multimind.clients.openrouter import OpenRouterAdapter

__all__ = [
    "AnthropicAdapter",
    "ApiClient",
    "ClientConfig",
    "ClientFactory",
    "CloudflareAdapter",
    "GoogleAdapter",
    "OpenAIAdapter",
    "OpenRouterAdapter",
    "PreparedRequest",
    "ProviderAdapter",
    "register_adapter",
]
