"""
multimind: Multi-provider LLM chat client core.

One API over OpenAI, Anthropic, Google, OpenRouter and Cloudflare Workers AI,
with an in-process request queue that adds rate limiting, retries and
per-provider circuit breakers.

Quickstart::

    from multimind import ClientFactory, EnvCredentialStore, RequestQueueEngine

    factory = ClientFactory(EnvCredentialStore())
    engine = RequestQueueEngine(factory)

    async with engine:
        result = await engine.handle_request("Hello!", "gpt-3.5-turbo", "openai")
        print(result.result.response)

    await factory.close()
"""

from multimind.chat import ChatSession, new_chat
from multimind.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from multimind.clients import (
    AnthropicAdapter,
    ApiClient,
    ClientConfig,
    ClientFactory,
    CloudflareAdapter,
    GoogleAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
    ProviderAdapter,
    register_adapter,
)
from multimind.config import Settings
from multimind.credentials import CredentialStore, EnvCredentialStore, StaticCredentialStore
from multimind.engine import EngineConfig, RequestQueueEngine
from multimind.errors import (
    AlreadyRunningError,
    APIError,
    AuthError,
    CircuitOpenError,
    ForbiddenError,
    InvalidResponseError,
    ModelListingNotSupportedError,
    NetworkError,
    NotFoundError,
    NotRunningError,
    QueueFullError,
    RequestCancelledError,
    RequestTimeoutError,
    ServerError,
    ValidationError,
    describe_error,
)
from multimind.events import EventEmitter
from multimind.logs import SUCCESS, TerminalHandler
from multimind.models import (
    Capability,
    Chat,
    ChatResponse,
    ChatResult,
    Message,
    Model,
    Priority,
    Provider,
    ProviderInfo,
    Role,
    TokenUsage,
)
from multimind.providers import (
    PROVIDERS,
    get_default_model,
    get_model_display,
    get_provider,
    get_provider_models,
    is_valid_provider,
    resolve_model,
    select_best_model,
)
from multimind.queue import RequestQueue
from multimind.stats import RateWindow
from multimind.validation import validate_api_key, validate_gateway_url

__version__ = "0.1.0"

__all__ = [
    # Core
    "RequestQueueEngine",
    "EngineConfig",
    "Settings",
    "ChatSession",
    "new_chat",
    # Data
    "Provider",
    "ProviderInfo",
    "Capability",
    "Model",
    "Role",
    "Message",
    "Chat",
    "ChatResult",
    "ChatResponse",
    "TokenUsage",
    "Priority",
    # Providers
    "PROVIDERS",
    "get_provider",
    "get_provider_models",
    "get_default_model",
    "get_model_display",
    "is_valid_provider",
    "resolve_model",
    "select_best_model",
    "validate_api_key",
    "validate_gateway_url",
    # Clients
    "ApiClient",
    "ClientConfig",
    "ClientFactory",
    "ProviderAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GoogleAdapter",
    "OpenRouterAdapter",
    "CloudflareAdapter",
    "register_adapter",
    "CredentialStore",
    "EnvCredentialStore",
    "StaticCredentialStore",
    # Features
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "EventEmitter",
    "RequestQueue",
    "RateWindow",
    "TerminalHandler",
    "SUCCESS",
    # Errors
    "APIError",
    "ValidationError",
    "AuthError",
    "ForbiddenError",
    "NotFoundError",
    "ServerError",
    "NetworkError",
    "RequestTimeoutError",
    "RequestCancelledError",
    "CircuitOpenError",
    "InvalidResponseError",
    "QueueFullError",
    "NotRunningError",
    "AlreadyRunningError",
    "ModelListingNotSupportedError",
    "describe_error",
]
