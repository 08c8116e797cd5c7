"""
multimind: Data models for providers, models, chat turns and queued requests.

All public types used throughout the library are defined here.
"""

from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable


class Provider(str, Enum):
    """LLM vendors the client can talk to."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OPENROUTER = "openrouter"
    CLOUDFLARE = "cloudflare"


class Capability(str, Enum):
    CHAT = "chat"
    CODE = "code"
    ANALYSIS = "analysis"
    VISION = "vision"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Priority(IntEnum):
    """Queue priority levels. Lower value = served first.

    New requests default to MEDIUM; a request that is re-queued after a
    retryable failure is promoted to HIGH.
    """

    HIGH = 0
    MEDIUM = 1
    LOW = 2


@dataclass(frozen=True)
class ProviderInfo:
    """Static description of a provider.

    Attributes:
        provider: The provider identity.
        name: Display name.
        description: One-line summary for provider pickers.
        requires_key: Whether a credential must be configured before sending.
        supports_proxy: Whether a gateway override URL may replace the endpoint.
        capabilities: Capabilities offered by at least one of its models.
    """

    provider: Provider
    name: str
    description: str
    requires_key: bool
    supports_proxy: bool
    capabilities: tuple[Capability, ...]


@dataclass(frozen=True)
class Model:
    """One addressable model.

    Attributes:
        id: Provider-specific identifier, or ``"auto"``.
        name: Display name.
        provider: Owning provider.
        capabilities: What the model is good at.
        context_length: Context window in tokens.
        description: Optional human description.
        is_auto: Resolve to a concrete model at send time.
    """

    id: str
    name: str
    provider: Provider
    capabilities: tuple[Capability, ...] = (Capability.CHAT,)
    context_length: int = 4096
    description: str | None = None
    is_auto: bool = False


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResponse:
    """Normalized assistant output."""

    response: str
    usage: TokenUsage | None = None


@dataclass
class ChatResult:
    """What ``send_message`` and ``handle_request`` resolve with."""

    success: bool
    result: ChatResponse

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"response": self.result.response}
        if self.result.usage is not None:
            usage = self.result.usage
            result["usage"] = {
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
            }
        return {"success": self.success, "result": result}


@dataclass(frozen=True)
class Message:
    """One chat turn. Never mutated after creation."""

    role: Role
    content: str
    provider: Provider
    model: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)


@dataclass
class Chat:
    """Ordered messages plus the provider/model selection."""

    provider: Provider
    model: str
    title: str = "New Chat"
    messages: list[Message] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: float = field(default_factory=time.time)


_sequence = itertools.count()


@dataclass
class QueuedRequest:
    """A logical send waiting in (or being executed from) the engine queue.

    Attributes:
        id: Unique request id.
        provider: Target provider, used to pick its circuit breaker.
        execute: Thunk performing the call when dequeued.
        future: Settled with the outcome for the original caller.
        timestamp: Enqueue time, from the engine clock.
        priority: Queue priority; promoted to HIGH on retry.
        retries: Re-queue count so far.
        timeout_handle: Queue timeout timer, cancelled once dequeued.
    """

    id: str
    provider: Provider
    execute: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]
    timestamp: float
    priority: Priority = Priority.MEDIUM
    retries: int = 0
    timeout_handle: asyncio.TimerHandle | None = field(default=None, repr=False)

    # Internal field: arrival order, refreshed on every (re-)enqueue
    _sequence: int = field(default_factory=lambda: next(_sequence), repr=False)

    def requeue(self) -> None:
        """Move to the back of its priority tier."""
        self._sequence = next(_sequence)

    def __lt__(self, other: object) -> bool:
        """Queue ordering: lower priority value first, FIFO within a tier."""
        if not isinstance(other, QueuedRequest):
            return NotImplemented
        if self.priority != other.priority:
            return self.priority < other.priority
        return self._sequence < other._sequence
