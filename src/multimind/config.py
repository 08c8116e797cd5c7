"""
multimind: Settings assembled from the environment.

Each component has its own config dataclass; ``Settings`` bundles them so an
application can build everything from one place::

    settings = Settings.from_env()
    factory = ClientFactory(EnvCredentialStore(), settings.client)
    engine = RequestQueueEngine(factory, settings.engine, settings.breaker)

Recognised variables (all optional):

    MULTIMIND_MAX_RETRIES          engine re-queues per request
    MULTIMIND_RETRY_DELAY          engine retry delay, seconds
    MULTIMIND_REQUEST_TIMEOUT      queue wait budget, seconds
    MULTIMIND_MAX_QUEUE_SIZE
    MULTIMIND_RATE_LIMIT           attempts per rate window
    MULTIMIND_RATE_WINDOW          seconds
    MULTIMIND_CLIENT_MAX_RETRIES   HTTP retries inside one attempt
    MULTIMIND_CLIENT_RETRY_DELAY   seconds, doubled per retry
    MULTIMIND_HTTP_TIMEOUT         per HTTP attempt, seconds
    MULTIMIND_MAX_TOKENS
    MULTIMIND_TEMPERATURE
    MULTIMIND_APP_URL
    MULTIMIND_APP_TITLE
    MULTIMIND_FAILURE_THRESHOLD    circuit breaker
    MULTIMIND_RESET_TIMEOUT        circuit breaker, seconds
    MULTIMIND_HALF_OPEN_MAX_CALLS  circuit breaker
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Mapping, TypeVar

from multimind.circuit_breaker import CircuitBreakerConfig
from multimind.clients.base import ClientConfig
from multimind.engine import EngineConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENV_PREFIX = "MULTIMIND_"


@dataclass
class Settings:
    engine: EngineConfig = field(default_factory=EngineConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``MULTIMIND_*`` variables, defaults elsewhere.

        Raises:
            ValueError: If a variable is set to something that does not parse.
        """
        env = environ if environ is not None else os.environ

        def read(name: str, parse: Callable[[str], T], default: T) -> T:
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return parse(raw.strip())
            except ValueError:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{name}: {raw!r}") from None

        engine_defaults = EngineConfig()
        client_defaults = ClientConfig()
        breaker_defaults = CircuitBreakerConfig()

        settings = cls(
            engine=EngineConfig(
                max_retries=read("MAX_RETRIES", int, engine_defaults.max_retries),
                retry_delay=read("RETRY_DELAY", float, engine_defaults.retry_delay),
                request_timeout=read(
                    "REQUEST_TIMEOUT", float, engine_defaults.request_timeout
                ),
                max_queue_size=read("MAX_QUEUE_SIZE", int, engine_defaults.max_queue_size),
                rate_limit=read("RATE_LIMIT", int, engine_defaults.rate_limit),
                rate_window=read("RATE_WINDOW", float, engine_defaults.rate_window),
            ),
            client=ClientConfig(
                max_retries=read("CLIENT_MAX_RETRIES", int, client_defaults.max_retries),
                retry_delay=read("CLIENT_RETRY_DELAY", float, client_defaults.retry_delay),
                timeout=read("HTTP_TIMEOUT", float, client_defaults.timeout),
                max_tokens=read("MAX_TOKENS", int, client_defaults.max_tokens),
                temperature=read("TEMPERATURE", float, client_defaults.temperature),
                app_url=read("APP_URL", str, client_defaults.app_url),
                app_title=read("APP_TITLE", str, client_defaults.app_title),
            ),
            breaker=CircuitBreakerConfig(
                failure_threshold=read(
                    "FAILURE_THRESHOLD", int, breaker_defaults.failure_threshold
                ),
                reset_timeout=read("RESET_TIMEOUT", float, breaker_defaults.reset_timeout),
                half_open_max_calls=read(
                    "HALF_OPEN_MAX_CALLS", int, breaker_defaults.half_open_max_calls
                ),
            ),
        )
        logger.debug(f"Loaded settings: {settings}")
        return settings
