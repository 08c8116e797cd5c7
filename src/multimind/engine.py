"""
multimind: RequestQueueEngine, the in-process "virtual proxy".

Turns a rate-limited, flaky multi-provider HTTP surface into a queue with
backpressure, a global rate window, priority-ordered retries, and one
circuit breaker per provider.

Request lifecycle:
1. ``handle_request`` rejects immediately if the queue is full
2. The request is queued with a timeout; expiring in the queue rejects with 408
3. The drain loop waits while the rate window is full, then pops the
   highest-priority request and runs it through the provider's circuit breaker
4. Success resolves the caller; a retryable failure is re-queued as HIGH after
   ``retry_delay * retries``; anything else rejects the caller
5. The drain loop yields for ``drain_interval`` before the next dequeue
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from multimind.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from multimind.errors import (
    NON_RETRYABLE_STATUSES,
    AlreadyRunningError,
    APIError,
    AuthError,
    NotRunningError,
    QueueFullError,
    RequestCancelledError,
    RequestTimeoutError,
    ValidationError,
)
from multimind.events import EventEmitter, Listener
from multimind.logs import SUCCESS, Terminal, TerminalHandler
from multimind.models import ChatResult, Priority, Provider, QueuedRequest
from multimind.providers import to_provider
from multimind.queue import RequestQueue
from multimind.stats import RateWindow, RequestStats

logger = logging.getLogger(__name__)

# Errors that say nothing about the upstream's health
BREAKER_EXCLUDED = (ValidationError, AuthError, RequestCancelledError)


@dataclass
class EngineConfig:
    """Queue engine tuning.

    Attributes:
        max_retries: Re-queues allowed per request after retryable failures.
        retry_delay: Seconds; the n-th re-queue happens after ``retry_delay * n``.
        request_timeout: Seconds a request may wait in the queue.
        max_queue_size: Queue capacity; further requests get ``QueueFullError``.
        rate_limit: Attempts allowed per ``rate_window``.
        rate_window: Sliding window length in seconds.
        drain_interval: Pause between two dequeues.
        health_interval: Seconds between queue health checks.
        shutdown_grace: How long ``stop()`` waits for in-flight requests.
        rate_limit_poll: Longest single wait while the rate window is full.
        queue_warning_ratio: Queue fill ratio that triggers a warning.
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    request_timeout: float = 30.0
    max_queue_size: int = 100
    rate_limit: int = 50
    rate_window: float = 60.0
    drain_interval: float = 0.1
    health_interval: float = 5.0
    shutdown_grace: float = 5.0
    rate_limit_poll: float = 1.0
    queue_warning_ratio: float = 0.8


class ChatClient(Protocol):
    async def send_message(
        self, message: str, model: str, signal: asyncio.Event | None = None
    ) -> ChatResult: ...


class ClientSource(Protocol):
    """Anything that hands out a client per provider, e.g. ``ClientFactory``."""

    def get(self, provider: Provider) -> ChatClient: ...


class RequestQueueEngine:
    """Local gateway that queues, rate-limits and retries provider calls.

    Create one per process at startup and pass it to whatever needs it.

    Example::

        factory = ClientFactory(EnvCredentialStore())
        engine = RequestQueueEngine(factory)
        engine.on("started", lambda: print("proxy up"))

        async with engine:
            result = await engine.handle_request("Hello", "gpt-3.5-turbo", "openai")
            print(result.result.response)
            print(engine.get_status()["request_count"])
    """

    def __init__(
        self,
        clients: ClientSource,
        config: EngineConfig | None = None,
        breaker_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.time,
        events: EventEmitter | None = None,
    ) -> None:
        self.clients = clients
        self.config = config or EngineConfig()
        self.events = events or EventEmitter()
        self._clock = clock
        self.breakers: dict[Provider, CircuitBreaker] = {
            provider: CircuitBreaker(
                provider.value,
                breaker_config,
                clock=clock,
                excluded_exceptions=BREAKER_EXCLUDED,
            )
            for provider in Provider
        }
        self._running = False
        self._stats = self._new_stats()
        self._wakeup = asyncio.Event()
        self._drain_task: asyncio.Task[None] | None = None
        self._health_task: asyncio.Task[None] | None = None
        self._inflight: dict[str, asyncio.Task[None]] = {}
        self._retry_handles: dict[str, tuple[asyncio.TimerHandle, QueuedRequest]] = {}
        self._rate_limited = False
        self._terminal_handler: TerminalHandler | None = None

    # ──────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start accepting requests.

        Raises:
            AlreadyRunningError: If the engine is already running.
        """
        if self._running:
            raise AlreadyRunningError("Proxy server is already running")

        logger.info("Starting virtual proxy server...")
        loop = asyncio.get_running_loop()
        self._running = True
        self._stats = self._new_stats()
        self._stats.start_time = self._clock()
        self._wakeup = asyncio.Event()
        self._drain_task = loop.create_task(self._drain_loop())
        self._health_task = loop.create_task(self._health_loop())
        for breaker in self.breakers.values():
            breaker.start_monitoring()

        self.events.emit("started")
        logger.log(SUCCESS, "Virtual proxy server started successfully")

    async def stop(self) -> None:
        """Stop accepting requests and wind down.

        Requests still waiting in the queue are rejected with
        ``NotRunningError``. In-flight requests get ``shutdown_grace`` seconds
        to finish and are cancelled after that.
        """
        if not self._running:
            return

        logger.info("Stopping virtual proxy server...")
        self._running = False

        for task in (self._drain_task, self._health_task):
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._drain_task = self._health_task = None

        stopped = NotRunningError("Proxy server stopped before the request was sent")
        for request in self._stats.queue.drain():
            self._disarm_timeout(request)
            self._settle(request, error=stopped)
        for handle, request in self._retry_handles.values():
            handle.cancel()
            self._settle(request, error=stopped)
        self._retry_handles.clear()

        if self._inflight:
            logger.warning(
                f"Waiting for {len(self._inflight)} pending requests to complete..."
            )
            _, still_running = await asyncio.wait(
                list(self._inflight.values()), timeout=self.config.shutdown_grace
            )
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
        self._inflight.clear()

        for breaker in self.breakers.values():
            await breaker.stop_monitoring()

        self._stats = self._new_stats()
        self.events.emit("stopped")
        logger.log(SUCCESS, "Virtual proxy server stopped successfully")

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    async def __aenter__(self) -> RequestQueueEngine:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()

    def on(self, event: str, listener: Listener) -> None:
        """Subscribe to ``"started"`` / ``"stopped"``."""
        self.events.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self.events.off(event, listener)

    def set_terminal(self, terminal: Terminal | None) -> None:
        """Mirror package log lines to ``terminal``; ``None`` detaches it."""
        package_logger = logging.getLogger("multimind")
        if self._terminal_handler is not None:
            package_logger.removeHandler(self._terminal_handler)
            self._terminal_handler = None
        if terminal is None:
            return

        self._terminal_handler = TerminalHandler(terminal)
        package_logger.addHandler(self._terminal_handler)
        if package_logger.getEffectiveLevel() > self._terminal_handler.level:
            package_logger.setLevel(self._terminal_handler.level)

    # ──────────────────────────────────────────────────────────────────────
    # Core API
    # ──────────────────────────────────────────────────────────────────────

    async def handle_request(
        self,
        message: str,
        model: str,
        provider: Provider | str,
        signal: asyncio.Event | None = None,
        priority: Priority = Priority.MEDIUM,
    ) -> ChatResult:
        """Queue one chat message for delivery and wait for the outcome.

        Args:
            message: User text.
            model: Provider model id, or ``"auto"``.
            provider: Target provider.
            signal: Optional event; once set the request is cancelled.
            priority: Queue priority for the first attempt.

        Returns:
            ChatResult from the provider's client.

        Raises:
            NotRunningError: The engine is not started.
            QueueFullError: ``max_queue_size`` requests are already waiting.
            ValidationError: Empty message or model.
            RequestTimeoutError: The request waited in the queue too long.
            RequestCancelledError: ``signal`` was set before the call completed.
            APIError: The final classified failure after retries.
        """
        if not self._running:
            raise NotRunningError("Proxy server is not running")

        target = to_provider(provider)
        if not message or not message.strip():
            raise ValidationError("Message cannot be empty")
        if not model or not model.strip():
            raise ValidationError("Model must be specified")

        queue = self._stats.queue
        if queue.is_full:
            raise QueueFullError(
                f"Request queue is full ({queue.max_size} requests). "
                f"Please try again later."
            )

        loop = asyncio.get_running_loop()
        breaker = self.breakers[target]

        async def execute() -> ChatResult:
            if signal is not None and signal.is_set():
                raise RequestCancelledError()
            self._stats.record_attempt()
            client = self.clients.get(target)
            return await breaker.execute(
                lambda: client.send_message(message, model, signal=signal)
            )

        request = QueuedRequest(
            id=str(uuid.uuid4()),
            provider=target,
            execute=execute,
            future=loop.create_future(),
            timestamp=self._clock(),
            priority=priority,
        )
        request.timeout_handle = loop.call_later(
            self.config.request_timeout, self._expire, request
        )

        queue.submit(request)
        logger.info(f"Request {request.id} queued ({queue.depth} in queue)")
        self._wakeup.set()
        return await request.future

    # ──────────────────────────────────────────────────────────────────────
    # Observability
    # ──────────────────────────────────────────────────────────────────────

    def get_status(self) -> dict[str, Any]:
        """Snapshot for dashboards and status indicators."""
        stats = self._stats
        queued = stats.queue.depth
        window = stats.window
        in_window = window.count
        return {
            "running": self._running,
            "uptime": stats.uptime(self._clock()),
            "request_count": stats.request_count,
            "pending_requests": len(stats.pending_requests),
            "queued_requests": queued,
            "requests_last_minute": in_window,
            "queue_capacity": {
                "used": queued,
                "total": self.config.max_queue_size,
                "percentage": round(queued / self.config.max_queue_size * 100),
            },
            "rate_limits": {
                "current": in_window,
                "limit": self.config.rate_limit,
                "remaining": window.remaining,
                "resets_in": window.time_until_reset(),
            },
            "circuit_breakers": {
                provider.value: breaker.state.value
                for provider, breaker in self.breakers.items()
            },
        }

    def check_queue_health(self) -> None:
        """One health monitor tick: evict stale bookkeeping and warn on trouble."""
        stats = self._stats
        now = self._clock()

        for request_id, started in list(stats.pending_requests.items()):
            if now - started > self.config.request_timeout:
                logger.warning(f"Request {request_id} timed out and will be removed")
                del stats.pending_requests[request_id]

        depth = stats.queue.depth
        if depth > self.config.max_queue_size * self.config.queue_warning_ratio:
            logger.warning(
                f"Queue is nearing capacity ({depth}/{self.config.max_queue_size})"
            )

        if stats.pending_requests:
            logger.info(f"Current pending requests: {len(stats.pending_requests)}")

        for provider, breaker in self.breakers.items():
            state = breaker.state
            if state != CircuitState.CLOSED:
                logger.warning(f"Circuit breaker for {provider.value} is {state.value}")

    # ──────────────────────────────────────────────────────────────────────
    # Internal
    # ──────────────────────────────────────────────────────────────────────

    def _new_stats(self) -> RequestStats:
        return RequestStats(
            window=RateWindow(self.config.rate_limit, self.config.rate_window, self._clock),
            queue=RequestQueue(self.config.max_queue_size),
        )

    async def _drain_loop(self) -> None:
        while self._running:
            queue = self._stats.queue
            if queue.is_empty:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            window = self._stats.window
            if not window.has_capacity():
                if not self._rate_limited:
                    logger.warning("Rate limit reached, waiting...")
                    self._rate_limited = True
                wait = window.time_until_reset() or self.config.rate_limit_poll
                await asyncio.sleep(min(wait, self.config.rate_limit_poll))
                continue
            self._rate_limited = False

            request = queue.pop()
            if request is None:
                continue
            self._disarm_timeout(request)
            if request.future.done():
                # Caller stopped waiting
                continue

            self._dispatch(request)
            await asyncio.sleep(self.config.drain_interval)

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.health_interval)
            try:
                self.check_queue_health()
            except Exception:
                logger.exception("Queue health check failed")

    def _dispatch(self, request: QueuedRequest) -> None:
        self._stats.pending_requests[request.id] = self._clock()

        task = asyncio.get_running_loop().create_task(self._run(request))
        self._inflight[request.id] = task

        def forget(done: asyncio.Task[None]) -> None:
            if self._inflight.get(request.id) is done:
                del self._inflight[request.id]

        task.add_done_callback(forget)

    async def _run(self, request: QueuedRequest) -> None:
        try:
            result = await request.execute()
        except asyncio.CancelledError:
            self._settle(
                request, error=RequestCancelledError("Request cancelled: proxy server stopped")
            )
            raise
        except Exception as e:
            self._on_failure(request, e)
        else:
            logger.log(SUCCESS, f"Request {request.id} completed successfully")
            self._settle(request, result=result)
        finally:
            self._stats.pending_requests.pop(request.id, None)

    def _on_failure(self, request: QueuedRequest, error: Exception) -> None:
        if not self._should_retry(request, error):
            logger.error(f"Request {request.id} ({request.provider.value}) failed: {error}")
            self._settle(request, error=error)
            return

        request.retries += 1
        request.priority = Priority.HIGH
        delay = self.config.retry_delay * request.retries
        logger.warning(
            f"Retrying request {request.id} ({request.provider.value}) "
            f"(attempt {request.retries}/{self.config.max_retries}) in {delay:.2f}s: {error}"
        )
        handle = asyncio.get_running_loop().call_later(delay, self._requeue, request, error)
        self._retry_handles[request.id] = (handle, request)

    def _should_retry(self, request: QueuedRequest, error: Exception) -> bool:
        if request.retries >= self.config.max_retries or not self._running:
            return False
        if isinstance(error, APIError):
            return error.status not in NON_RETRYABLE_STATUSES and error.retryable
        return True

    def _requeue(self, request: QueuedRequest, error: Exception) -> None:
        self._retry_handles.pop(request.id, None)
        if request.future.done():
            return
        if not self._running:
            self._settle(request, error=error)
            return

        request.requeue()
        if not self._stats.queue.submit(request):
            logger.error(f"Request {request.id} could not be re-queued: queue is full")
            self._settle(request, error=error)
            return
        self._wakeup.set()

    def _expire(self, request: QueuedRequest) -> None:
        request.timeout_handle = None
        if self._stats.queue.remove(request.id) is not None:
            logger.warning(f"Request {request.id} timed out waiting in the queue")
            self._settle(request, error=RequestTimeoutError("Request timed out"))

    @staticmethod
    def _disarm_timeout(request: QueuedRequest) -> None:
        if request.timeout_handle is not None:
            request.timeout_handle.cancel()
            request.timeout_handle = None

    @staticmethod
    def _settle(
        request: QueuedRequest,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        if request.future.done():
            return
        if error is not None:
            request.future.set_exception(error)
        else:
            request.future.set_result(result)
