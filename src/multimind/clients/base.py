"""
multimind: Provider adapter protocol and the shared API client.

``ApiClient`` owns everything providers have in common: input and credential
checks, the aiohttp session, retry with exponential backoff, cooperative
cancellation and response validation. A ``ProviderAdapter`` supplies the parts
providers disagree on: endpoint, headers, body shape, and where the assistant
text lives in the response envelope.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Protocol, TypeVar, runtime_checkable

import aiohttp

from multimind.credentials import CredentialStore
from multimind.errors import (
    APIError,
    AuthError,
    InvalidResponseError,
    ModelListingNotSupportedError,
    NetworkError,
    RequestCancelledError,
    ServerError,
    ValidationError,
    error_from_status,
)
from multimind.logs import redact_headers
from multimind.models import ChatResponse, ChatResult, Model, Provider, TokenUsage
from multimind.providers import get_provider, resolve_model
from multimind.validation import validate_api_key, validate_gateway_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_MESSAGE_LENGTH = 32000


@dataclass
class PreparedRequest:
    """A provider-native HTTP request ready to send."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    method: str = "POST"


@dataclass
class ClientConfig:
    """Settings shared by every provider client.

    Attributes:
        max_retries: Retries after the first attempt for 5xx/transport failures.
        retry_delay: Base backoff in seconds; attempt ``n`` waits ``retry_delay * 2**n``.
        timeout: Per-attempt HTTP timeout in seconds.
        max_tokens: Completion budget requested from providers that take one.
        temperature: Sampling temperature sent with every request.
        app_url: Sent as ``HTTP-Referer`` where providers attribute traffic.
        app_title: Sent as ``X-Title`` where providers attribute traffic.
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    timeout: float = 30.0
    max_tokens: int = 2048
    temperature: float = 0.7
    app_url: str = "http://localhost"
    app_title: str = "MultiMind Chat"


@runtime_checkable
class ProviderAdapter(Protocol):
    """What a provider has to supply to be reachable through ``ApiClient``.

    Implement this to add support for another vendor API, then register the
    adapter class with the client factory.
    """

    provider: Provider
    supports_model_listing: bool

    def format_request(
        self, message: str, model: str, credential: str | None, base_url: str | None
    ) -> PreparedRequest:
        """Build the chat request. ``base_url`` is the gateway override, if any."""
        ...

    def is_valid_response(self, data: Any) -> bool:
        """True if ``data`` holds extractable assistant text."""
        ...

    def extract_response_content(self, data: Any) -> str:
        """Assistant text from a response accepted by ``is_valid_response``."""
        ...

    def extract_usage(self, data: Any) -> TokenUsage | None:
        ...

    def models_request(self, credential: str | None, base_url: str | None) -> PreparedRequest:
        ...

    def parse_models_response(self, data: Any) -> list[Model]:
        ...


def dig(data: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing."""
    for step in path:
        if isinstance(step, int):
            if not isinstance(data, list) or len(data) <= step:
                return None
        elif not isinstance(data, dict):
            return None
        data = data[step] if isinstance(step, int) else data.get(step)
    return data


def choices_content(data: Any) -> str | None:
    """``choices[0].message.content`` of a chat-completions response."""
    content = dig(data, "choices", 0, "message", "content")
    return content if isinstance(content, str) and content else None


def result_response(data: Any) -> str | None:
    """``result.response`` of a Workers-AI style response."""
    content = dig(data, "result", "response")
    return content if isinstance(content, str) and content else None


def openai_usage(data: Any) -> TokenUsage | None:
    usage = dig(data, "usage")
    if not isinstance(usage, dict):
        return None
    return TokenUsage(
        prompt_tokens=usage.get("prompt_tokens", 0),
        completion_tokens=usage.get("completion_tokens", 0),
        total_tokens=usage.get("total_tokens", 0),
    )


def title_case_id(model_id: str) -> str:
    """``gpt-4-turbo`` -> ``Gpt 4 Turbo``."""
    return " ".join(word[:1].upper() + word[1:] for word in model_id.split("-"))


class ApiClient:
    """HTTP client for one provider.

    The abort handle behind ``stop_response()`` and ``last_retry_count``
    belong to the most recent ``send_message`` call. Concurrent sends through
    one cached client share them, so callers that need per-call cancellation
    pass their own ``signal``.

    Example::

        client = ApiClient(OpenAIAdapter(), credentials)
        result = await client.send_message("Hello", "gpt-3.5-turbo")
        print(result.result.response)
        await client.close()
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        credentials: CredentialStore,
        config: ClientConfig | None = None,
    ) -> None:
        self.adapter = adapter
        self.provider = adapter.provider
        self.info = get_provider(adapter.provider)
        self.config = config or ClientConfig()
        self._credentials = credentials
        self._session: aiohttp.ClientSession | None = None
        self._abort: asyncio.Event | None = None
        self.last_retry_count = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        """Lazily create and return the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json"},
            )
        return self._session

    async def send_message(
        self, message: str, model: str, signal: asyncio.Event | None = None
    ) -> ChatResult:
        """Send one user message and return the normalized assistant reply.

        Args:
            message: User text, at most 32,000 characters.
            model: Provider model id, or ``"auto"``.
            signal: Optional event; setting it cancels the request.

        Returns:
            ChatResult with the assistant text and token usage when reported.

        Raises:
            ValidationError: Bad input, detected before any I/O.
            AuthError: Missing or malformed credential, detected before any I/O.
            RequestCancelledError: ``signal`` was set or ``stop_response`` called.
            InvalidResponseError: 2xx response without assistant text.
            APIError: Any other classified HTTP or transport failure.
        """
        credential = self._validate_request(message, model)
        base_url = self._gateway_override()

        prepared = self.adapter.format_request(
            message, resolve_model(self.provider, model), credential, base_url
        )
        data = await self._make_request(prepared, signal)

        if not self.adapter.is_valid_response(data):
            raise InvalidResponseError(f"Invalid response format from {self.info.name} API")

        return ChatResult(
            success=True,
            result=ChatResponse(
                response=self.adapter.extract_response_content(data).strip(),
                usage=self.adapter.extract_usage(data),
            ),
        )

    async def fetch_models(self) -> list[Model]:
        """List models the provider currently offers.

        Raises:
            ModelListingNotSupportedError: The provider has no listing endpoint.
        """
        if not self.adapter.supports_model_listing:
            raise ModelListingNotSupportedError(
                f"Model fetching not implemented for {self.info.name}"
            )

        credential = self._check_credential()
        prepared = self.adapter.models_request(credential, self._gateway_override())
        logger.debug(f"Fetching {self.info.name} models from {prepared.url}")
        data = await self._send(prepared)
        models = self.adapter.parse_models_response(data)
        logger.info(f"Fetched {len(models)} {self.info.name} models")
        return models

    def stop_response(self) -> None:
        """Cancel the in-flight ``send_message`` call, if any.

        Only the most recent call is tracked, so with concurrent sends through
        one client this cancels the latest one.
        """
        if self._abort is not None:
            self._abort.set()

    async def close(self) -> None:
        """Close the HTTP session."""
        self.stop_response()
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    # ──────────────────────────────────────────────────────────────────────
    # Internal
    # ──────────────────────────────────────────────────────────────────────

    def _validate_request(self, message: str, model: str) -> str | None:
        if not message or not message.strip():
            raise ValidationError("Message cannot be empty")
        if len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError("Message is too long (max 32,000 characters)")
        if not model or not model.strip():
            raise ValidationError("Model must be specified")
        return self._check_credential()

    def _check_credential(self) -> str | None:
        credential = self._credentials.get_credentials().get(self.provider)
        if not self.info.requires_key:
            return credential

        validation = validate_api_key(self.provider, credential)
        if not validation.is_valid:
            raise AuthError(f"Invalid API key for {self.info.name}: {validation.message}")
        return credential.strip() if credential else credential

    def _gateway_override(self) -> str | None:
        url = self._credentials.get_gateway_overrides().get(self.provider)
        if not validate_gateway_url(url):
            raise ValidationError(f"Invalid gateway URL for {self.info.name}: {url}")
        return url.rstrip("/") if url else None

    async def _make_request(
        self, prepared: PreparedRequest, signal: asyncio.Event | None
    ) -> Any:
        """Send with retries. 5xx and transport failures back off and retry."""
        abort = asyncio.Event()
        self._abort = abort
        self.last_retry_count = 0
        attempt = 0
        try:
            while True:
                try:
                    return await self._until_aborted(self._send(prepared), abort, signal)
                except (ServerError, NetworkError) as e:
                    if attempt >= self.config.max_retries:
                        raise
                    delay = self.config.retry_delay * 2**attempt
                    logger.warning(
                        f"{self.info.name} request failed ({e}); "
                        f"retry {attempt + 1}/{self.config.max_retries} in {delay:.2f}s"
                    )
                    await self._until_aborted(asyncio.sleep(delay), abort, signal)
                    attempt += 1
                    self.last_retry_count = attempt
        finally:
            if self._abort is abort:
                self._abort = None

    async def _until_aborted(
        self, coro: Awaitable[T], abort: asyncio.Event, signal: asyncio.Event | None
    ) -> T:
        """Await ``coro`` unless one of the abort events fires first."""
        events = [abort] if signal is None else [abort, signal]
        task = asyncio.ensure_future(coro)
        if any(event.is_set() for event in events):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            raise RequestCancelledError()

        waiters = [asyncio.ensure_future(event.wait()) for event in events]
        try:
            done, _ = await asyncio.wait(
                [task, *waiters], return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in waiters:
                waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()

        # The abandoned attempt's own outcome no longer matters
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
        logger.info(f"{self.info.name} request cancelled")
        raise RequestCancelledError()

    async def _send(self, prepared: PreparedRequest) -> Any:
        """One HTTP attempt, mapping failures onto the error taxonomy."""
        session = await self._get_session()
        logger.debug(
            f"{prepared.method} {prepared.url} "
            f"headers={redact_headers(prepared.headers)}"
        )

        try:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            async with session.request(
                prepared.method,
                prepared.url,
                json=prepared.body,
                headers=prepared.headers,
                timeout=timeout,
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise await self._error_from_response(resp)
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    raise InvalidResponseError(
                        f"{self.info.name} returned a non-JSON response"
                    ) from None
                logger.debug(f"{self.info.name} responded with status {resp.status}")
                return data

        except asyncio.TimeoutError:
            raise NetworkError(
                f"{self.info.name} did not respond within {self.config.timeout}s"
            ) from None
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error. Please check your internet connection. ({e})"
            ) from e

    async def _error_from_response(self, resp: aiohttp.ClientResponse) -> APIError:
        try:
            payload = await resp.json(content_type=None)
        except (ValueError, aiohttp.ClientError):
            payload = None

        message = code = error_type = None
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            message = error.get("message")
            code = error.get("code")
            error_type = error.get("type") or error.get("status")
        elif isinstance(error, str):
            message = error

        logger.debug(f"{self.info.name} responded with status {resp.status}: {message}")
        return error_from_status(
            resp.status,
            message if isinstance(message, str) and message else None,
            code=str(code) if code is not None else None,
            type=error_type if isinstance(error_type, str) else None,
        )
