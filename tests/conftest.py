"""Shared test fixtures, fake clients and aiohttp mocks for multimind tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from multimind.credentials import StaticCredentialStore
from multimind.errors import RequestCancelledError
from multimind.models import ChatResponse, ChatResult, Provider, TokenUsage

VALID_KEYS: dict[Provider, str] = {
    Provider.OPENAI: "sk-" + "a" * 45,
    Provider.ANTHROPIC: "sk-ant-api03-" + "b" * 30,
    Provider.GOOGLE: "AIza" + "c" * 35,
    Provider.OPENROUTER: "sk-or-v1-" + "d" * 40,
    Provider.CLOUDFLARE: "e" * 40,
}

CLOUDFLARE_GATEWAY = "https://api.cloudflare.com/client/v4/accounts/abc123/ai/run"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockClient:
    """Stand-in for ``ApiClient`` used by engine tests.

    Replies with ``response_content`` unless a scripted failure is queued for
    the message. With ``delay_seconds`` it waits, honouring the abort signal
    the way the real client does.
    """

    def __init__(
        self,
        response_content: str = "Mock response",
        failures: dict[str, list[BaseException]] | None = None,
        fail_with: BaseException | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.response_content = response_content
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.fail_with = fail_with
        self.delay_seconds = delay_seconds
        self.call_count = 0
        self.messages: list[str] = []
        self.last_model: str | None = None
        self.call_times: list[float] = []

    async def send_message(
        self, message: str, model: str, signal: asyncio.Event | None = None
    ) -> ChatResult:
        self.call_count += 1
        self.messages.append(message)
        self.call_times.append(asyncio.get_running_loop().time())
        self.last_model = model

        if self.delay_seconds > 0:
            if signal is None:
                await asyncio.sleep(self.delay_seconds)
            else:
                try:
                    await asyncio.wait_for(signal.wait(), self.delay_seconds)
                except asyncio.TimeoutError:
                    pass
                else:
                    raise RequestCancelledError()

        scripted = self.failures.get(message)
        if scripted:
            raise scripted.pop(0)
        if self.fail_with is not None:
            raise self.fail_with

        return ChatResult(
            success=True,
            result=ChatResponse(
                response=f"{self.response_content}: {message}",
                usage=TokenUsage(1, 2, 3),
            ),
        )


class FakeClientFactory:
    """``ClientFactory`` look-alike handing out ``MockClient`` instances."""

    def __init__(self, clients: dict[Provider, MockClient] | None = None) -> None:
        self.clients = clients or {}

    def get(self, provider: Provider | str) -> MockClient:
        key = Provider(provider)
        if key not in self.clients:
            self.clients[key] = MockClient()
        return self.clients[key]


class FakeTerminal:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def writeln(self, text: str) -> None:
        self.lines.append(text)


def mock_response(status: int = 200, payload: Any = None, json_error: bool = False) -> AsyncMock:
    """An aiohttp response usable inside ``async with session.request(...)``."""
    resp = AsyncMock()
    resp.status = status
    if json_error:
        resp.json = AsyncMock(side_effect=ValueError("Expecting value"))
    else:
        resp.json = AsyncMock(return_value=payload)
    return AsyncMock(
        __aenter__=AsyncMock(return_value=resp),
        __aexit__=AsyncMock(return_value=False),
    )


def mock_session(*responses: Any) -> AsyncMock:
    """Session whose ``request`` yields ``responses`` in order.

    Exceptions in ``responses`` are raised by the ``request`` call itself.
    """
    session = AsyncMock()
    session.closed = False
    session.request = MagicMock(side_effect=list(responses))
    return session


def chat_completion(content: str = "Hello!") -> dict[str, Any]:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 5, "completion_tokens": 7, "total_tokens": 12},
    }


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def credentials() -> StaticCredentialStore:
    """Well-formed keys for every provider plus the Cloudflare gateway."""
    return StaticCredentialStore(
        VALID_KEYS, {Provider.CLOUDFLARE: CLOUDFLARE_GATEWAY}
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_client() -> MockClient:
    """A successful mock client."""
    return MockClient()
