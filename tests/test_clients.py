"""Tests for ApiClient and the provider adapters using mocked aiohttp sessions."""

import asyncio
import time
from unittest.mock import AsyncMock

import aiohttp
import pytest

from conftest import CLOUDFLARE_GATEWAY, VALID_KEYS, chat_completion, mock_response, mock_session
from multimind.clients import (
    AnthropicAdapter,
    ApiClient,
    ClientConfig,
    CloudflareAdapter,
    GoogleAdapter,
    OpenAIAdapter,
    OpenRouterAdapter,
    ProviderAdapter,
)
from multimind.clients.google import normalize_model_name
from multimind.credentials import StaticCredentialStore
from multimind.errors import (
    AuthError,
    InvalidResponseError,
    ModelListingNotSupportedError,
    NetworkError,
    RequestCancelledError,
    ServerError,
    ValidationError,
)
from multimind.models import Provider

FAST = ClientConfig(retry_delay=0.01)


def make_client(adapter_cls, credentials, config: ClientConfig = FAST) -> ApiClient:
    return ApiClient(adapter_cls(config), credentials, config)


def sent(session) -> tuple[str, str, dict]:
    """(method, url, kwargs) of the last request."""
    args, kwargs = session.request.call_args
    return args[0], args[1], kwargs


class TestSendMessage:
    """Shared behaviour, exercised through the OpenAI adapter."""

    @pytest.mark.asyncio
    async def test_successful_send(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(mock_response(200, chat_completion("  Hi there!  ")))

        result = await client.send_message("Hello", "gpt-3.5-turbo")

        assert result.success is True
        assert result.result.response == "Hi there!"
        assert result.result.usage.total_tokens == 12
        method, url, kwargs = sent(client._session)
        assert method == "POST"
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == f"Bearer {VALID_KEYS[Provider.OPENAI]}"
        assert kwargs["json"]["model"] == "gpt-3.5-turbo"
        assert kwargs["json"]["messages"] == [{"role": "user", "content": "Hello"}]

    @pytest.mark.asyncio
    async def test_gateway_override_replaces_endpoint(self, credentials) -> None:
        credentials.set_gateway_override(Provider.OPENAI, "https://gw.example.com/v1/")
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(mock_response(200, chat_completion()))

        await client.send_message("Hello", "gpt-4")

        _, url, _ = sent(client._session)
        assert url == "https://gw.example.com/v1/chat/completions"

    @pytest.mark.asyncio
    async def test_invalid_gateway_url_rejected(self, credentials) -> None:
        credentials.set_gateway_override(Provider.OPENAI, "not a url")
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session()

        with pytest.raises(ValidationError):
            await client.send_message("Hello", "gpt-4")
        client._session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_server_errors_retried_then_succeed(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(
            mock_response(500),
            mock_response(500),
            mock_response(200, chat_completion("Recovered")),
        )

        start = time.monotonic()
        result = await client.send_message("Hello", "gpt-4")
        elapsed = time.monotonic() - start

        assert result.result.response == "Recovered"
        assert client._session.request.call_count == 3
        assert client.last_retry_count == 2
        # 0.01 + 0.02 of backoff
        assert elapsed >= 0.03

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(*[mock_response(503) for _ in range(4)])

        with pytest.raises(ServerError) as exc_info:
            await client.send_message("Hello", "gpt-4")

        assert exc_info.value.status == 503
        assert exc_info.value.retryable is True
        assert client._session.request.call_count == 4

    @pytest.mark.asyncio
    async def test_unauthorized_not_retried(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(
            mock_response(
                401,
                {"error": {"message": "Incorrect API key provided", "code": "invalid_api_key"}},
            )
        )

        with pytest.raises(AuthError) as exc_info:
            await client.send_message("Hello", "gpt-4")

        assert exc_info.value.status == 401
        assert exc_info.value.message == "Incorrect API key provided"
        assert exc_info.value.code == "invalid_api_key"
        assert client._session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_network_error_retried(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(
            aiohttp.ClientConnectionError("Connection reset"),
            mock_response(200, chat_completion("ok")),
        )

        result = await client.send_message("Hello", "gpt-4")

        assert result.result.response == "ok"
        assert client.last_retry_count == 1

    @pytest.mark.asyncio
    async def test_network_error_surfaces_as_status_zero(self, credentials) -> None:
        config = ClientConfig(max_retries=0)
        client = make_client(OpenAIAdapter, credentials, config)
        client._session = mock_session(aiohttp.ClientConnectionError("refused"))

        with pytest.raises(NetworkError) as exc_info:
            await client.send_message("Hello", "gpt-4")

        assert exc_info.value.status == 0

    @pytest.mark.asyncio
    async def test_empty_choices_is_invalid_response(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(mock_response(200, {"choices": []}))

        with pytest.raises(InvalidResponseError):
            await client.send_message("Hello", "gpt-4")
        assert client._session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_non_json_body_is_invalid_response(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(mock_response(200, json_error=True))

        with pytest.raises(InvalidResponseError):
            await client.send_message("Hello", "gpt-4")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message,model",
        [("", "gpt-4"), ("   ", "gpt-4"), ("x" * 32001, "gpt-4"), ("Hello", "")],
    )
    async def test_validation_before_io(self, credentials, message, model) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session()

        with pytest.raises(ValidationError) as exc_info:
            await client.send_message(message, model)

        assert exc_info.value.status == 400
        client._session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_message_at_length_limit_accepted(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(mock_response(200, chat_completion()))

        await client.send_message("x" * 32000, "gpt-4")

        assert client._session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_malformed_key_rejected_before_io(self) -> None:
        store = StaticCredentialStore({Provider.OPENAI: "not-a-key"})
        client = make_client(OpenAIAdapter, store)
        client._session = mock_session()

        with pytest.raises(AuthError):
            await client.send_message("Hello", "gpt-4")
        client._session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_key_rejected(self) -> None:
        client = make_client(OpenAIAdapter, StaticCredentialStore())
        client._session = mock_session()

        with pytest.raises(AuthError, match="API key is required"):
            await client.send_message("Hello", "gpt-4")


class TestCancellation:
    """Caller signal and stop_response abort an in-flight request."""

    @staticmethod
    def hanging_response() -> AsyncMock:
        async def hang(*args) -> None:
            await asyncio.sleep(10)

        return AsyncMock(
            __aenter__=AsyncMock(side_effect=hang),
            __aexit__=AsyncMock(return_value=False),
        )

    def hanging_session(self) -> AsyncMock:
        return mock_session(self.hanging_response())

    @pytest.mark.asyncio
    async def test_signal_cancels_request(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = self.hanging_session()
        signal = asyncio.Event()

        task = asyncio.create_task(client.send_message("Hello", "gpt-4", signal=signal))
        await asyncio.sleep(0.01)
        signal.set()

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(task, 1.0)
        assert client._session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_stop_response_cancels_request(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = self.hanging_session()

        task = asyncio.create_task(client.send_message("Hello", "gpt-4"))
        await asyncio.sleep(0.01)
        client.stop_response()

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(task, 1.0)

    @pytest.mark.asyncio
    async def test_stop_response_targets_latest_send(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(self.hanging_response(), self.hanging_response())

        first = asyncio.create_task(client.send_message("First", "gpt-4"))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(client.send_message("Second", "gpt-4"))
        await asyncio.sleep(0.01)
        client.stop_response()

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(second, 1.0)
        assert not first.done()

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

    @pytest.mark.asyncio
    async def test_already_set_signal_never_sends(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(mock_response(200, chat_completion()))
        signal = asyncio.Event()
        signal.set()

        with pytest.raises(RequestCancelledError):
            await client.send_message("Hello", "gpt-4", signal=signal)
        client._session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_stops_retrying(self, credentials) -> None:
        config = ClientConfig(retry_delay=5.0)
        client = make_client(OpenAIAdapter, credentials, config)
        client._session = mock_session(mock_response(500), mock_response(200, chat_completion()))
        signal = asyncio.Event()

        task = asyncio.create_task(client.send_message("Hello", "gpt-4", signal=signal))
        await asyncio.sleep(0.01)
        signal.set()

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(task, 1.0)
        assert client._session.request.call_count == 1


class TestAnthropicAdapter:
    @pytest.mark.asyncio
    async def test_native_content_blocks(self, credentials) -> None:
        client = make_client(AnthropicAdapter, credentials)
        client._session = mock_session(
            mock_response(
                200,
                {
                    "content": [{"type": "text", "text": "Bonjour"}],
                    "usage": {"input_tokens": 4, "output_tokens": 6},
                },
            )
        )

        result = await client.send_message("Hello", "claude-3-haiku-20240307")

        assert result.result.response == "Bonjour"
        assert result.result.usage.total_tokens == 10
        _, url, kwargs = sent(client._session)
        assert url == "https://api.anthropic.com/v1/messages"
        assert kwargs["headers"]["x-api-key"] == VALID_KEYS[Provider.ANTHROPIC]
        assert kwargs["headers"]["anthropic-version"] == "2023-06-01"
        assert "Authorization" not in kwargs["headers"]

    @pytest.mark.asyncio
    async def test_gateway_chat_completions_shape(self, credentials) -> None:
        client = make_client(AnthropicAdapter, credentials)
        client._session = mock_session(mock_response(200, chat_completion("Via gateway")))

        result = await client.send_message("Hello", "claude-2.1")

        assert result.result.response == "Via gateway"

    @pytest.mark.asyncio
    async def test_non_string_text_block_is_invalid_response(self, credentials) -> None:
        client = make_client(AnthropicAdapter, credentials)
        client._session = mock_session(
            mock_response(200, {"content": [{"type": "text", "text": None}]})
        )

        with pytest.raises(InvalidResponseError) as exc_info:
            await client.send_message("Hello", "claude-3-haiku-20240307")

        assert exc_info.value.status == 500
        assert client._session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_skips_non_string_blocks_beside_text(self, credentials) -> None:
        client = make_client(AnthropicAdapter, credentials)
        client._session = mock_session(
            mock_response(
                200,
                {"content": [{"type": "text", "text": 42}, {"type": "text", "text": "Salut"}]},
            )
        )

        result = await client.send_message("Hello", "claude-3-haiku-20240307")

        assert result.result.response == "Salut"

    @pytest.mark.asyncio
    async def test_model_listing_not_supported(self, credentials) -> None:
        client = make_client(AnthropicAdapter, credentials)

        with pytest.raises(ModelListingNotSupportedError):
            await client.fetch_models()


class TestGoogleAdapter:
    @pytest.mark.asyncio
    async def test_generate_content(self, credentials) -> None:
        client = make_client(GoogleAdapter, credentials)
        client._session = mock_session(
            mock_response(
                200,
                {
                    "candidates": [{"content": {"parts": [{"text": "Gemini says hi"}]}}],
                    "usageMetadata": {
                        "promptTokenCount": 3,
                        "candidatesTokenCount": 4,
                        "totalTokenCount": 7,
                    },
                },
            )
        )

        result = await client.send_message("Hello", "gemini-pro")

        assert result.result.response == "Gemini says hi"
        assert result.result.usage.total_tokens == 7
        _, url, kwargs = sent(client._session)
        assert url.endswith("/models/gemini-pro:generateContent")
        assert kwargs["headers"]["x-goog-api-key"] == VALID_KEYS[Provider.GOOGLE]
        assert kwargs["json"]["contents"][0]["parts"][0]["text"] == "Hello"
        assert kwargs["json"]["generationConfig"]["maxOutputTokens"] == 2048

    @pytest.mark.asyncio
    async def test_error_object_in_body(self, credentials) -> None:
        client = make_client(GoogleAdapter, credentials)
        client._session = mock_session(
            mock_response(
                200,
                {"error": {"code": 400, "message": "API key not valid", "status": "INVALID_ARGUMENT"}},
            )
        )

        with pytest.raises(ValidationError, match="API key not valid"):
            await client.send_message("Hello", "gemini-pro")

    def test_normalize_model_name(self) -> None:
        assert normalize_model_name("gemini-pro") == "models/gemini-pro"
        assert normalize_model_name("models/gemini-pro") == "models/gemini-pro"

    @pytest.mark.asyncio
    async def test_fetch_models_filters_to_gemini(self, credentials) -> None:
        client = make_client(GoogleAdapter, credentials)
        client._session = mock_session(
            mock_response(
                200,
                {
                    "models": [
                        {
                            "name": "models/gemini-1.5-pro",
                            "displayName": "Gemini 1.5 Pro",
                            "supportedGenerationMethods": ["generateContent"],
                            "inputTokenLimit": 1048576,
                        },
                        {
                            "name": "models/embedding-001",
                            "supportedGenerationMethods": ["embedContent"],
                        },
                        {
                            "name": "models/gemini-embed",
                            "supportedGenerationMethods": ["embedContent"],
                        },
                    ]
                },
            )
        )

        models = await client.fetch_models()

        assert [m.id for m in models] == ["gemini-1.5-pro"]
        assert models[0].name == "Gemini 1.5 Pro"
        assert models[0].context_length == 1048576
        method, _, _ = sent(client._session)
        assert method == "GET"


class TestOpenRouterAdapter:
    @pytest.mark.asyncio
    async def test_auto_resolves_to_mixtral(self, credentials) -> None:
        client = make_client(OpenRouterAdapter, credentials)
        client._session = mock_session(mock_response(200, chat_completion()))

        await client.send_message("Hello", "auto")

        _, url, kwargs = sent(client._session)
        assert url == "https://openrouter.ai/api/v1/chat/completions"
        assert kwargs["json"]["model"] == "mistralai/mixtral-8x7b-instruct"
        assert kwargs["headers"]["HTTP-Referer"] == "http://localhost"
        assert kwargs["headers"]["X-Title"] == "MultiMind Chat"

    @pytest.mark.asyncio
    async def test_fetch_models_excludes_broken_entries(self, credentials) -> None:
        client = make_client(OpenRouterAdapter, credentials)
        client._session = mock_session(
            mock_response(
                200,
                {
                    "data": [
                        {"id": "openai/gpt-4", "name": "GPT-4", "context_length": 8192},
                        {"id": "acme/test-model", "name": "Test"},
                        {"id": "acme/old", "name": "Old", "description": "Deprecated model"},
                        {"id": "meta/llama-3-70b", "name": "Llama 3 70B"},
                    ]
                },
            )
        )

        models = await client.fetch_models()

        assert [m.id for m in models] == ["auto", "openai/gpt-4", "meta/llama-3-70b"]
        assert models[0].is_auto is True
        assert models[1].context_length == 8192


class TestOpenAIModelListing:
    @pytest.mark.asyncio
    async def test_fetch_models_keeps_chat_gpt_models(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        client._session = mock_session(
            mock_response(
                200,
                {
                    "data": [
                        {"id": "gpt-4-turbo"},
                        {"id": "gpt-3.5-turbo-instruct"},
                        {"id": "whisper-1"},
                        {"id": "gpt-3.5-turbo"},
                    ]
                },
            )
        )

        models = await client.fetch_models()

        assert [m.id for m in models] == ["gpt-4-turbo", "gpt-3.5-turbo"]
        assert models[0].name == "Gpt 4 Turbo"
        _, url, _ = sent(client._session)
        assert url == "https://api.openai.com/v1/models"


class TestCloudflareAdapter:
    @pytest.mark.asyncio
    async def test_posts_to_account_endpoint(self, credentials) -> None:
        client = make_client(CloudflareAdapter, credentials)
        client._session = mock_session(
            mock_response(200, {"result": {"response": "Edge reply"}, "success": True})
        )

        result = await client.send_message("Hello", "@cf/meta/llama-2-7b-chat-int8")

        assert result.result.response == "Edge reply"
        assert result.result.usage is None
        _, url, kwargs = sent(client._session)
        assert url == f"{CLOUDFLARE_GATEWAY}/@cf/meta/llama-2-7b-chat-int8"
        assert kwargs["headers"]["Authorization"] == f"Bearer {VALID_KEYS[Provider.CLOUDFLARE]}"

    @pytest.mark.asyncio
    async def test_missing_gateway_is_validation_error(self) -> None:
        store = StaticCredentialStore({Provider.CLOUDFLARE: VALID_KEYS[Provider.CLOUDFLARE]})
        client = make_client(CloudflareAdapter, store)
        client._session = mock_session()

        with pytest.raises(ValidationError, match="gateway URL"):
            await client.send_message("Hello", "@cf/meta/llama-2-7b-chat-int8")
        client._session.request.assert_not_called()


class TestClose:
    @pytest.mark.asyncio
    async def test_close_releases_session(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        session = mock_session()
        session.close = AsyncMock()
        client._session = session

        await client.close()

        session.close.assert_awaited_once()
        assert client._session is None

    @pytest.mark.asyncio
    async def test_session_created_lazily(self, credentials) -> None:
        client = make_client(OpenAIAdapter, credentials)
        assert client._session is None

        session = await client._get_session()
        try:
            assert isinstance(session, aiohttp.ClientSession)
            assert await client._get_session() is session
        finally:
            await client.close()


def test_adapters_satisfy_protocol() -> None:
    for adapter_cls in (
        OpenAIAdapter,
        AnthropicAdapter,
        GoogleAdapter,
        OpenRouterAdapter,
        CloudflareAdapter,
    ):
        assert isinstance(adapter_cls(), ProviderAdapter)