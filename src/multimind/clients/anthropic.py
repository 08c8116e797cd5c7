"""multimind: Anthropic Messages API adapter."""

from __future__ import annotations

from typing import Any

from multimind.clients.base import (
    ClientConfig,
    PreparedRequest,
    choices_content,
    dig,
    result_response,
)
from multimind.errors import InvalidResponseError, ModelListingNotSupportedError
from multimind.models import Model, Provider, TokenUsage

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


def _text_blocks(data: Any) -> str | None:
    blocks = dig(data, "content")
    if not isinstance(blocks, list):
        return None
    text = "".join(
        block["text"]
        for block in blocks
        if isinstance(block, dict)
        and block.get("type", "text") == "text"
        and isinstance(block.get("text"), str)
    )
    return text or None


class AnthropicAdapter:
    """``x-api-key`` authenticated ``/messages`` requests.

    Gateways in front of Anthropic often answer in the chat-completions
    shape, so that and ``result.response`` are accepted besides the native
    ``content`` blocks.
    """

    provider = Provider.ANTHROPIC
    supports_model_listing = False

    def __init__(self, config: ClientConfig | None = None) -> None:
        self.config = config or ClientConfig()

    def format_request(
        self, message: str, model: str, credential: str | None, base_url: str | None
    ) -> PreparedRequest:
        return PreparedRequest(
            url=f"{base_url or DEFAULT_BASE_URL}/messages",
            headers={
                "x-api-key": credential or "",
                "anthropic-version": ANTHROPIC_VERSION,
            },
            body={
                "model": model,
                "messages": [{"role": "user", "content": message}],
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
            },
        )

    def is_valid_response(self, data: Any) -> bool:
        return bool(_text_blocks(data) or choices_content(data) or result_response(data))

    def extract_response_content(self, data: Any) -> str:
        content = _text_blocks(data) or choices_content(data) or result_response(data)
        if content is None:
            raise InvalidResponseError("Invalid response format from Anthropic API")
        return content

    def extract_usage(self, data: Any) -> TokenUsage | None:
        usage = dig(data, "usage")
        if not isinstance(usage, dict):
            return None
        if "input_tokens" in usage or "output_tokens" in usage:
            prompt = usage.get("input_tokens", 0)
            completion = usage.get("output_tokens", 0)
            return TokenUsage(prompt, completion, prompt + completion)
        return TokenUsage(
            usage.get("prompt_tokens", 0),
            usage.get("completion_tokens", 0),
            usage.get("total_tokens", 0),
        )

    def models_request(self, credential: str | None, base_url: str | None) -> PreparedRequest:
        raise ModelListingNotSupportedError("Model fetching not implemented for Anthropic")

    def parse_models_response(self, data: Any) -> list[Model]:
        raise ModelListingNotSupportedError("Model fetching not implemented for Anthropic")
