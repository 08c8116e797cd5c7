"""
multimind: OpenAI chat-completions adapter.

Also the reference shape for any gateway that exposes
``/chat/completions`` with bearer authentication.
"""

from __future__ import annotations

from typing import Any

from multimind.clients.base import (
    ClientConfig,
    PreparedRequest,
    choices_content,
    openai_usage,
    result_response,
    title_case_id,
)
from multimind.errors import InvalidResponseError
from multimind.models import Capability, Model, Provider, TokenUsage

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIAdapter:
    """Bearer-authenticated ``/chat/completions`` requests."""

    provider = Provider.OPENAI
    supports_model_listing = True

    def __init__(self, config: ClientConfig | None = None) -> None:
        self.config = config or ClientConfig()

    def format_request(
        self, message: str, model: str, credential: str | None, base_url: str | None
    ) -> PreparedRequest:
        return PreparedRequest(
            url=f"{base_url or DEFAULT_BASE_URL}/chat/completions",
            headers={"Authorization": f"Bearer {credential}"},
            body={
                "model": model,
                "messages": [{"role": "user", "content": message}],
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
            },
        )

    def is_valid_response(self, data: Any) -> bool:
        return bool(choices_content(data) or result_response(data))

    def extract_response_content(self, data: Any) -> str:
        content = choices_content(data) or result_response(data)
        if content is None:
            raise InvalidResponseError("Invalid response format from OpenAI API")
        return content

    def extract_usage(self, data: Any) -> TokenUsage | None:
        return openai_usage(data)

    def models_request(self, credential: str | None, base_url: str | None) -> PreparedRequest:
        return PreparedRequest(
            url=f"{base_url or DEFAULT_BASE_URL}/models",
            headers={"Authorization": f"Bearer {credential}"},
            method="GET",
        )

    def parse_models_response(self, data: Any) -> list[Model]:
        entries = data.get("data") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise InvalidResponseError("Invalid models response from OpenAI")

        models = []
        for entry in entries:
            model_id = entry.get("id", "") if isinstance(entry, dict) else ""
            # Only chat models
            if "gpt" not in model_id or "instruct" in model_id:
                continue
            capabilities = [Capability.CHAT, Capability.CODE]
            if "gpt-4" in model_id:
                capabilities.append(Capability.ANALYSIS)
            models.append(
                Model(
                    id=model_id,
                    name=title_case_id(model_id),
                    provider=Provider.OPENAI,
                    capabilities=tuple(capabilities),
                )
            )
        return models
