"""
multimind: OpenRouter adapter.

OpenRouter speaks the chat-completions dialect and aggregates many vendors.
It is the only provider where the ``auto`` model is offered.
"""

from __future__ import annotations

import logging
from typing import Any

from multimind.clients.base import (
    ClientConfig,
    PreparedRequest,
    choices_content,
    openai_usage,
    result_response,
)
from multimind.errors import InvalidResponseError
from multimind.models import Capability, Model, Provider, TokenUsage
from multimind.providers import AUTO_MODEL_ID, OPENROUTER_AUTO_TARGET

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

EXCLUDE_PATTERNS = ("broken", "debug", "test-", "deprecated")

AUTO_MODEL = Model(
    id=AUTO_MODEL_ID,
    name="Auto (Mixtral 8x7B)",
    provider=Provider.OPENROUTER,
    capabilities=(Capability.CHAT, Capability.CODE, Capability.ANALYSIS),
    context_length=32768,
    description="Automatically selects Mixtral 8x7B for optimal performance",
    is_auto=True,
)


class OpenRouterAdapter:
    """Bearer-authenticated chat completions with app attribution headers."""

    provider = Provider.OPENROUTER
    supports_model_listing = True

    def __init__(self, config: ClientConfig | None = None) -> None:
        self.config = config or ClientConfig()

    def _headers(self, credential: str | None) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential}",
            "HTTP-Referer": self.config.app_url,
            "X-Title": self.config.app_title,
        }

    def format_request(
        self, message: str, model: str, credential: str | None, base_url: str | None
    ) -> PreparedRequest:
        return PreparedRequest(
            url=f"{base_url or DEFAULT_BASE_URL}/chat/completions",
            headers=self._headers(credential),
            body={
                "model": OPENROUTER_AUTO_TARGET if model == AUTO_MODEL_ID else model,
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
            raise InvalidResponseError("Invalid response format from OpenRouter API")
        return content

    def extract_usage(self, data: Any) -> TokenUsage | None:
        return openai_usage(data)

    def models_request(self, credential: str | None, base_url: str | None) -> PreparedRequest:
        return PreparedRequest(
            url=f"{base_url or DEFAULT_BASE_URL}/models",
            headers=self._headers(credential),
            method="GET",
        )

    def parse_models_response(self, data: Any) -> list[Model]:
        entries = data.get("data") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise InvalidResponseError("Invalid models response from OpenRouter")

        logger.debug(f"Processing {len(entries)} models from OpenRouter")
        models = [AUTO_MODEL]
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            if _is_excluded(entry):
                logger.debug(f"Excluding model: {entry['id']}")
                continue
            name = entry.get("name") or entry["id"]
            models.append(
                Model(
                    id=entry["id"],
                    name=name,
                    provider=Provider.OPENROUTER,
                    capabilities=(Capability.CHAT, Capability.CODE),
                    context_length=entry.get("context_length") or 4096,
                    description=entry.get("description")
                    or f"{name} model available through OpenRouter",
                )
            )
        return models


def _is_excluded(entry: dict[str, Any]) -> bool:
    haystacks = [
        str(entry.get(key) or "").lower() for key in ("id", "name", "description")
    ]
    return any(pattern in text for pattern in EXCLUDE_PATTERNS for text in haystacks)
