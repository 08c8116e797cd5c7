"""
multimind: Google Generative Language (Gemini) adapter.

Gemini uses its own envelope: the prompt goes in ``contents[].parts[]`` and
the answer comes back in ``candidates[0].content.parts[0].text``. Errors can
also arrive inside a 200 body as a top-level ``error`` object.
"""

from __future__ import annotations

from typing import Any

from multimind.clients.base import ClientConfig, PreparedRequest, dig, title_case_id
from multimind.errors import InvalidResponseError, error_from_status
from multimind.models import Capability, Model, Provider, TokenUsage

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def normalize_model_name(model: str) -> str:
    """Ensure exactly one ``models/`` prefix."""
    clean = model.removeprefix("models/")
    return clean if "/" in clean else f"models/{clean}"


class GoogleAdapter:
    """``x-goog-api-key`` authenticated ``:generateContent`` requests."""

    provider = Provider.GOOGLE
    supports_model_listing = True

    def __init__(self, config: ClientConfig | None = None) -> None:
        self.config = config or ClientConfig()

    def format_request(
        self, message: str, model: str, credential: str | None, base_url: str | None
    ) -> PreparedRequest:
        return PreparedRequest(
            url=f"{base_url or DEFAULT_BASE_URL}/{normalize_model_name(model)}:generateContent",
            headers={"x-goog-api-key": credential or ""},
            body={
                "contents": [{"role": "user", "parts": [{"text": message}]}],
                "generationConfig": {
                    "temperature": self.config.temperature,
                    "topK": 40,
                    "topP": 0.95,
                    "maxOutputTokens": self.config.max_tokens,
                },
            },
        )

    def is_valid_response(self, data: Any) -> bool:
        error = dig(data, "error")
        if isinstance(error, dict):
            status = error.get("code")
            raise error_from_status(
                status if isinstance(status, int) else 500,
                error.get("message") or None,
                code="google_api_error",
                type=error.get("status"),
            )
        text = dig(data, "candidates", 0, "content", "parts", 0, "text")
        return isinstance(text, str) and bool(text)

    def extract_response_content(self, data: Any) -> str:
        text = dig(data, "candidates", 0, "content", "parts", 0, "text")
        if not isinstance(text, str) or not text:
            raise InvalidResponseError("Invalid response format from Google API")
        return text

    def extract_usage(self, data: Any) -> TokenUsage | None:
        usage = dig(data, "usageMetadata")
        if not isinstance(usage, dict):
            return None
        return TokenUsage(
            prompt_tokens=usage.get("promptTokenCount", 0),
            completion_tokens=usage.get("candidatesTokenCount", 0),
            total_tokens=usage.get("totalTokenCount", 0),
        )

    def models_request(self, credential: str | None, base_url: str | None) -> PreparedRequest:
        return PreparedRequest(
            url=f"{base_url or DEFAULT_BASE_URL}/models",
            headers={"x-goog-api-key": credential or ""},
            method="GET",
        )

    def parse_models_response(self, data: Any) -> list[Model]:
        entries = dig(data, "models")
        if not isinstance(entries, list):
            raise InvalidResponseError("Invalid response from Google API")

        models = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            name = entry.get("name", "")
            methods = entry.get("supportedGenerationMethods") or entry.get(
                "supported_generation_methods", []
            )
            if "gemini" not in name or "generateContent" not in methods:
                continue

            model_id = name.rsplit("/", 1)[-1]
            capabilities = [Capability.CHAT]
            if "vision" in model_id.lower():
                capabilities.append(Capability.VISION)
            capabilities.append(Capability.CODE)
            if "pro" in model_id:
                capabilities.append(Capability.ANALYSIS)

            models.append(
                Model(
                    id=model_id,
                    name=entry.get("displayName") or title_case_id(model_id),
                    provider=Provider.GOOGLE,
                    capabilities=tuple(capabilities),
                    context_length=entry.get("inputTokenLimit") or 32000,
                    description=entry.get("description"),
                )
            )
        return models
