"""multimind: Cloudflare Workers AI adapter."""

from __future__ import annotations

from typing import Any

from multimind.clients.base import (
    ClientConfig,
    PreparedRequest,
    choices_content,
    result_response,
)
from multimind.errors import (
    InvalidResponseError,
    ModelListingNotSupportedError,
    ValidationError,
)
from multimind.models import Model, Provider, TokenUsage


class CloudflareAdapter:
    """Bearer-authenticated ``{base}/{model}`` requests.

    Workers AI endpoints are scoped to an account
    (``https://api.cloudflare.com/client/v4/accounts/<id>/ai/run``), so the
    base URL must come from the gateway override.
    """

    provider = Provider.CLOUDFLARE
    supports_model_listing = False

    def __init__(self, config: ClientConfig | None = None) -> None:
        self.config = config or ClientConfig()

    def format_request(
        self, message: str, model: str, credential: str | None, base_url: str | None
    ) -> PreparedRequest:
        if not base_url:
            raise ValidationError(
                "Cloudflare requires a gateway URL pointing at your account's Workers AI endpoint"
            )
        return PreparedRequest(
            url=f"{base_url}/{model}",
            headers={"Authorization": f"Bearer {credential}"},
            body={
                "messages": [{"role": "user", "content": message}],
                "max_tokens": self.config.max_tokens,
                "temperature": self.config.temperature,
            },
        )

    def is_valid_response(self, data: Any) -> bool:
        return bool(result_response(data) or choices_content(data))

    def extract_response_content(self, data: Any) -> str:
        content = result_response(data) or choices_content(data)
        if content is None:
            raise InvalidResponseError("Invalid response format from Cloudflare API")
        return content

    def extract_usage(self, data: Any) -> TokenUsage | None:
        return None

    def models_request(self, credential: str | None, base_url: str | None) -> PreparedRequest:
        raise ModelListingNotSupportedError("Model fetching not implemented for Cloudflare")

    def parse_models_response(self, data: Any) -> list[Model]:
        raise ModelListingNotSupportedError("Model fetching not implemented for Cloudflare")
