"""multimind: Credential and gateway URL format checks."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

from multimind.models import Provider


@dataclass(frozen=True)
class KeyValidation:
    is_valid: bool
    message: str


def validate_api_key(provider: Provider, key: str | None) -> KeyValidation:
    """Check that a credential looks like one the provider issues.

    This is a format check only; it never contacts the provider.
    """
    if not key or not key.strip():
        return KeyValidation(False, "API key is required")

    key = key.strip()

    if provider is Provider.OPENAI:
        if not key.startswith("sk-") or len(key) < 40:
            return KeyValidation(False, "Invalid OpenAI key format (should start with sk-)")
    elif provider is Provider.ANTHROPIC:
        if not key.startswith("sk-ant-"):
            return KeyValidation(False, "Invalid Anthropic key format (should start with sk-ant-)")
    elif provider is Provider.GOOGLE:
        if len(key) < 20:
            return KeyValidation(False, "Invalid Google API key length")
    elif provider is Provider.OPENROUTER:
        if not key.startswith("sk-or-"):
            return KeyValidation(False, "Invalid OpenRouter key format (should start with sk-or-)")
    elif provider is Provider.CLOUDFLARE:
        if len(key) < 40:
            return KeyValidation(False, "Invalid Cloudflare API token length")
    else:
        return KeyValidation(False, "Unknown provider")

    return KeyValidation(True, "Valid API key")


def validate_gateway_url(url: str | None) -> bool:
    """Gateway overrides are optional; when given they must be absolute http(s) URLs."""
    if not url:
        return True
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
