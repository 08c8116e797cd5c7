"""
multimind: Credential sources.

The core never persists secrets. It reads them through a ``CredentialStore``
right before each request, so a key changed in settings takes effect on the
next send (after ``ClientFactory.clear_cache()`` for cached sessions).
"""

from __future__ import annotations

import os
from typing import Mapping, Protocol, runtime_checkable

from multimind.models import Provider

ENV_KEYS: dict[Provider, str] = {
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
    Provider.GOOGLE: "GOOGLE_API_KEY",
    Provider.OPENROUTER: "OPENROUTER_API_KEY",
    Provider.CLOUDFLARE: "CLOUDFLARE_API_TOKEN",
}


@runtime_checkable
class CredentialStore(Protocol):
    """Where API keys and gateway overrides come from."""

    def get_credentials(self) -> Mapping[Provider, str]:
        """Provider -> secret. Missing providers are simply absent."""
        ...

    def get_gateway_overrides(self) -> Mapping[Provider, str]:
        """Provider -> base URL replacing the provider's default endpoint."""
        ...


class StaticCredentialStore:
    """In-memory store, typically filled from a settings dialog.

    Example::

        store = StaticCredentialStore({Provider.OPENAI: "sk-..."})
        store.set_gateway_override(Provider.OPENAI, "https://gateway.example.com/v1")
    """

    def __init__(
        self,
        credentials: Mapping[Provider, str] | None = None,
        gateway_overrides: Mapping[Provider, str] | None = None,
    ) -> None:
        self._credentials = dict(credentials or {})
        self._overrides = dict(gateway_overrides or {})

    def get_credentials(self) -> dict[Provider, str]:
        return dict(self._credentials)

    def get_gateway_overrides(self) -> dict[Provider, str]:
        return dict(self._overrides)

    def set_credential(self, provider: Provider, secret: str | None) -> None:
        if secret:
            self._credentials[provider] = secret
        else:
            self._credentials.pop(provider, None)

    def set_gateway_override(self, provider: Provider, url: str | None) -> None:
        if url:
            self._overrides[provider] = url.rstrip("/")
        else:
            self._overrides.pop(provider, None)


class EnvCredentialStore:
    """Reads ``<PROVIDER>_API_KEY`` and ``<PROVIDER>_BASE_URL`` variables."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def get_credentials(self) -> dict[Provider, str]:
        result: dict[Provider, str] = {}
        for provider, var in ENV_KEYS.items():
            value = self._environ.get(var)
            if value:
                result[provider] = value
        return result

    def get_gateway_overrides(self) -> dict[Provider, str]:
        result: dict[Provider, str] = {}
        for provider in Provider:
            value = self._environ.get(f"{provider.name}_BASE_URL")
            if value:
                result[provider] = value.rstrip("/")
        return result
