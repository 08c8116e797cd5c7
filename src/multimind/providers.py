"""
multimind: Provider registry.

Static metadata for every supported provider, the built-in model catalogs,
and the default/best model selection rules.
"""

from __future__ import annotations

import re

from multimind.models import Capability, Model, Provider, ProviderInfo

CHAT, CODE, ANALYSIS, VISION = (
    Capability.CHAT,
    Capability.CODE,
    Capability.ANALYSIS,
    Capability.VISION,
)

AUTO_MODEL_ID = "auto"

PROVIDERS: dict[Provider, ProviderInfo] = {
    Provider.OPENAI: ProviderInfo(
        provider=Provider.OPENAI,
        name="OpenAI",
        description="GPT-3.5, GPT-4, and DALL-E models",
        requires_key=True,
        supports_proxy=True,
        capabilities=(CHAT, CODE, ANALYSIS),
    ),
    Provider.ANTHROPIC: ProviderInfo(
        provider=Provider.ANTHROPIC,
        name="Anthropic",
        description="Claude models with long context support",
        requires_key=True,
        supports_proxy=True,
        capabilities=(CHAT, CODE, ANALYSIS),
    ),
    Provider.GOOGLE: ProviderInfo(
        provider=Provider.GOOGLE,
        name="Google AI",
        description="Gemini series models including Pro 1.5",
        requires_key=True,
        supports_proxy=True,
        capabilities=(CHAT, CODE, ANALYSIS, VISION),
    ),
    Provider.OPENROUTER: ProviderInfo(
        provider=Provider.OPENROUTER,
        name="OpenRouter",
        description="Access to multiple model providers",
        requires_key=True,
        supports_proxy=True,
        capabilities=(CHAT, CODE),
    ),
    Provider.CLOUDFLARE: ProviderInfo(
        provider=Provider.CLOUDFLARE,
        name="Cloudflare Workers AI",
        description="Open models served from Cloudflare's edge",
        requires_key=True,
        supports_proxy=True,
        capabilities=(CHAT, CODE),
    ),
}


def _model(
    provider: Provider,
    model_id: str,
    name: str,
    capabilities: tuple[Capability, ...],
    context_length: int,
    description: str,
) -> Model:
    return Model(
        id=model_id,
        name=name,
        provider=provider,
        capabilities=capabilities,
        context_length=context_length,
        description=description,
    )


_STATIC_MODELS: dict[Provider, tuple[Model, ...]] = {
    Provider.OPENAI: (
        _model(Provider.OPENAI, "gpt-4-1106-preview", "GPT-4 Turbo", (CHAT, CODE, ANALYSIS),
               128000, "Most powerful model with 128k context window"),
        _model(Provider.OPENAI, "gpt-4-0125-preview", "GPT-4 Turbo (0125)", (CHAT, CODE, ANALYSIS),
               128000, "Latest GPT-4 model with improved accuracy"),
        _model(Provider.OPENAI, "gpt-4-vision-preview", "GPT-4 Vision",
               (CHAT, CODE, ANALYSIS, VISION), 128000,
               "GPT-4 with image understanding capabilities"),
        _model(Provider.OPENAI, "gpt-4", "GPT-4", (CHAT, CODE, ANALYSIS),
               8192, "Stable GPT-4 release"),
        _model(Provider.OPENAI, "gpt-4-32k", "GPT-4 (32K)", (CHAT, CODE, ANALYSIS),
               32768, "GPT-4 with extended context window"),
        _model(Provider.OPENAI, "gpt-3.5-turbo-0125", "GPT-3.5 Turbo (0125)", (CHAT, CODE),
               16385, "Latest GPT-3.5 model with improved instruction following"),
        _model(Provider.OPENAI, "gpt-3.5-turbo", "GPT-3.5 Turbo", (CHAT, CODE),
               16384, "Fast and efficient for most tasks"),
    ),
    Provider.ANTHROPIC: (
        _model(Provider.ANTHROPIC, "claude-3-opus-20240229", "Claude 3 Opus",
               (CHAT, CODE, ANALYSIS, VISION), 200000,
               "Most powerful Claude model with highest reasoning capabilities"),
        _model(Provider.ANTHROPIC, "claude-3-sonnet-20240229", "Claude 3 Sonnet",
               (CHAT, CODE, ANALYSIS, VISION), 200000, "Balanced performance and efficiency"),
        _model(Provider.ANTHROPIC, "claude-3-haiku-20240307", "Claude 3 Haiku",
               (CHAT, CODE, VISION), 200000,
               "Fastest Claude model optimized for quick responses"),
        _model(Provider.ANTHROPIC, "claude-2.1", "Claude 2.1", (CHAT, CODE, ANALYSIS),
               200000, "Previous generation Claude with strong reliability"),
    ),
    Provider.GOOGLE: (
        _model(Provider.GOOGLE, "gemini-1.5-pro", "Gemini Pro 1.5", (CHAT, CODE, ANALYSIS, VISION),
               1000000, "Latest Gemini model with 1M token context"),
        _model(Provider.GOOGLE, "gemini-1.5-pro-vision", "Gemini Pro 1.5 Vision",
               (CHAT, VISION, ANALYSIS), 1000000,
               "Vision-enabled Gemini 1.5 with advanced image understanding"),
        _model(Provider.GOOGLE, "gemini-pro", "Gemini Pro", (CHAT, CODE, ANALYSIS),
               32768, "Stable Gemini release with good performance"),
        _model(Provider.GOOGLE, "gemini-pro-vision", "Gemini Pro Vision", (CHAT, VISION),
               16384, "Vision capabilities for standard Gemini Pro"),
    ),
    Provider.OPENROUTER: (
        _model(Provider.OPENROUTER, "openai/gpt-4-turbo-preview", "GPT-4 Turbo (via OpenRouter)",
               (CHAT, CODE, ANALYSIS), 128000, "Latest GPT-4 model through OpenRouter"),
        _model(Provider.OPENROUTER, "anthropic/claude-3-opus", "Claude 3 Opus (via OpenRouter)",
               (CHAT, CODE, ANALYSIS), 200000, "Most capable Claude model"),
        _model(Provider.OPENROUTER, "anthropic/claude-3-sonnet",
               "Claude 3 Sonnet (via OpenRouter)", (CHAT, CODE, ANALYSIS), 200000,
               "Balanced Claude model"),
        _model(Provider.OPENROUTER, "google/gemini-pro", "Gemini Pro (via OpenRouter)",
               (CHAT, CODE), 32768, "Google's latest model"),
        _model(Provider.OPENROUTER, "mistralai/mixtral-8x7b-instruct",
               "Mixtral 8x7B (via OpenRouter)", (CHAT, CODE), 32768,
               "High-performance open model"),
    ),
    Provider.CLOUDFLARE: (
        _model(Provider.CLOUDFLARE, "@cf/meta/llama-2-7b-chat-int8", "Llama 2 7B Chat",
               (CHAT, CODE), 4096, "Meta's Llama 2 chat model, int8 quantized"),
        _model(Provider.CLOUDFLARE, "@cf/mistral/mistral-7b-instruct-v0.1",
               "Mistral 7B Instruct", (CHAT, CODE), 8192, "Mistral's instruction-tuned 7B model"),
    ),
}

OPENROUTER_AUTO_MODEL = Model(
    id=AUTO_MODEL_ID,
    name="Auto (Best Available)",
    provider=Provider.OPENROUTER,
    capabilities=(CHAT, CODE, ANALYSIS),
    context_length=32768,
    description="Automatically selects the best available model",
    is_auto=True,
)

# Concrete model an "auto" selection is sent as
OPENROUTER_AUTO_TARGET = "mistralai/mixtral-8x7b-instruct"

_DEFAULT_MODELS: dict[Provider, str] = {
    Provider.OPENAI: "gpt-3.5-turbo-0125",
    Provider.ANTHROPIC: "claude-3-sonnet-20240229",
    Provider.GOOGLE: "gemini-1.5-pro",
    Provider.OPENROUTER: AUTO_MODEL_ID,
    Provider.CLOUDFLARE: "@cf/meta/llama-2-7b-chat-int8",
}

_PREFERRED_MODELS: dict[Provider, tuple[str, ...]] = {
    Provider.OPENAI: ("gpt-4-0125-preview", "gpt-3.5-turbo-0125"),
    Provider.ANTHROPIC: ("claude-3-opus-20240229", "claude-3-sonnet-20240229"),
    Provider.GOOGLE: ("gemini-1.5-pro", "gemini-pro"),
    Provider.OPENROUTER: (
        "openai/gpt-4-turbo-preview",
        "anthropic/claude-3-opus",
        "google/gemini-pro",
    ),
    Provider.CLOUDFLARE: ("@cf/meta/llama-2-7b-chat-int8",),
}


def is_valid_provider(value: object) -> bool:
    """Check whether ``value`` names a supported provider."""
    if isinstance(value, Provider):
        return True
    try:
        Provider(value)
    except ValueError:
        return False
    return True


def to_provider(value: Provider | str) -> Provider:
    """Coerce a provider name to ``Provider``.

    Raises:
        ValueError: If the name is not a recognized provider.
    """
    if isinstance(value, Provider):
        return value
    try:
        return Provider(value)
    except ValueError:
        raise ValueError(f"Invalid provider type: {value!r}") from None


def get_provider(value: Provider | str) -> ProviderInfo:
    """Get provider metadata by identity."""
    return PROVIDERS[to_provider(value)]


def get_provider_models(value: Provider | str) -> list[Model]:
    """Static catalog for a provider. OpenRouter also gets the auto entry."""
    provider = to_provider(value)
    models = list(_STATIC_MODELS[provider])
    if provider is Provider.OPENROUTER:
        return [OPENROUTER_AUTO_MODEL, *models]
    return models


def select_best_model(value: Provider | str, models: list[Model]) -> str | None:
    """Pick the model a fresh selection should start on.

    Only OpenRouter may resolve to the auto model; for other providers the
    preference list is walked, then the first concrete model wins.
    """
    provider = to_provider(value)
    if provider is Provider.OPENROUTER:
        for model in models:
            if model.is_auto:
                return model.id

    available = [m for m in models if not m.is_auto]
    ids = {m.id for m in available}
    for preferred in _PREFERRED_MODELS.get(provider, ()):
        if preferred in ids:
            return preferred
    return available[0].id if available else None


def get_default_model(value: Provider | str) -> str:
    """Model a new chat starts with."""
    return _DEFAULT_MODELS[to_provider(value)]


def resolve_model(value: Provider | str, model_id: str) -> str:
    """Map ``"auto"`` to the concrete model sent over the wire."""
    provider = to_provider(value)
    if model_id != AUTO_MODEL_ID:
        return model_id
    if provider is Provider.OPENROUTER:
        return OPENROUTER_AUTO_TARGET
    return _DEFAULT_MODELS[provider]


_PREFIXES = re.compile(r"^(@cf/|@hf/|meta/|mistral/)+")
_SIZE = re.compile(r"^\d+[bB]$")
_DATE_STAMP = re.compile(r"\s*\d{8}$")


def get_model_display(value: Provider | str, model_id: str) -> str:
    """Human-friendly name for a model id.

    Example::

        get_model_display("cloudflare", "@cf/meta/llama-2-7b-chat-int8")
        # 'Llama 2 7B Chat Int8'
    """
    provider = to_provider(value)
    if model_id == AUTO_MODEL_ID:
        return OPENROUTER_AUTO_MODEL.name if provider is Provider.OPENROUTER else model_id

    display = _PREFIXES.sub("", model_id)
    # vendor/model -> model
    if "/" in display:
        display = display.rsplit("/", 1)[1]

    words = []
    for word in re.split(r"[-_]", display):
        if not word:
            continue
        if _SIZE.match(word):
            words.append(word.upper())
        else:
            words.append(word[0].upper() + word[1:])
    return _DATE_STAMP.sub("", " ".join(words)).strip()
