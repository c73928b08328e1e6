"""Agent provider — builds PydanticAI model instances from ``provider/model`` names."""

from __future__ import annotations

import logging

from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from config.settings import get_settings

logger = logging.getLogger(__name__)

# Provider prefix → (base_url, settings_key_attr) for OpenAI-compatible endpoints
_PROVIDER_MAP: dict[str, tuple[str, str]] = {
    "dashscope": ("https://dashscope.aliyuncs.com/compatible-mode/v1", "dashscope_api_key"),
    "zai": ("https://open.bigmodel.cn/api/paas/v4/", "zai_api_key"),
}


def create_model(model_name: str | None = None):
    """Build a PydanticAI model instance.

    Parses the ``"provider/model"`` format (e.g. ``"gemini/gemini-2.5-flash"``,
    ``"anthropic/claude-sonnet-4-20250514"``) and creates the matching model.

    - ``gemini/*`` → native :class:`GoogleModel`
    - ``anthropic/*`` → native :class:`AnthropicModel`
    - ``dashscope/*``, ``zai/*`` → :class:`OpenAIChatModel` via OpenAI-compatible endpoint
    - ``openai/*`` or bare name → :class:`OpenAIChatModel` with the OpenAI API

    Args:
        model_name: Model identifier.  Defaults to ``settings.tutor_model``.
    """
    settings = get_settings()
    name = model_name or settings.tutor_model

    if "/" in name:
        prefix, model_id = name.split("/", 1)

        if prefix == "gemini":
            from pydantic_ai.models.google import GoogleModel
            from pydantic_ai.providers.google import GoogleProvider

            provider = GoogleProvider(api_key=settings.gemini_api_key)
            return GoogleModel(model_id, provider=provider)

        if prefix == "anthropic":
            from pydantic_ai.models.anthropic import AnthropicModel
            from pydantic_ai.providers.anthropic import AnthropicProvider

            provider = AnthropicProvider(api_key=settings.anthropic_api_key)
            return AnthropicModel(model_id, provider=provider)

        if prefix in _PROVIDER_MAP:
            base_url, key_attr = _PROVIDER_MAP[prefix]
            provider = OpenAIProvider(api_key=getattr(settings, key_attr, ""), base_url=base_url)
            return OpenAIChatModel(model_id, provider=provider)

    # Fallback: OpenAI API, "openai/" prefix stripped if present
    model_id = name.split("/", 1)[1] if "/" in name else name
    logger.debug("Creating OpenAI model for %s", name)
    provider = OpenAIProvider(api_key=settings.openai_api_key)
    return OpenAIChatModel(model_id, provider=provider)


def get_model_name(role: str) -> str:
    """Map an engine role to its configured model name.

    Role → Settings field:
    - tutor      → tutor_model       (streaming chat turns)
    - architect  → architect_model   (next-lesson generation)
    - translator → translator_model  (on-demand translation)
    """
    settings = get_settings()
    return {
        "tutor": settings.tutor_model,
        "architect": settings.architect_model,
        "translator": settings.translator_model,
    }.get(role, settings.tutor_model)
