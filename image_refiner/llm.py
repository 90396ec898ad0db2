"""LLM provider abstraction using LangChain."""

from typing import Literal

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI

import config

Provider = Literal["openai", "anthropic"]

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-sonnet-4-20250514",
}


def get_chat_model(
    provider: Provider | None = None,
    model: str | None = None,
    **kwargs,
) -> BaseChatModel:
    """Build the chat model for ``provider`` with the configured token limit.

    Args:
        provider: "openai" or "anthropic". Uses config.LLM_PROVIDER if None.
        model: Model name. Uses the provider's entry in DEFAULT_MODELS if None.
        **kwargs: Extra constructor arguments; these override the defaults.

    Raises:
        ValueError: If the provider is not supported.
    """
    provider = provider or config.LLM_PROVIDER
    if provider not in DEFAULT_MODELS:
        raise ValueError(
            f"Unknown provider: {provider}. Use one of {', '.join(DEFAULT_MODELS)}."
        )

    options = {
        "model": model or DEFAULT_MODELS[provider],
        "max_tokens": config.LLM_MAX_TOKENS,
        **kwargs,
    }
    if provider == "openai":
        return ChatOpenAI(api_key=config.OPENAI_API_KEY, **options)
    return ChatAnthropic(api_key=config.ANTHROPIC_API_KEY, **options)


def get_vision_model(
    provider: Provider | None = None,
    **kwargs,
) -> BaseChatModel:
    """Get a vision-capable chat model.

    Both provider defaults accept image content blocks, so this is the chat
    model with the provider's default vision model.
    """
    return get_chat_model(provider=provider, **kwargs)


def message_text(message: BaseMessage) -> str:
    """Extract the text of a chat response.

    Anthropic responses may carry a list of content blocks instead of a plain
    string; only the text blocks are kept.
    """
    content = message.content
    if isinstance(content, str):
        return content

    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)
