"""Prompt enhancement using LangChain."""

import logging
from typing import Literal, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from .exceptions import EnhancementFailure
from .llm import get_chat_model, message_text
from .schemas import OutputMode

logger = logging.getLogger(__name__)


ENHANCER_SYSTEM_PROMPT = """You are an expert prompt engineer for meme-style Bufo frog cartoon images. Your task is to turn a rough idea into an expressive, humorous image generation prompt.

Key elements of a good Bufo meme:
- **Character**: Bufo frog design, exaggerated expressions and reactions
- **Situation**: Humorous poses, visual gags, internet culture references
- **Art Style**: Cartoon meme art, bold outlines, vibrant colors, exaggerated features
- **Composition**: Simple but impactful backgrounds, meme text style and placement

Structure the prompt around art style, frog elements and meme components.
Keep it under 1000 characters.

Provide ONLY the improved prompt text, without explanations or notes."""


class PromptEnhancer:
    """Rewrites raw prompts into generation prompts using LangChain."""

    def __init__(
        self,
        provider: Literal["openai", "anthropic"] | None = None,
        model=None,
    ):
        """Initialize the enhancer.

        Args:
            provider: LLM provider to use. Uses config default if None.
            model: Pre-built chat model, mainly for tests.
        """
        self.provider = provider
        self._model = model

    @property
    def model(self):
        """Lazy-load the model."""
        if self._model is None:
            self._model = get_chat_model(provider=self.provider)
        return self._model

    def build_messages(
        self,
        prompt: str,
        output_mode: OutputMode,
        image_description: Optional[str] = None,
        improvements: Optional[str] = None,
    ) -> list:
        sections = []
        if image_description:
            sections.append(
                f"**Description of previously generated image**:\n{image_description}"
            )
        if improvements:
            sections.append(f"**Suggested improvements from analysis**:\n{improvements}")

        prefix = output_mode.name.lower()
        sections.append(f'**Original Prompt**: "{prompt}"')
        sections.append(f"**Layout**: {output_mode.description}")
        sections.append(
            f'IMPORTANT: Always start the prompt with "{prefix}:" and optimize it '
            f"for the {output_mode.name} format ({output_mode.layout})."
        )

        return [
            SystemMessage(content=ENHANCER_SYSTEM_PROMPT),
            HumanMessage(content="\n\n".join(sections)),
        ]

    async def enhance(
        self,
        prompt: str,
        output_mode: OutputMode,
        image_description: Optional[str] = None,
        improvements: Optional[str] = None,
    ) -> str:
        """Enhance a prompt for the given output mode.

        Args:
            prompt: The user's raw prompt.
            output_mode: Active output mode; its name prefixes the result.
            image_description: Description of a previously generated image.
            improvements: Suggested improvements from a previous critique.

        Returns:
            The enhanced prompt.

        Raises:
            EnhancementFailure: On provider error or an empty response.
        """
        messages = self.build_messages(prompt, output_mode, image_description, improvements)
        try:
            response = await self.model.ainvoke(messages)
        except Exception as e:
            raise EnhancementFailure(f"Enhancement request failed: {e}") from e

        enhanced = message_text(response).strip()
        if not enhanced:
            raise EnhancementFailure("Enhancement returned an empty prompt")

        logger.info("Enhanced prompt: %s", enhanced)
        return enhanced
