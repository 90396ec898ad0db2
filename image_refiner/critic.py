"""Vision critic for generated images using LangChain."""

import asyncio
import base64
import json
import logging
import re
from typing import Literal, Optional

import httpx
from langchain_core.messages import HumanMessage
from pydantic import ValidationError

import config

from .exceptions import (
    CritiqueTimeout,
    InvalidCritiqueShape,
    TransportFailure,
    UnsupportedMediaType,
)
from .llm import get_vision_model, message_text
from .schemas import ImageAnalysis, ImprovementDirection, OutputMode

logger = logging.getLogger(__name__)

SUPPORTED_MEDIA_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
DEFAULT_MEDIA_TYPE = "image/jpeg"
DIRECTION_COUNT = 3

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


CRITIQUE_PROMPT = """Analyze this meme-style Bufo frog image and provide critical feedback in this EXACT JSON format:
{{
    "description": "Brief analysis of the current image focusing on design, expressions, and meme effectiveness",
    "isOptimal": boolean, true only if the image is exceptional in every aspect,
    "improvementDirections": [
        {{
            "title": "Short, catchy title for this improvement direction",
            "description": "Detailed explanation of what would be improved",
            "prompt": "Complete, ready-to-use prompt incorporating these improvements"
        }}
    ]
}}

Return exactly three improvement directions, each focused on a different aspect.

Evaluate:
1. **Character Design**: Bufo proportions, anatomical accuracy (3 fingers, proper limbs)
2. **Expression**: Facial expression and emotional impact
3. **Meme Text**: Style and placement
4. **Composition**: Background elements and framing
5. **Color**: Palette and visual harmony
6. **Humor**: Meme potential and memorability

Even good images can usually be improved; be constructively critical.

**Original Prompt**: "{prompt}"
**Layout Format**: {layout}

Provide the response as a SINGLE LINE JSON object."""


def normalize_response(text: str) -> str:
    """Collapse control characters and whitespace runs to single spaces."""
    return _WHITESPACE.sub(" ", _CONTROL_CHARS.sub(" ", text)).strip()


def parse_analysis(text: str) -> ImageAnalysis:
    """Parse a normalized critique response.

    Raises:
        json.JSONDecodeError: If the text is not JSON.
        InvalidCritiqueShape: If the JSON is not a critique with exactly
            three improvement directions.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise InvalidCritiqueShape("Critique is not a JSON object")

    directions = data.get("improvementDirections")
    if not isinstance(directions, list) or len(directions) != DIRECTION_COUNT:
        raise InvalidCritiqueShape(
            f"Expected {DIRECTION_COUNT} improvement directions"
        )

    try:
        return ImageAnalysis(
            description=data.get("description") or "No description available",
            is_optimal=data.get("isOptimal") is True,
            improvement_directions=directions,
        )
    except ValidationError as e:
        raise InvalidCritiqueShape(f"Invalid improvement direction: {e}") from e


def fallback_analysis(raw_text: str, prompt: str) -> ImageAnalysis:
    """Synthesise an analysis for a critique that could not be parsed.

    The single direction reuses the original prompt so the session can
    always continue.
    """
    return ImageAnalysis(
        description=raw_text,
        is_optimal=False,
        improvement_directions=[
            ImprovementDirection(
                title="Error Processing Response",
                description="Failed to parse improvement directions",
                prompt=prompt,
            )
        ],
        is_fallback=True,
    )


class ImageCritic:
    """Critiques generated images using a vision-capable LLM."""

    def __init__(
        self,
        provider: Literal["openai", "anthropic"] | None = None,
        model=None,
        http_client: Optional[httpx.AsyncClient] = None,
        fetch_timeout: float = config.IMAGE_FETCH_TIMEOUT,
        response_timeout: float = config.CRITIQUE_TIMEOUT,
    ):
        """Initialize the critic.

        Args:
            provider: LLM provider to use. Uses config default if None.
            model: Pre-built vision chat model, mainly for tests.
            http_client: Async HTTP client used to download images.
            fetch_timeout: Seconds allowed for downloading the image.
            response_timeout: Seconds allowed for the critique model to answer.
        """
        self.provider = provider
        self._model = model
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self.fetch_timeout = fetch_timeout
        self.response_timeout = response_timeout

    @property
    def model(self):
        """Lazy-load the model."""
        if self._model is None:
            self._model = get_vision_model(provider=self.provider)
        return self._model

    async def fetch_image(self, image_url: str) -> tuple[str, str]:
        """Download an image and return ``(media_type, base64_data)``.

        Raises:
            TransportFailure: If the download fails or times out.
            UnsupportedMediaType: If the content type is not a supported raster format.
        """
        # httpx timeouts apply per phase; wait_for bounds the whole download.
        try:
            response = await asyncio.wait_for(
                self._client.get(image_url, timeout=self.fetch_timeout),
                timeout=self.fetch_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise TransportFailure(
                f"Timed out fetching image after {self.fetch_timeout:g}s",
                stage="critique",
                details={"url": image_url},
            ) from e
        except httpx.HTTPError as e:
            raise TransportFailure(
                f"Failed to fetch image: {e}", stage="critique", details={"url": image_url}
            ) from e

        if response.is_error:
            raise TransportFailure(
                f"Failed to fetch image: {response.status_code} {response.reason_phrase}",
                stage="critique",
                details={"url": image_url},
            )

        header = response.headers.get("content-type") or DEFAULT_MEDIA_TYPE
        media_type = header.split(";")[0].strip().lower()
        if media_type not in SUPPORTED_MEDIA_TYPES:
            raise UnsupportedMediaType(media_type, SUPPORTED_MEDIA_TYPES)

        return media_type, base64.b64encode(response.content).decode("utf-8")

    async def critique(
        self,
        image_url: str,
        prompt: str,
        output_mode: OutputMode,
    ) -> ImageAnalysis:
        """Analyze an image and return a structured critique.

        Args:
            image_url: URL of the image to critique.
            prompt: The prompt used to generate the image.
            output_mode: Active output mode, described to the model.

        Returns:
            The parsed critique, or a fallback analysis if the response was
            malformed.

        Raises:
            TransportFailure: On download or provider failure.
            UnsupportedMediaType: If the image format is not supported.
            CritiqueTimeout: If the model does not answer in time.
        """
        media_type, image_b64 = await self.fetch_image(image_url)
        logger.debug("Fetched %s (%s), sending for critique", image_url, media_type)

        message = HumanMessage(
            content=[
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{media_type};base64,{image_b64}"},
                },
                {
                    "type": "text",
                    "text": CRITIQUE_PROMPT.format(
                        prompt=prompt, layout=output_mode.name.lower()
                    ),
                },
            ]
        )

        try:
            response = await asyncio.wait_for(
                self.model.ainvoke([message]), timeout=self.response_timeout
            )
        except asyncio.TimeoutError as e:
            raise CritiqueTimeout(self.response_timeout) from e
        except Exception as e:
            raise TransportFailure(f"Critique request failed: {e}", stage="critique") from e

        text = message_text(response)
        if not text.strip():
            raise TransportFailure("No text content in critique response", stage="critique")

        cleaned = normalize_response(text)
        try:
            return parse_analysis(cleaned)
        except (json.JSONDecodeError, InvalidCritiqueShape) as e:
            logger.warning("Failed to parse critique response: %s", e)
            return fallback_analysis(cleaned, prompt)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
