"""FLUX LoRA image generation via the fal.ai queue."""

import asyncio
import logging
from typing import Any, Optional

import config

from .exceptions import GenerationFailure, RefinementError
from .fal import FalQueueClient, QueueHandle
from .schemas import OutputMode

logger = logging.getLogger(__name__)


def build_generation_prompt(prompt: str, output_mode: OutputMode) -> str:
    """Decorate a prompt with the mode's style, the LoRA trigger word and format."""
    parts = [
        prompt,
        f"Style: {output_mode.description}",
        config.LORA_TRIGGER_WORD,
        f"Format: {output_mode.id}",
    ]
    return " || ".join(part for part in parts if part)


def resolve_background_removal(
    original_url: str,
    rembg_output: Optional[dict[str, Any]],
) -> str:
    """Pick the background-removed URL, falling back to the original image.

    Args:
        original_url: URL of the unprocessed generation.
        rembg_output: Output payload of the background removal request, or
            None if that request failed.

    Returns:
        The processed image URL if one is present, else ``original_url``.
    """
    image = (rembg_output or {}).get("image") or {}
    url = image.get("url") if isinstance(image, dict) else None
    if url:
        return url

    logger.warning("Background removal failed, using original image")
    return original_url


class ImageGenerator:
    """Generates images with a style LoRA on FLUX through fal.ai."""

    def __init__(
        self,
        queue: Optional[FalQueueClient] = None,
        app: str = config.FAL_GENERATION_APP,
        rembg_app: str = config.FAL_REMBG_APP,
    ):
        """Initialize the generator.

        Args:
            queue: Fal queue client. Creates default if None.
            app: Fal app id for text-to-image.
            rembg_app: Fal app id for background removal.
        """
        self.queue = queue or FalQueueClient()
        self.app = app
        self.rembg_app = rembg_app

    def build_arguments(self, prompt: str, output_mode: OutputMode, seed: int) -> dict:
        return {
            "prompt": build_generation_prompt(prompt, output_mode),
            "num_images": 1,
            "enable_safety_checker": True,
            "safety_tolerance": config.SAFETY_TOLERANCE,
            "seed": seed,
            "loras": [{"path": config.LORA_WEIGHTS_URL, "scale": config.LORA_SCALE}],
            "image_size": output_mode.image_size,
        }

    async def generate(self, prompt: str, output_mode: OutputMode, seed: int) -> str:
        """Generate an image and return its URL.

        Args:
            prompt: The text prompt for image generation.
            output_mode: Preset controlling size and background removal.
            seed: Seed shared by every generation in the session.

        Returns:
            URL of the generated (and possibly background-removed) image.

        Raises:
            GenerationFailure: If the generation request fails or returns no image.
            TransportFailure: If the queue cannot be reached.
        """
        output = await self._run(self.app, self.build_arguments(prompt, output_mode, seed))

        images = output.get("images") or []
        image_url = images[0].get("url") if images else None
        if not image_url:
            raise GenerationFailure("Generation returned no image", details={"output": output})
        logger.info("Generated image %s (seed %d)", image_url, seed)

        if output_mode.remove_background:
            image_url = await self.remove_background(image_url)

        return image_url

    async def remove_background(self, image_url: str) -> str:
        """Strip the background of ``image_url``, keeping the original on failure."""
        try:
            output = await self._run(
                self.rembg_app,
                {"image_url": image_url, "crop_to_bbox": True},
            )
        except RefinementError as e:
            logger.warning("Background removal request failed: %s", e)
            output = None
        return resolve_background_removal(image_url, output)

    async def aclose(self) -> None:
        await self.queue.aclose()

    async def _run(self, app: str, arguments: dict) -> dict[str, Any]:
        handle: Optional[QueueHandle] = None
        try:
            handle = await self.queue.submit(app, arguments)
            return await self.queue.result(handle)
        except (Exception, asyncio.CancelledError):
            if handle is not None:
                await self._cancel_quietly(handle)
            raise

    async def _cancel_quietly(self, handle: QueueHandle) -> None:
        try:
            await self.queue.cancel(handle)
        except Exception as e:
            logger.warning("Failed to cancel %s request %s: %s", handle.app, handle.request_id, e)
