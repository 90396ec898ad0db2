"""Output mode presets."""

from .schemas import OutputMode


IMAGE_MODE = OutputMode(
    id="image",
    name="Image Mode",
    description=(
        "Digital illustration suitable for presentations or standalone use, "
        "with full composition and background"
    ),
)

EMOJI_MODE = OutputMode(
    id="emoji",
    name="Emoji Mode",
    description=(
        "Focused frog upper body shot with transparent background, "
        "perfect for Slack emoji use"
    ),
    remove_background=True,
)

OUTPUT_MODES: dict[str, OutputMode] = {
    mode.id: mode for mode in (IMAGE_MODE, EMOJI_MODE)
}


def get_output_mode(mode_id: str) -> OutputMode:
    """Look up an output mode by id.

    Raises:
        ValueError: If the id is not one of OUTPUT_MODES.
    """
    try:
        return OUTPUT_MODES[mode_id]
    except KeyError:
        raise ValueError(
            f"Unknown output mode: {mode_id}. Use one of: {', '.join(OUTPUT_MODES)}"
        ) from None
