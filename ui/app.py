"""Gradio interface for the iterative prompt-to-image refiner."""

import asyncio
import html
import sys
from functools import lru_cache, partial
from pathlib import Path
from typing import AsyncGenerator, Awaitable, Optional

import gradio as gr

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from image_refiner.critic import ImageCritic
from image_refiner.engine import RefinementEngine
from image_refiner.enhancer import PromptEnhancer
from image_refiner.exceptions import AttemptInProgress, InvalidSelection, RefinementError
from image_refiner.generator import ImageGenerator
from image_refiner.modes import OUTPUT_MODES
from image_refiner.schemas import Iteration, IterationStatus, SessionState


CUSTOM_CSS = """
:root {
    --primary: #6366f1;
    --surface-2: #f8fafc;
    --surface-3: #e2e8f0;
    --text: #1e293b;
    --text-muted: #64748b;
}

.iteration-card {
    background: var(--surface-2) !important;
    border: 1px solid var(--surface-3) !important;
    border-radius: 12px !important;
    padding: 1rem !important;
}

.status-badge {
    padding: 0.25rem 0.75rem;
    border-radius: 9999px;
    font-size: 0.875rem;
    font-weight: 500;
}

.status-generating { background: #fef3c7; color: #b45309; }
.status-analyzing { background: #dbeafe; color: #1d4ed8; }
.status-complete { background: #d1fae5; color: #047857; }
.status-error { background: #fee2e2; color: #b91c1c; }

.prompt-display {
    font-family: monospace;
    font-size: 0.85rem;
    background: var(--surface-2);
    padding: 1rem;
    border-radius: 8px;
    border: 1px solid var(--surface-3);
    color: var(--text);
}
"""

EMPTY_DETAILS = (
    "<p style='color: #64748b; text-align: center; padding: 2rem;'>"
    "Run the loop to see iteration details</p>"
)

POLL_INTERVAL = 0.1


@lru_cache(maxsize=1)
def shared_clients() -> dict:
    """Enhancer, generator and critic shared by every browser session.

    The generator and critic each hold an httpx client that lives for the
    whole app, so per-session engines own nothing that needs closing.
    """
    return {
        "enhancer": PromptEnhancer(),
        "generator": ImageGenerator(),
        "critic": ImageCritic(),
    }


def new_engine() -> RefinementEngine:
    """Create the per-session engine on top of the shared clients."""
    return RefinementEngine(**shared_clients())


def format_iteration_html(iteration: Iteration) -> str:
    """Format an iteration as HTML for display."""
    status = iteration.status.value
    analysis = iteration.analysis

    body = ""
    if analysis:
        verdict = "Optimal" if analysis.is_optimal else "Can be improved"
        directions = "".join(
            f"<li><strong>{html.escape(d.title)}</strong>: {html.escape(d.description)}</li>"
            for d in analysis.improvement_directions
        )
        body = f"""
        <p style="font-size: 0.85rem; color: #475569;">{html.escape(analysis.description)}</p>
        <p style="font-size: 0.8rem; color: #64748b;"><strong>{verdict}</strong></p>
        <ul style="font-size: 0.8rem; color: #64748b; padding-left: 1.25rem;">{directions}</ul>
        """
    elif iteration.error:
        body = f'<p style="color: #b91c1c; font-size: 0.85rem;">{html.escape(iteration.error)}</p>'

    return f"""
    <div class="iteration-card">
        <div style="display: flex; justify-content: space-between; align-items: center;">
            <h3 style="margin: 0; font-size: 1rem;">Iteration {iteration.number}</h3>
            <span class="status-badge status-{status}">{status}</span>
        </div>
        {body}
        <div class="prompt-display" style="margin-top: 0.75rem;">
            <strong style="font-size: 0.75rem; color: #64748b;">Prompt:</strong>
            <div style="margin-top: 0.25rem;">{html.escape(iteration.prompt)}</div>
        </div>
    </div>
    """


def render(engine: RefinementEngine, notice: Optional[str] = None) -> tuple:
    """Map the engine's snapshot onto the UI outputs.

    Returns:
        Tuple of (engine, gallery, details_html, status, *direction_buttons).
    """
    state: SessionState = engine.state
    gallery = [
        (it.image_url, f"#{it.number} {it.status.value}")
        for it in state.iterations
        if it.image_url
    ]

    selected = state.selected_iteration
    details = format_iteration_html(selected) if selected else EMPTY_DETAILS

    if notice:
        status = notice
    elif state.error:
        status = f"⚠️ {state.error}"
    elif state.is_loading:
        status = f"⏳ {state.process_state.message}"
    elif state.iterations:
        status = f"✓ {len(state.iterations)} iteration(s), seed {state.current_seed}"
    else:
        status = ""

    directions = []
    if selected and selected.status == IterationStatus.COMPLETE and selected.analysis:
        directions = selected.analysis.improvement_directions
    buttons = [
        gr.update(
            value=directions[i].title if i < len(directions) else "",
            visible=i < len(directions),
            interactive=not state.is_loading,
        )
        for i in range(3)
    ]

    return (engine, gallery, details, status, *buttons)


async def stream(
    engine: RefinementEngine,
    operation: Awaitable[SessionState],
) -> AsyncGenerator[tuple, None]:
    """Run ``operation`` and yield a render for every snapshot it publishes."""
    snapshots: asyncio.Queue = asyncio.Queue()
    unsubscribe = engine.subscribe(snapshots.put_nowait)
    task = asyncio.ensure_future(operation)
    try:
        while not (task.done() and snapshots.empty()):
            try:
                await asyncio.wait_for(snapshots.get(), timeout=POLL_INTERVAL)
            except asyncio.TimeoutError:
                continue
            yield render(engine)
    finally:
        unsubscribe()

    error = task.exception()
    if error is not None and not isinstance(error, RefinementError):
        raise error
    # Rejected requests never reach the session state.
    if isinstance(error, (AttemptInProgress, InvalidSelection)):
        yield render(engine, notice=f"⚠️ {error.message}")
    else:
        yield render(engine)


async def run_refinement(
    prompt: str,
    mode_id: str,
    engine: Optional[RefinementEngine],
) -> AsyncGenerator[tuple, None]:
    """Start a new session from the prompt box."""
    engine = engine or new_engine()
    if not prompt.strip():
        yield render(engine, notice="⚠️ Please enter a prompt")
        return

    async for outputs in stream(engine, engine.start_refinement(prompt, mode_id)):
        yield outputs


async def run_direction(
    index: int,
    engine: Optional[RefinementEngine],
) -> AsyncGenerator[tuple, None]:
    """Branch from the selected iteration's improvement direction ``index``."""
    if engine is None or engine.state.selected_iteration is None:
        yield render(engine or new_engine(), notice="⚠️ Nothing to improve yet")
        return

    number = engine.state.selected_iteration.number
    async for outputs in stream(engine, engine.select_improvement(number, index)):
        yield outputs


def select_from_gallery(engine: Optional[RefinementEngine], evt: gr.SelectData) -> tuple:
    """Show the iteration whose image was clicked."""
    engine = engine or new_engine()
    shown = [it for it in engine.state.iterations if it.image_url]
    if 0 <= evt.index < len(shown):
        engine.select_iteration(shown[evt.index].number)
    return render(engine)


def create_ui() -> gr.Blocks:
    """Create the Gradio interface."""

    with gr.Blocks(css=CUSTOM_CSS, title="Prompt-to-Image Refiner") as app:
        engine_state = gr.State(None)

        gr.Markdown("# Prompt-to-Image Refiner")

        with gr.Row():
            # Left column: Controls
            with gr.Column(scale=1):
                prompt_input = gr.Textbox(
                    label="Prompt",
                    placeholder="a jumping frog...",
                    lines=3,
                )
                mode_input = gr.Radio(
                    choices=[(mode.name, mode.id) for mode in OUTPUT_MODES.values()],
                    value=config.DEFAULT_OUTPUT_MODE,
                    label="Output Mode",
                )
                run_button = gr.Button("Generate & Analyze", variant="primary", size="lg")
                status_output = gr.Textbox(label="Status", interactive=False)

            # Right column: Results
            with gr.Column(scale=2):
                gallery = gr.Gallery(
                    label="Iterations",
                    columns=4,
                    height=300,
                    object_fit="contain",
                    allow_preview=False,
                )
                details = gr.HTML(value=EMPTY_DETAILS)
                with gr.Row():
                    direction_buttons = [
                        gr.Button(visible=False, size="sm") for _ in range(3)
                    ]

        outputs = [engine_state, gallery, details, status_output, *direction_buttons]

        run_button.click(
            fn=run_refinement,
            inputs=[prompt_input, mode_input, engine_state],
            outputs=outputs,
        )
        for index, button in enumerate(direction_buttons):
            button.click(
                fn=partial(run_direction, index),
                inputs=[engine_state],
                outputs=outputs,
            )
        gallery.select(fn=select_from_gallery, inputs=[engine_state], outputs=outputs)

    return app


def main(share: bool = False, port: int = 7860):
    """Launch the Gradio app.

    Args:
        share: If True, creates a public URL for remote access.
        port: Port to run the server on.
    """
    app = create_ui()
    app.launch(
        share=share,
        server_name="0.0.0.0",
        server_port=port,
    )


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser()
    parser.add_argument("--share", action="store_true", help="Create public URL for remote access")
    parser.add_argument("--port", type=int, default=7860, help="Port to run on")
    args = parser.parse_args()
    main(share=args.share, port=args.port)
