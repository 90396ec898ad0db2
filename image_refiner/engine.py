"""Refinement loop orchestrator."""

import asyncio
import logging
import random
from contextlib import asynccontextmanager
from typing import Callable, Optional, Union

import config

from . import state as transitions
from .critic import ImageCritic
from .enhancer import PromptEnhancer
from .exceptions import AttemptInProgress, InvalidSelection, RefinementError
from .generator import ImageGenerator
from .modes import get_output_mode
from .schemas import Iteration, IterationStatus, OutputMode, ProcessStep, SessionState

logger = logging.getLogger(__name__)

Listener = Callable[[SessionState], None]

STAGE_LABELS = {
    "enhancement": "Prompt enhancement",
    "generation": "Image generation",
    "critique": "Image analysis",
}


def describe_failure(error: Exception, iteration_number: Optional[int] = None) -> str:
    """Human-readable message combining the failed stage and its cause."""
    if isinstance(error, RefinementError):
        stage = error.stage or "pipeline"
        cause = error.message
    else:
        stage = "pipeline"
        cause = str(error) or type(error).__name__

    if iteration_number is None:
        return f"{STAGE_LABELS.get(stage, stage.capitalize())} failed: {cause}"
    return f"Failed at iteration {iteration_number} ({stage}): {cause}"


class RefinementEngine:
    """Drives enhance -> generate -> critique attempts for one session.

    The engine owns an immutable ``SessionState`` snapshot. Every change is a
    pure transition from ``image_refiner.state``; the resulting snapshot is
    published to subscribers so a presentation layer can follow progress
    while a stage is in flight.
    """

    def __init__(
        self,
        enhancer: Optional[PromptEnhancer] = None,
        generator: Optional[ImageGenerator] = None,
        critic: Optional[ImageCritic] = None,
        output_mode: Union[OutputMode, str] = config.DEFAULT_OUTPUT_MODE,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the engine.

        Args:
            enhancer: Prompt enhancement client. Creates default if None.
            generator: Image generation client. Creates default if None.
            critic: Image critique client. Creates default if None.
            output_mode: Initial output mode, or its id.
            rng: Random source for the session seed.
        """
        self.enhancer = enhancer or PromptEnhancer()
        self.generator = generator or ImageGenerator()
        self.critic = critic or ImageCritic()
        self._rng = rng or random.Random()
        self._state = transitions.new_session(_resolve_mode(output_mode))
        self._listeners: list[Listener] = []
        self._busy = False

    @property
    def state(self) -> SessionState:
        """Current session snapshot."""
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start_refinement(
        self,
        initial_prompt: str,
        output_mode: Union[OutputMode, str, None] = None,
    ) -> SessionState:
        """Reset the session, enhance the prompt and run the first attempt.

        Args:
            initial_prompt: The user's raw prompt.
            output_mode: Output mode for the session. Keeps the current one if None.

        Returns:
            The session snapshot after the attempt.

        Raises:
            InvalidSelection: If the prompt is blank.
            EnhancementFailure: If the enhancement call fails; history stays empty.
            RefinementError: If generation or critique fails.
        """
        if not initial_prompt or not initial_prompt.strip():
            raise InvalidSelection("Please enter a prompt")
        mode = _resolve_mode(output_mode) if output_mode else self._state.output_mode

        async with self._exclusive():
            self._apply(transitions.reset, mode, initial_prompt)
            self._apply(transitions.start_loading)
            try:
                self._apply(
                    transitions.set_process,
                    ProcessStep.ENHANCING,
                    "Improving the prompt...",
                )
                try:
                    enhanced = await self.enhancer.enhance(initial_prompt, mode)
                except Exception as e:
                    message = describe_failure(e)
                    logger.error(message)
                    self._apply(transitions.set_error, message)
                    raise

                await self._run_attempt(enhanced, original_prompt=initial_prompt)
            finally:
                self._apply(transitions.finish_loading)

        return self._state

    async def select_improvement(
        self,
        iteration_number: int,
        improvement_index: int,
    ) -> SessionState:
        """Branch a new attempt from one of an iteration's improvement directions.

        The new iteration is always appended after the latest one, so numbers
        stay unique and gap-free even when branching from an older iteration.

        Raises:
            InvalidSelection: If the iteration is not complete or the index is
                out of range. The session is left untouched.
            RefinementError: If generation or critique fails.
        """
        async with self._exclusive():
            target = self._state.get_iteration(iteration_number)
            if target is None:
                raise InvalidSelection(f"No iteration numbered {iteration_number}")
            if target.status != IterationStatus.COMPLETE or target.analysis is None:
                raise InvalidSelection(
                    f"Iteration {iteration_number} is {target.status.value}, not complete"
                )
            directions = target.analysis.improvement_directions
            if not 0 <= improvement_index < len(directions):
                raise InvalidSelection(
                    f"Iteration {iteration_number} has no improvement {improvement_index}"
                )

            self._apply(transitions.start_loading)
            self._apply(
                transitions.select_improvement, iteration_number, improvement_index
            )
            try:
                await self._run_attempt(
                    directions[improvement_index].prompt,
                    original_prompt=target.prompt,
                    parent_number=target.number,
                )
            finally:
                self._apply(transitions.finish_loading)

        return self._state

    def select_iteration(self, iteration_number: int) -> SessionState:
        """Move the display pointer. Safe while an attempt is in flight."""
        return self._apply(transitions.select_iteration, iteration_number)

    async def aclose(self) -> None:
        """Release HTTP clients owned by the default collaborators."""
        await self.generator.aclose()
        await self.critic.aclose()

    async def _run_attempt(
        self,
        prompt: str,
        original_prompt: str,
        parent_number: Optional[int] = None,
    ) -> Iteration:
        self._apply(transitions.begin_iteration, prompt, original_prompt, parent_number)
        number = self._state.latest.number
        mode = self._state.output_mode
        logger.info("Starting iteration %d", number)

        try:
            seed = self._ensure_seed()
            self._apply(
                transitions.set_process,
                ProcessStep.GENERATING,
                "Generating image...",
            )
            image_url = await self.generator.generate(prompt, mode, seed)
            self._apply(transitions.record_image, number, image_url)

            self._apply(
                transitions.set_process,
                ProcessStep.ANALYZING,
                "Analyzing the image...",
            )
            analysis = await self.critic.critique(image_url, prompt, mode)
            self._apply(transitions.record_analysis, number, analysis)
        except Exception as e:
            message = describe_failure(e, number)
            logger.error(message)
            self._apply(transitions.record_failure, number, message)
            raise
        except asyncio.CancelledError:
            message = f"Iteration {number} was cancelled"
            logger.warning(message)
            self._apply(transitions.record_failure, number, message)
            raise

        logger.info(
            "Iteration %d complete (optimal=%s)", number, analysis.is_optimal
        )
        return self._state.get_iteration(number)

    def _ensure_seed(self) -> int:
        if self._state.current_seed is None:
            self._apply(transitions.set_seed, self._rng.randrange(config.SEED_RANGE))
        return self._state.current_seed

    def _apply(self, transition, *args) -> SessionState:
        self._state = transition(self._state, *args)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    @asynccontextmanager
    async def _exclusive(self):
        if self._busy:
            raise AttemptInProgress()
        self._busy = True
        try:
            yield
        finally:
            self._busy = False


def _resolve_mode(mode: Union[OutputMode, str]) -> OutputMode:
    return get_output_mode(mode) if isinstance(mode, str) else mode
