"""Pure session state transitions.

Every function takes a ``SessionState`` snapshot and returns a new one; the
engine is the only caller that publishes the results.
"""

from typing import Optional

from .schemas import (
    ImageAnalysis,
    Iteration,
    IterationStatus,
    OutputMode,
    ProcessState,
    ProcessStep,
    SelectedImprovement,
    SessionState,
)


def new_session(output_mode: OutputMode, initial_prompt: str = "") -> SessionState:
    """Fresh session with empty history and no seed."""
    return SessionState(output_mode=output_mode, initial_prompt=initial_prompt)


def reset(
    state: SessionState,
    output_mode: OutputMode,
    initial_prompt: str,
) -> SessionState:
    """Discard ``state`` and start over, clearing history and seed."""
    return new_session(output_mode, initial_prompt)


def next_iteration_number(state: SessionState) -> int:
    latest = state.latest
    return latest.number + 1 if latest else 1


def begin_iteration(
    state: SessionState,
    prompt: str,
    original_prompt: str,
    parent_number: Optional[int] = None,
) -> SessionState:
    """Append a new ``generating`` iteration and select it.

    Raises:
        ValueError: If another iteration is still in flight.
    """
    if any(not it.status.is_terminal for it in state.iterations):
        raise ValueError("An iteration is already in flight")

    iteration = Iteration(
        number=next_iteration_number(state),
        original_prompt=original_prompt,
        prompt=prompt,
        parent_number=parent_number,
    )
    return state.model_copy(
        update={
            "iterations": state.iterations + (iteration,),
            "selected_iteration_number": iteration.number,
        }
    )


def update_iteration(
    state: SessionState,
    number: int,
    status: IterationStatus,
    **changes,
) -> SessionState:
    """Move iteration ``number`` to ``status``, leaving the others untouched.

    Raises:
        KeyError: If no iteration has that number.
        ValueError: If the status transition is not allowed.
    """
    if state.get_iteration(number) is None:
        raise KeyError(f"No iteration numbered {number}")

    iterations = tuple(
        it.advance(status, **changes) if it.number == number else it
        for it in state.iterations
    )
    return state.model_copy(update={"iterations": iterations})


def record_image(state: SessionState, number: int, image_url: str) -> SessionState:
    return update_iteration(state, number, IterationStatus.ANALYZING, image_url=image_url)


def record_analysis(
    state: SessionState,
    number: int,
    analysis: ImageAnalysis,
) -> SessionState:
    return update_iteration(state, number, IterationStatus.COMPLETE, analysis=analysis)


def record_failure(state: SessionState, number: int, message: str) -> SessionState:
    """Mark iteration ``number`` as failed and surface ``message`` on the session."""
    state = update_iteration(state, number, IterationStatus.ERROR, error=message)
    return state.model_copy(update={"error": message})


def select_iteration(state: SessionState, number: int) -> SessionState:
    return state.model_copy(update={"selected_iteration_number": number})


def select_improvement(
    state: SessionState,
    iteration_number: int,
    improvement_index: int,
) -> SessionState:
    return state.model_copy(
        update={
            "selected_improvement": SelectedImprovement(
                iteration_number=iteration_number,
                improvement_index=improvement_index,
            )
        }
    )


def set_seed(state: SessionState, seed: int) -> SessionState:
    return state.model_copy(update={"current_seed": seed})


def set_process(
    state: SessionState,
    step: ProcessStep,
    message: str = "",
) -> SessionState:
    return state.model_copy(
        update={"process_state": ProcessState(step=step, message=message)}
    )


def start_loading(state: SessionState) -> SessionState:
    return state.model_copy(update={"is_loading": True, "error": None})


def finish_loading(state: SessionState) -> SessionState:
    return state.model_copy(
        update={"is_loading": False, "process_state": ProcessState()}
    )


def set_error(state: SessionState, message: str) -> SessionState:
    return state.model_copy(update={"error": message})
