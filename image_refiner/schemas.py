"""Pydantic schemas for structured data flow in the refinement loop."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IterationStatus(str, Enum):
    """Lifecycle of a single iteration."""

    GENERATING = "generating"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (IterationStatus.COMPLETE, IterationStatus.ERROR)


# Forward-only transitions; error is reachable from any non-terminal status
ALLOWED_TRANSITIONS: dict[IterationStatus, frozenset[IterationStatus]] = {
    IterationStatus.GENERATING: frozenset(
        {IterationStatus.ANALYZING, IterationStatus.ERROR}
    ),
    IterationStatus.ANALYZING: frozenset(
        {IterationStatus.COMPLETE, IterationStatus.ERROR}
    ),
    IterationStatus.COMPLETE: frozenset(),
    IterationStatus.ERROR: frozenset(),
}


class ProcessStep(str, Enum):
    """Pipeline stage currently active, for UI feedback."""

    IDLE = "idle"
    ENHANCING = "enhancing"
    GENERATING = "generating"
    ANALYZING = "analyzing"


class OutputMode(BaseModel):
    """A generation preset controlling aspect ratio and post-processing."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    dimensions: str = Field(
        default="square_1_1",
        description="Layout dimensions passed to the language models",
    )
    layout: str = Field(default="1:1", description="Aspect ratio")
    image_size: str = Field(
        default="square_hd",
        description="Image size preset understood by the generation service",
    )
    remove_background: bool = Field(
        default=False,
        description="Run background removal on the generated image",
    )

    def as_layout(self) -> dict:
        """Layout description sent alongside enhancement and critique requests."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "dimensions": self.dimensions,
        }


class ImprovementDirection(BaseModel):
    """One alternative next-step suggestion from the critic."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(
        default="Improvement Option",
        description="Short, catchy title for this direction",
    )
    description: str = Field(
        default="",
        description="What would be improved and why",
    )
    prompt: str = Field(
        ...,
        min_length=1,
        description="Complete, ready-to-use follow-up prompt",
    )


class ImageAnalysis(BaseModel):
    """Structured critique of a generated image."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    description: str = Field(
        ...,
        description="Brief analysis of the current image",
    )
    is_optimal: bool = Field(
        default=False,
        alias="isOptimal",
        description="True only if the image cannot reasonably be improved",
    )
    improvement_directions: list[ImprovementDirection] = Field(
        default_factory=list,
        alias="improvementDirections",
        description="Alternative improvement directions",
    )
    is_fallback: bool = Field(
        default=False,
        description="Set when the critique could not be parsed and was synthesised",
    )


class Iteration(BaseModel):
    """One attempt in the refinement chain."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(..., ge=1, description="One-indexed iteration number")
    original_prompt: str = Field(
        ...,
        description="Prompt this iteration was derived from",
    )
    prompt: str = Field(..., description="Prompt used to generate the image")
    image_url: str = Field(default="", description="Empty until generation completes")
    status: IterationStatus = IterationStatus.GENERATING
    analysis: Optional[ImageAnalysis] = None
    parent_number: Optional[int] = Field(
        default=None,
        description="Iteration whose improvement direction produced this one",
    )
    error: Optional[str] = None

    def advance(self, status: IterationStatus, **changes) -> "Iteration":
        """Return a copy moved to ``status`` with ``changes`` applied.

        Raises:
            ValueError: If the transition is not allowed.
        """
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(
                f"Iteration {self.number} cannot move from "
                f"{self.status.value} to {status.value}"
            )
        return self.model_copy(update={"status": status, **changes})


class SelectedImprovement(BaseModel):
    """The improvement direction a new iteration was branched from."""

    model_config = ConfigDict(frozen=True)

    iteration_number: int
    improvement_index: int


class ProcessState(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: ProcessStep = ProcessStep.IDLE
    message: str = ""


class SessionState(BaseModel):
    """Immutable snapshot of one refinement session."""

    model_config = ConfigDict(frozen=True)

    output_mode: OutputMode
    initial_prompt: str = ""
    iterations: tuple[Iteration, ...] = ()
    selected_iteration_number: Optional[int] = None
    selected_improvement: Optional[SelectedImprovement] = None
    current_seed: Optional[int] = None
    is_loading: bool = False
    error: Optional[str] = None
    process_state: ProcessState = Field(default_factory=ProcessState)

    @property
    def latest(self) -> Optional[Iteration]:
        return self.iterations[-1] if self.iterations else None

    @property
    def selected_iteration(self) -> Optional[Iteration]:
        return self.get_iteration(self.selected_iteration_number)

    def get_iteration(self, number: Optional[int]) -> Optional[Iteration]:
        for iteration in self.iterations:
            if iteration.number == number:
                return iteration
        return None
