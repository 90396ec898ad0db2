"""Iterative prompt-to-image refinement."""

from .schemas import (
    ImageAnalysis,
    ImprovementDirection,
    Iteration,
    IterationStatus,
    OutputMode,
    ProcessStep,
    SessionState,
)
from .exceptions import (
    AttemptInProgress,
    CritiqueTimeout,
    EnhancementFailure,
    GenerationFailure,
    InvalidCritiqueShape,
    InvalidSelection,
    RefinementError,
    TransportFailure,
    UnsupportedMediaType,
)
from .modes import OUTPUT_MODES, get_output_mode
from .generator import ImageGenerator
from .enhancer import PromptEnhancer
from .critic import ImageCritic
from .engine import RefinementEngine
from .llm import get_chat_model, get_vision_model

__all__ = [
    "ImageAnalysis",
    "ImprovementDirection",
    "Iteration",
    "IterationStatus",
    "OutputMode",
    "ProcessStep",
    "SessionState",
    "AttemptInProgress",
    "CritiqueTimeout",
    "EnhancementFailure",
    "GenerationFailure",
    "InvalidCritiqueShape",
    "InvalidSelection",
    "RefinementError",
    "TransportFailure",
    "UnsupportedMediaType",
    "OUTPUT_MODES",
    "get_output_mode",
    "ImageGenerator",
    "PromptEnhancer",
    "ImageCritic",
    "RefinementEngine",
    "get_chat_model",
    "get_vision_model",
]
