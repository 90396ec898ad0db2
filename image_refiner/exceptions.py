"""Error taxonomy for the refinement pipeline."""

from typing import Optional


class RefinementError(Exception):
    """Base exception for all refinement pipeline errors.

    Args:
        message: Human-readable cause.
        stage: Pipeline stage that failed ("enhancement", "generation", "critique").
        details: Extra context for logging.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class EnhancementFailure(RefinementError):
    """Raised when the prompt enhancement model errors or returns nothing."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, stage="enhancement", details=details)


class GenerationFailure(RefinementError):
    """Raised when the primary image generation request fails or yields no image."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, stage="generation", details=details)


class UnsupportedMediaType(RefinementError):
    """Raised when a fetched image has a content type the critic cannot read."""

    def __init__(self, content_type: str, allowed: tuple[str, ...]):
        super().__init__(
            f"Unsupported image type: {content_type}. "
            f"Supported types are: {', '.join(allowed)}",
            stage="critique",
            details={"content_type": content_type},
        )
        self.content_type = content_type


class CritiqueTimeout(RefinementError):
    """Raised when the critique model does not answer in time."""

    def __init__(self, timeout: float):
        super().__init__(
            f"Critique model did not respond within {timeout:g}s",
            stage="critique",
            details={"timeout": timeout},
        )
        self.timeout = timeout


class InvalidCritiqueShape(RefinementError):
    """Raised when a critique parses as JSON but is not the expected object.

    Never surfaced to callers: the critic recovers with a fallback analysis.
    """

    def __init__(self, message: str):
        super().__init__(message, stage="critique")


class TransportFailure(RefinementError):
    """Generic network-layer fault at any stage."""


class InvalidSelection(RefinementError):
    """Raised when an engine operation is called with unusable arguments."""


class AttemptInProgress(RefinementError):
    """Raised when a second attempt is requested while one is still running."""

    def __init__(self):
        super().__init__("Another attempt is already in progress")
