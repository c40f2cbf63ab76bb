"""Error taxonomy shared by every stage of a fusion run."""

from __future__ import annotations

__all__ = [
    "FusionError",
    "ValidationError",
    "EncodingError",
    "StyleAnalysisFailed",
    "FusionFailed",
    "NoImageDataError",
]


class FusionError(RuntimeError):
    """Base class for failures surfaced to the user as a single message."""

    default_message = "An unknown error occurred during image generation."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(FusionError):
    """Raised locally, before any remote call, when required input is unusable."""

    default_message = "Please upload both a reference and a subject image."


class EncodingError(FusionError):
    """Raised when an uploaded file cannot be read or encoded."""

    default_message = "Failed to read the uploaded image."


class StyleAnalysisFailed(FusionError):
    """Raised when the reference image could not be turned into a style descriptor."""

    default_message = "Failed to analyze the reference image. The content may have been blocked."


class FusionFailed(FusionError):
    """Raised when the fan-out of fusion calls did not produce a usable gallery."""

    default_message = (
        "Failed to generate the final images. The content may have been blocked or the model failed."
    )


class NoImageDataError(FusionError):
    """Raised when a single fusion response carries no inline image part."""

    default_message = "Image generation failed, no image data found in response."
