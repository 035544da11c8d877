"""
Error taxonomy for the detection pipeline.

Every error can carry the pipeline stage that raised it and the identifier of the
image being processed, so callers (CLI, batch runner) can report where it failed.
"""

from __future__ import annotations

from typing import Optional


class DetectionError(Exception):
    """
    Base class for all pipeline errors.
    """

    def __init__(self, message: str, *, stage: Optional[str] = None, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.source = source

    def with_context(self, *, stage: Optional[str] = None, source: Optional[str] = None) -> "DetectionError":
        # Inner context wins: only fill what is still missing.
        if self.stage is None:
            self.stage = stage
        if self.source is None:
            self.source = source
        return self

    def __str__(self) -> str:
        prefix = ""
        if self.source:
            prefix += f"[{self.source}] "
        if self.stage:
            prefix += f"{self.stage}: "
        return f"{prefix}{self.message}"


class InvalidImage(DetectionError, ValueError):
    """Unreadable, zero-dimension or otherwise unusable input image."""


class UnsupportedFormat(DetectionError, ValueError):
    """Tensor or pixel layout that does not match what the pipeline expects."""


class UnsupportedImageFormat(InvalidImage, UnsupportedFormat):
    """Pixel buffer with an unrecognized channel count or dtype."""


class InferenceFailure(DetectionError, RuntimeError):
    """The inference engine reported an error. Not retried by the pipeline."""


class EncodingError(DetectionError, ValueError):
    """The detection report could not be serialized."""


class StageFailure(DetectionError, RuntimeError):
    """Unexpected error raised inside a pipeline stage; the original is chained as `__cause__`."""
