"""
Exception types for Zone Retouch.

Per-zone problems (rasterization, compositing) are recoverable and are
recorded against the zone; pipeline-fatal problems abort the run and carry
the last completed PipelineState so the caller can resume.

Generation failures are not exceptions: they travel across the gateway
boundary as GenerationFailure values (see GenerationLib.generation_gateway).
"""

from typing import Any, Optional


class ZoneRetouchError(Exception):
    """Base class for all Zone Retouch errors."""


class StrokeInputError(ZoneRetouchError):
    """A pointer sample could not be interpreted (dropped silently)."""


class MaskRasterizationError(ZoneRetouchError):
    """A zone mask could not be drawn; the zone is excluded."""

    def __init__(self, color: str, message: str) -> None:
        super().__init__(f"Mask rasterization failed for zone '{color}': {message}")
        self.color = color


class CompositingError(ZoneRetouchError):
    """Working image, edited image and mask disagree on dimensions."""


class EditorLockedError(ZoneRetouchError):
    """Zones and masks cannot be edited while a pipeline step is in flight."""


class PipelineFatalError(ZoneRetouchError):
    """
    The run cannot continue.

    Attributes:
        state: Last completed PipelineState (None if nothing was started),
               usable with EditOrchestrator.resume()
    """

    def __init__(self, message: str, state: Optional[Any] = None) -> None:
        super().__init__(message)
        self.state = state


class PipelineCancelledError(ZoneRetouchError):
    """The run was abandoned by a reset; late results were discarded."""


class InvalidTransitionError(ZoneRetouchError):
    """A pipeline transition was requested from the wrong phase."""
