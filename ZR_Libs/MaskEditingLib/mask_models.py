"""
Mask editing data models for Zone Retouch.

Classes:
    StrokeTool: Pointer tool (paint, erase, pan)
    Stroke: A finished freehand stroke stored in image space
    ViewTransform: Screen <-> image coordinate transform
    ZoneSnapshot: Immutable export of one zone for the pipeline

Type Aliases:
    Point: An (x, y) pair of floats
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from PIL import Image

from ZR_Libs.constants import FIT_PADDING, TOOL_ERASE, TOOL_PAINT, TOOL_PAN

Point = Tuple[float, float]


class StrokeTool(Enum):
    PAINT = TOOL_PAINT
    ERASE = TOOL_ERASE
    PAN = TOOL_PAN


@dataclass(frozen=True)
class Stroke:
    """
    A finished stroke. Points and width are in image (photo) pixels, so the
    stroke stays valid whatever zoom or pan is applied later.

    Attributes:
        points: Ordered image-space points
        width: Brush width in image pixels (radius is width / 2)
        tool: PAINT or ERASE
        color: Zone color id
    """
    points: Tuple[Point, ...]
    width: float
    tool: StrokeTool
    color: str

    def __post_init__(self):
        if not self.points:
            raise ValueError("Stroke must have at least one point")
        if self.width <= 0:
            raise ValueError(f"Stroke width must be positive, got {self.width}")
        if self.tool is StrokeTool.PAN:
            raise ValueError("Pan gestures are not strokes")

    @property
    def radius(self) -> float:
        return self.width / 2.0


@dataclass(frozen=True)
class ViewTransform:
    """
    Uniform scale plus offset mapping image pixels onto the viewport.

    ``image = (screen - offset) / scale`` and ``screen = image * scale + offset``.
    """
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    def __post_init__(self):
        if self.scale <= 0:
            raise ValueError(f"scale must be positive, got {self.scale}")

    @classmethod
    def fit(
        cls,
        image_size: Tuple[int, int],
        viewport_size: Tuple[int, int],
        padding: float = FIT_PADDING,
    ) -> "ViewTransform":
        """
        Fit and center an image inside a viewport, preserving aspect ratio.

        The image is never enlarged past 1:1 by fitting.
        """
        image_w, image_h = image_size
        view_w, view_h = viewport_size
        if image_w <= 0 or image_h <= 0:
            raise ValueError(f"Image size must be positive, got {image_size}")
        if view_w <= 0 or view_h <= 0:
            raise ValueError(f"Viewport size must be positive, got {viewport_size}")

        scale = min(view_w / image_w, view_h / image_h, 1.0) * padding
        return cls(
            scale=scale,
            offset_x=(view_w - image_w * scale) / 2.0,
            offset_y=(view_h - image_h * scale) / 2.0,
        )

    def screen_to_image(self, x: float, y: float) -> Point:
        return (x - self.offset_x) / self.scale, (y - self.offset_y) / self.scale

    def image_to_screen(self, x: float, y: float) -> Point:
        return x * self.scale + self.offset_x, y * self.scale + self.offset_y

    def screen_to_image_width(self, width: float) -> float:
        return width / self.scale


@dataclass(frozen=True)
class ZoneSnapshot:
    """
    One zone as handed to the pipeline: a color, its instruction and a
    private copy of its full-resolution mask.
    """
    color: str
    instruction: str
    mask: Image.Image
    stroke_count: int = 0
