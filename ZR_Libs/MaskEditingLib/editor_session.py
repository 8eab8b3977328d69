"""
Editor session: pointer input to resolution-independent zone masks.

An EditorSession owns everything mutable about mask editing for one photo:
the view transform, the stroke list, the stroke in progress, per-zone
instructions and the rasterized masks. It has an explicit lifecycle
(create, use, close) and can be used as a context manager.

Pointer samples arrive in screen (viewport) pixels and are converted to
image pixels immediately, so stored strokes never depend on zoom or pan.
Masks are re-rasterized at photo resolution on every stroke change.

Example:
    >>> with EditorSession(viewport_size=(800, 600)) as session:
    ...     session.load_photo(photo)
    ...     session.set_active_color("red")
    ...     session.pointer_down(120, 80)
    ...     session.pointer_move(180, 90)
    ...     session.pointer_up()
    ...     session.set_instruction("red", "remove the lamp")
    ...     zones = session.export_zones()
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from PIL import Image

from ZR_Libs.constants import (
    DEFAULT_BRUSH_SIZE,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
    DEFAULT_ZONE_COLOR,
    MASK_THRESHOLD,
    MAX_ZOOM_SCALE,
    MIN_ZOOM_SCALE,
    ZONE_COLORS,
    ZOOM_STEP_FACTOR,
)
from ZR_Libs.errors import EditorLockedError, StrokeInputError
from ZR_Libs.ImageEditingLib.image_models import Photo
from ZR_Libs.ImageEditingLib.mask_compositor import MaskCompositor, is_mask_empty
from ZR_Libs.MaskEditingLib.mask_models import Point, Stroke, StrokeTool, ViewTransform, ZoneSnapshot
from ZR_Libs.MaskEditingLib.mask_rasterizer import rasterize_masks

logger = logging.getLogger(__name__)

MasksListener = Callable[[Dict[str, Image.Image], Optional[Image.Image]], None]

PALETTE_IDS = tuple(color_id for color_id, _, _ in ZONE_COLORS)


def _coerce_sample(x, y) -> Point:
    try:
        fx, fy = float(x), float(y)
    except (TypeError, ValueError) as e:
        raise StrokeInputError(f"Non-numeric pointer sample ({x!r}, {y!r})") from e
    if not (math.isfinite(fx) and math.isfinite(fy)):
        raise StrokeInputError(f"Non-finite pointer sample ({x!r}, {y!r})")
    return fx, fy


@dataclass
class _StrokeInProgress:
    points: List[Point]
    width: float
    tool: StrokeTool
    color: str


@dataclass
class _PanGesture:
    last: Point = (0.0, 0.0)


class EditorSession:
    """
    Mask editor state for one photo.

    Attributes exposed read-only via properties: photo, transform, strokes,
    masks, composite_mask, excluded_zones, locked, closed.
    """

    def __init__(
        self,
        viewport_size: Tuple[int, int] = (DEFAULT_VIEWPORT_WIDTH, DEFAULT_VIEWPORT_HEIGHT),
        brush_size: float = DEFAULT_BRUSH_SIZE,
        mask_threshold: int = MASK_THRESHOLD,
    ) -> None:
        self._viewport: Tuple[int, int] = (int(viewport_size[0]), int(viewport_size[1]))
        self._brush_size = float(brush_size)
        self._mask_threshold = mask_threshold

        self._photo: Optional[Photo] = None
        self._transform = ViewTransform()
        self._tool = StrokeTool.PAINT
        self._active_color = DEFAULT_ZONE_COLOR

        self._strokes: List[Stroke] = []
        self._current: Optional[_StrokeInProgress] = None
        self._pan: Optional[_PanGesture] = None
        self._instructions: Dict[str, str] = {}

        self._masks: Dict[str, Image.Image] = {}
        self._excluded: Dict[str, str] = {}
        self._composite: Optional[Image.Image] = None
        self._listeners: List[MasksListener] = []

        self._locked = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> "EditorSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Dispose the photo, strokes and masks. The session cannot be reused."""
        if self._closed:
            return
        self._photo = None
        self._strokes.clear()
        self._current = None
        self._pan = None
        self._instructions.clear()
        self._masks.clear()
        self._excluded.clear()
        self._composite = None
        self._listeners.clear()
        self._closed = True
        logger.debug("Editor session closed")

    def reset(self) -> None:
        """Session reset: unlock and drop the photo, zones and masks."""
        self._check_open()
        self._locked = False
        self._photo = None
        self._strokes.clear()
        self._current = None
        self._pan = None
        self._instructions.clear()
        self._refit()
        self._rebuild_masks()
        logger.info("Editor session reset")

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("EditorSession is closed")

    def _check_unlocked(self, action: str) -> None:
        self._check_open()
        if self._locked:
            raise EditorLockedError(f"Cannot {action} while a pipeline step is in flight")

    def lock(self) -> None:
        """Refuse zone and mask edits (a pipeline step is in flight)."""
        self._check_open()
        self._locked = True
        self._current = None

    def unlock(self) -> None:
        self._check_open()
        self._locked = False

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Photo and viewport
    # ------------------------------------------------------------------

    def load_photo(self, photo: Photo) -> None:
        """Load a photo, clearing all strokes and instructions."""
        self._check_unlocked("load a photo")
        if not isinstance(photo, Photo):
            raise TypeError(f"Expected Photo, got {type(photo)}")

        self._photo = photo
        self._strokes.clear()
        self._current = None
        self._instructions.clear()
        self._refit()
        self._rebuild_masks()
        logger.info(f"Loaded photo {photo.size} (display {photo.display.size})")

    def change_image(self, photo: Photo) -> None:
        """Replace the photo; strokes and zones are cleared."""
        self.load_photo(photo)

    @property
    def photo(self) -> Optional[Photo]:
        return self._photo

    def set_viewport(self, width: int, height: int) -> None:
        """Resize the viewport and refit. Stored strokes are not touched."""
        self._check_open()
        if width <= 0 or height <= 0:
            logger.debug(f"Ignoring degenerate viewport size {width}x{height}")
            return
        self._viewport = (int(width), int(height))
        self._refit()

    @property
    def viewport_size(self) -> Tuple[int, int]:
        return self._viewport

    def _refit(self) -> None:
        if self._photo is None:
            self._transform = ViewTransform()
            return
        self._transform = ViewTransform.fit(self._photo.size, self._viewport)

    @property
    def transform(self) -> ViewTransform:
        return self._transform

    @property
    def display_scale(self) -> float:
        """Scale to apply to the display raster so it lines up with the transform."""
        if self._photo is None:
            return self._transform.scale
        return self._transform.scale * self._photo.width / self._photo.display.width

    def zoom(self, delta: float) -> None:
        """Change the scale by delta * 0.5, clamped, keeping the viewport center fixed."""
        self._check_open()
        current = self._transform
        new_scale = max(MIN_ZOOM_SCALE, min(current.scale + delta * ZOOM_STEP_FACTOR, MAX_ZOOM_SCALE))

        center_x = self._viewport[0] / 2.0
        center_y = self._viewport[1] / 2.0
        image_x, image_y = current.screen_to_image(center_x, center_y)
        self._transform = ViewTransform(
            scale=new_scale,
            offset_x=center_x - image_x * new_scale,
            offset_y=center_y - image_y * new_scale,
        )

    def pan(self, dx: float, dy: float) -> None:
        self._check_open()
        current = self._transform
        self._transform = ViewTransform(
            scale=current.scale,
            offset_x=current.offset_x + dx,
            offset_y=current.offset_y + dy,
        )

    def screen_to_image(self, x: float, y: float) -> Point:
        return self._transform.screen_to_image(x, y)

    def image_to_screen(self, x: float, y: float) -> Point:
        return self._transform.image_to_screen(x, y)

    def screen_to_image_width(self, width: float) -> float:
        return self._transform.screen_to_image_width(width)

    # ------------------------------------------------------------------
    # Tool state
    # ------------------------------------------------------------------

    def set_tool(self, tool) -> None:
        self._check_open()
        self._tool = tool if isinstance(tool, StrokeTool) else StrokeTool(tool)

    @property
    def tool(self) -> StrokeTool:
        return self._tool

    def set_active_color(self, color: str) -> None:
        self._check_open()
        if color not in PALETTE_IDS:
            raise ValueError(f"Unknown zone color '{color}'. Available: {', '.join(PALETTE_IDS)}")
        self._active_color = color

    @property
    def active_color(self) -> str:
        return self._active_color

    def set_brush_size(self, screen_pixels: float) -> None:
        self._check_open()
        if screen_pixels <= 0:
            raise ValueError(f"Brush size must be positive, got {screen_pixels}")
        self._brush_size = float(screen_pixels)

    @property
    def brush_size(self) -> float:
        return self._brush_size

    # ------------------------------------------------------------------
    # Pointer input
    # ------------------------------------------------------------------

    def pointer_down(self, x, y) -> None:
        self._check_open()
        if self._locked:
            logger.warning("Pointer input ignored: editor is locked")
            return
        if self._photo is None:
            logger.debug("Pointer input ignored: no photo loaded")
            return

        try:
            point = _coerce_sample(x, y)
        except StrokeInputError as e:
            logger.debug(f"Dropped pointer-down sample: {e}")
            return

        if self._tool is StrokeTool.PAN:
            self._pan = _PanGesture(last=point)
            return

        self._current = _StrokeInProgress(
            points=[self._transform.screen_to_image(*point)],
            width=self._transform.screen_to_image_width(self._brush_size),
            tool=self._tool,
            color=self._active_color,
        )

    def pointer_move(self, x, y) -> None:
        self._check_open()
        if self._current is None and self._pan is None:
            return

        try:
            point = _coerce_sample(x, y)
        except StrokeInputError as e:
            logger.debug(f"Dropped pointer-move sample: {e}")
            return

        if self._pan is not None:
            last_x, last_y = self._pan.last
            self.pan(point[0] - last_x, point[1] - last_y)
            self._pan.last = point
            return

        # Image-space conversion uses the transform active for this stroke
        self._current.points.append(self._transform.screen_to_image(*point))

    def pointer_up(self) -> None:
        self._check_open()
        if self._pan is not None:
            self._pan = None
            return
        if self._current is None:
            return

        current = self._current
        self._current = None
        stroke = Stroke(
            points=tuple(current.points),
            width=current.width,
            tool=current.tool,
            color=current.color,
        )
        self._strokes.append(stroke)
        logger.debug(
            f"Stroke finished: {stroke.tool.value} '{stroke.color}' "
            f"{len(stroke.points)} point(s), width {stroke.width:.2f}px"
        )
        self._rebuild_masks()

    @property
    def strokes(self) -> Tuple[Stroke, ...]:
        return tuple(self._strokes)

    @property
    def stroke_in_progress(self) -> Optional[Tuple[Tuple[Point, ...], float, StrokeTool, str]]:
        """(points, width, tool, color) of the stroke being drawn, for live display."""
        if self._current is None:
            return None
        current = self._current
        return tuple(current.points), current.width, current.tool, current.color

    def undo_last_stroke(self) -> Optional[Stroke]:
        self._check_unlocked("undo a stroke")
        if not self._strokes:
            return None
        removed = self._strokes.pop()
        self._rebuild_masks()
        return removed

    def clear(self) -> None:
        """Remove every stroke (instructions are kept)."""
        self._check_unlocked("clear strokes")
        self._strokes.clear()
        self._current = None
        self._rebuild_masks()

    # ------------------------------------------------------------------
    # Zones and masks
    # ------------------------------------------------------------------

    def set_instruction(self, color: str, text: str) -> None:
        self._check_unlocked("edit an instruction")
        if color not in PALETTE_IDS:
            raise ValueError(f"Unknown zone color '{color}'")
        self._instructions[color] = str(text or "")

    def instruction_for(self, color: str) -> str:
        return self._instructions.get(color, "")

    def add_masks_listener(self, listener: MasksListener) -> None:
        """Register a callback(masks, composite_mask) run after every rebuild."""
        self._check_open()
        if not callable(listener):
            raise ValueError(f"listener must be callable, got {type(listener)}")
        self._listeners.append(listener)

    def _rebuild_masks(self) -> None:
        if self._photo is None:
            self._masks, self._excluded, self._composite = {}, {}, None
        else:
            self._masks, self._excluded = rasterize_masks(self._strokes, self._photo.size)
            self._composite = MaskCompositor.build_composite_mask(
                self._masks.values(), size=self._photo.size, threshold=self._mask_threshold
            )

        for listener in list(self._listeners):
            listener(self.masks, self._composite)

    @property
    def masks(self) -> Dict[str, Image.Image]:
        return dict(self._masks)

    @property
    def composite_mask(self) -> Optional[Image.Image]:
        return self._composite

    @property
    def excluded_zones(self) -> Dict[str, str]:
        """Colors whose mask could not be rasterized, with the reason."""
        return dict(self._excluded)

    def export_zones(self) -> List[ZoneSnapshot]:
        """
        Immutable snapshots of every zone eligible for the pipeline.

        Zones without strokes, with an empty instruction, with a failed
        rasterization or with an all-black mask are left out. Order is the
        order in which each color was first drawn.
        """
        self._check_open()
        snapshots: List[ZoneSnapshot] = []
        seen: List[str] = []
        for stroke in self._strokes:
            if stroke.color not in seen:
                seen.append(stroke.color)

        for color in seen:
            instruction = self._instructions.get(color, "").strip()
            if color in self._excluded:
                logger.info(f"Zone '{color}' excluded: {self._excluded[color]}")
                continue
            if not instruction:
                logger.info(f"Zone '{color}' excluded: no instruction")
                continue
            mask = self._masks.get(color)
            if mask is None or is_mask_empty(mask, self._mask_threshold):
                logger.info(f"Zone '{color}' excluded: mask is empty")
                continue

            snapshots.append(ZoneSnapshot(
                color=color,
                instruction=instruction,
                mask=mask.copy(),
                stroke_count=sum(1 for s in self._strokes if s.color == color),
            ))

        return snapshots
