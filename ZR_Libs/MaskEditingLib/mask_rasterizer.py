"""
Per-zone mask rasterization.

Each zone mask is drawn at photo resolution: the raster starts black, then
every stroke of that zone is drawn in order with round caps and joins, white
for paint and black for erase.

Functions:
    rasterize_zone_mask: Draw one zone's strokes into a new mask
    rasterize_masks: Draw every zone, collecting per-zone failures
"""

import logging
from typing import Dict, Iterable, List, Sequence, Tuple

from PIL import Image, ImageDraw

from ZR_Libs.constants import MASK_EXCLUDED, MASK_INCLUDED, MASK_MODE
from ZR_Libs.errors import MaskRasterizationError
from ZR_Libs.MaskEditingLib.mask_models import Stroke, StrokeTool

logger = logging.getLogger(__name__)


def _draw_stroke(draw: "ImageDraw.ImageDraw", stroke: Stroke) -> None:
    fill = MASK_INCLUDED if stroke.tool is StrokeTool.PAINT else MASK_EXCLUDED
    width = max(1, int(round(stroke.width)))

    if len(stroke.points) > 1:
        draw.line(list(stroke.points), fill=fill, width=width, joint="curve")

    # Round caps and joins; ellipse boxes are inclusive, so span width - 1
    for x, y in stroke.points:
        x0 = int(round(x - stroke.radius))
        y0 = int(round(y - stroke.radius))
        draw.ellipse((x0, y0, x0 + width - 1, y0 + width - 1), fill=fill)


def rasterize_zone_mask(
    color: str,
    strokes: Iterable[Stroke],
    size: Tuple[int, int],
) -> Image.Image:
    """
    Draw all strokes of one zone into a new full-resolution mask.

    Args:
        color: Zone color id (strokes of other colors are ignored)
        strokes: Strokes in drawing order
        size: Photo size (width, height)

    Returns:
        L-mode mask, 255 = included, 0 = excluded

    Raises:
        MaskRasterizationError: If the raster or drawing context cannot be created
    """
    try:
        mask = Image.new(MASK_MODE, size, MASK_EXCLUDED)
        draw = ImageDraw.Draw(mask)
    except (MemoryError, OSError, ValueError) as e:
        raise MaskRasterizationError(color, str(e)) from e

    drawn = 0
    for stroke in strokes:
        if stroke.color != color:
            continue
        _draw_stroke(draw, stroke)
        drawn += 1

    logger.debug(f"Rasterized {drawn} stroke(s) for zone '{color}' at {size}")
    return mask


def rasterize_masks(
    strokes: Sequence[Stroke],
    size: Tuple[int, int],
) -> Tuple[Dict[str, Image.Image], Dict[str, str]]:
    """
    Rasterize one mask per distinct stroke color.

    Returns:
        Tuple of (masks: color -> mask, failures: color -> error message).
        A color appears in exactly one of the two dicts.
    """
    colors: List[str] = []
    for stroke in strokes:
        if stroke.color not in colors:
            colors.append(stroke.color)

    masks: Dict[str, Image.Image] = {}
    failures: Dict[str, str] = {}
    for color in colors:
        try:
            masks[color] = rasterize_zone_mask(color, strokes, size)
        except MaskRasterizationError as e:
            logger.warning(f"Excluding zone '{color}': {e}")
            failures[color] = str(e)

    return masks, failures
