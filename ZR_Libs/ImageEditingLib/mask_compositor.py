"""
Zone Mask Compositor.

Builds the composite protection mask from per-zone masks and writes a zone's
edited output back into the working image. Selection is strict per pixel:
inside the mask the edited pixel is taken, outside it the working pixel is
kept byte-for-byte. Nothing is averaged.

Mask edges are thresholded hard (no feathering). A pixel is "included" when
its mask value is at least the threshold, so anti-aliased stroke edges still
count as part of the zone.

Example:
    >>> working = Image.new("RGB", (100, 100), "red")
    >>> edited = Image.new("RGB", (100, 100), "blue")
    >>> mask = Image.new("L", (100, 100), 0)
    >>> ImageDraw.Draw(mask).rectangle((10, 10, 40, 40), fill=255)
    >>> result = MaskCompositor.blend_zone_result(working, edited, mask)
"""

from typing import Any, Iterable, Optional, Tuple

import numpy as np
from PIL import Image

from ZR_Libs.constants import MASK_EXCLUDED, MASK_INCLUDED, MASK_MODE, MASK_THRESHOLD, PHOTO_MODE
from ZR_Libs.errors import CompositingError


def _included(mask: Image.Image, threshold: int) -> np.ndarray:
    """Boolean array: True where any channel of the mask reaches threshold."""
    if mask.mode not in ("L", "LA", "RGB", "RGBA"):
        mask = mask.convert(MASK_MODE)
    array = np.asarray(mask)
    if array.ndim == 3:
        return np.any(array >= threshold, axis=2)
    return array >= threshold


def is_mask_empty(mask: Image.Image, threshold: int = MASK_THRESHOLD) -> bool:
    """Return True if no pixel of the mask is included."""
    return not bool(_included(mask, threshold).any())


def mask_bounding_box(mask: Image.Image, threshold: int = MASK_THRESHOLD) -> Optional[Tuple[int, int, int, int]]:
    """
    Bounding box (left, top, right, bottom) of the included pixels.

    Right and bottom are exclusive. Returns None for an empty mask.
    """
    included = _included(mask, threshold)
    rows = np.flatnonzero(included.any(axis=1))
    cols = np.flatnonzero(included.any(axis=0))
    if rows.size == 0 or cols.size == 0:
        return None
    return int(cols[0]), int(rows[0]), int(cols[-1]) + 1, int(rows[-1]) + 1


def mask_bounding_box_area(mask: Image.Image, threshold: int = MASK_THRESHOLD) -> int:
    """Pixel area of the mask's bounding box (0 for an empty mask)."""
    box = mask_bounding_box(mask, threshold)
    if box is None:
        return 0
    left, top, right, bottom = box
    return (right - left) * (bottom - top)


class MaskCompositor:
    """Handles composite mask construction and zone-result blending."""

    @staticmethod
    def build_composite_mask(
        masks: Iterable[Image.Image],
        size: Optional[Tuple[int, int]] = None,
        threshold: int = MASK_THRESHOLD,
    ) -> Image.Image:
        """
        Union of all zone masks as a pure black/white L image.

        Args:
            masks: Per-zone masks (any mode; every channel is checked)
            size: Output size when no masks are given
            threshold: Minimum channel value that counts as included

        Returns:
            L-mode PIL Image containing only 0 and 255

        Raises:
            CompositingError: If masks differ in size
            ValueError: If no masks and no size are given
        """
        union: Optional[np.ndarray] = None
        union_size = size

        for index, mask in enumerate(masks):
            if not hasattr(mask, "mode"):
                raise TypeError(f"Zone mask {index} is not a PIL Image, got {type(mask)}")
            if union_size is None:
                union_size = mask.size
            elif mask.size != union_size:
                raise CompositingError(
                    f"Zone mask {index} is {mask.size}, expected {union_size}"
                )

            included = _included(mask, threshold)
            union = included if union is None else (union | included)

        if union_size is None:
            raise ValueError("Cannot build a composite mask without masks or a size")

        if union is None:
            return Image.new(MASK_MODE, union_size, MASK_EXCLUDED)

        pixels = np.where(union, MASK_INCLUDED, MASK_EXCLUDED).astype(np.uint8)
        return Image.fromarray(pixels)

    @staticmethod
    def blend_zone_result(
        working_image: Any,
        edited_image: Any,
        mask: Any,
        threshold: int = MASK_THRESHOLD,
    ) -> Image.Image:
        """
        Take edited pixels inside the mask and working pixels everywhere else.

        Neither input is modified; a new RGB image is returned.

        Args:
            working_image: Current working image
            edited_image: Generated image for this zone (same size)
            mask: Zone mask (same size)
            threshold: Minimum channel value that counts as included

        Returns:
            New RGB PIL Image

        Raises:
            TypeError: If any input is not a PIL Image
            CompositingError: If sizes do not match
        """
        for name, value in (("working", working_image), ("edited", edited_image), ("mask", mask)):
            if not hasattr(value, "mode"):
                raise TypeError(f"Expected PIL Image for {name} image, got {type(value)}")

        if edited_image.size != working_image.size:
            raise CompositingError(
                f"Edited image is {edited_image.size}, working image is {working_image.size}"
            )
        if mask.size != working_image.size:
            raise CompositingError(
                f"Zone mask is {mask.size}, working image is {working_image.size}"
            )

        base = np.asarray(working_image.convert(PHOTO_MODE))
        edited = np.asarray(edited_image.convert(PHOTO_MODE))
        included = _included(mask, threshold)

        result = np.where(included[:, :, None], edited, base).astype(np.uint8)
        return Image.fromarray(result)

    @staticmethod
    def compose_before_after(before: Any, after: Any, position: float) -> Image.Image:
        """
        Split view for comparing a result with the original.

        Columns left of ``position * width`` come from ``before``, the rest
        from ``after``. Position 0 shows only the result, 1 only the original.

        Raises:
            CompositingError: If the images differ in size
            ValueError: If position is outside [0, 1]
        """
        if before.size != after.size:
            raise CompositingError(f"Original is {before.size}, result is {after.size}")
        if not 0.0 <= position <= 1.0:
            raise ValueError(f"position must be within [0, 1], got {position}")

        split = int(round(before.width * position))
        result = np.array(after.convert(PHOTO_MODE))
        result[:, :split] = np.asarray(before.convert(PHOTO_MODE))[:, :split]
        return Image.fromarray(result)
