"""
Image data models for Zone Retouch.

This module defines the photo container used throughout the editing system.

Classes:
    Photo: Immutable full-resolution photo plus its downscaled display raster

Functions:
    derive_display_image: Downscale a photo for interactive display
    load_photo: Open an image file as a Photo
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image

from ZR_Libs.constants import DISPLAY_MAX_SIDE, PHOTO_MODE, SUPPORTED_STANDARD_IMAGES


def derive_display_image(image: Image.Image, max_side: int = DISPLAY_MAX_SIDE) -> Image.Image:
    """
    Downscale an image so its longest side is at most max_side.

    Args:
        image: Full-resolution PIL Image
        max_side: Longest allowed side of the display raster

    Returns:
        A new PIL Image (never the same object as the input)
    """
    if max_side < 1:
        raise ValueError(f"max_side must be positive, got {max_side}")

    width, height = image.size
    longest = max(width, height)
    if longest <= max_side:
        return image.copy()

    factor = max_side / float(longest)
    new_size = (max(1, round(width * factor)), max(1, round(height * factor)))
    return image.resize(new_size, Image.Resampling.LANCZOS)


@dataclass(frozen=True)
class Photo:
    """
    Full-resolution photo loaded once per session.

    The display raster is derived for on-screen drawing only; masks are
    always rasterized against ``size``.

    Attributes:
        image: Full-resolution RGB raster (treat as read-only)
        display: Downscaled raster for interactive display
        path: Source path, if the photo was loaded from disk
    """
    image: Image.Image
    display: Image.Image = field(repr=False)
    path: Optional[Path] = None

    @classmethod
    def from_image(cls, image: Image.Image, path: Optional[Path] = None) -> "Photo":
        """Create a Photo from a PIL Image (the input is copied, never kept)."""
        if not hasattr(image, "mode"):
            raise TypeError(f"Expected PIL Image, got {type(image)}")
        if image.width < 1 or image.height < 1:
            raise ValueError(f"Photo must have non-zero size, got {image.size}")

        full = image.convert(PHOTO_MODE) if image.mode != PHOTO_MODE else image.copy()
        return cls(image=full, display=derive_display_image(full), path=path)

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


def load_photo(path: Path) -> Photo:
    """
    Open an image file as a Photo.

    Raises:
        ValueError: If the file extension is not a supported image type
        OSError: If the file cannot be read or decoded
    """
    path = Path(path)
    if path.suffix.lower() not in SUPPORTED_STANDARD_IMAGES:
        raise ValueError(f"Unsupported image type: {path.suffix}")

    with Image.open(path) as opened:
        opened.load()
        return Photo.from_image(opened, path=path)
