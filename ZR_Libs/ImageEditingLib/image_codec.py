"""
Image encoding and decoding for Zone Retouch.

Photographic rasters travel as JPEG; masks travel as PNG so the white/black
boundary is never disturbed by lossy compression.

Functions:
    encode_photo: Encode a photo or working image as JPEG bytes
    encode_mask: Encode a mask as lossless PNG bytes
    decode_image: Decode image bytes (or a data URL) into a PIL Image
    save_image: Save a working image to disk with the output prefix
"""

import base64
import binascii
import io
import re
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ZR_Libs.constants import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_OUTPUT_FORMAT,
    MASK_MODE,
    MASK_TRANSFER_FORMAT,
    OUTPUT_FILE_PREFIX,
    PHOTO_MODE,
    PHOTO_TRANSFER_FORMAT,
)

_DATA_URL_PATTERN = re.compile(r"^data:image/[\w.+-]+;base64,")


def encode_photo(image: Image.Image, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """
    Encode an image as JPEG bytes.

    Args:
        image: PIL Image (converted to RGB)
        quality: JPEG quality 1-100

    Returns:
        Encoded JPEG bytes
    """
    buffer = io.BytesIO()
    image.convert(PHOTO_MODE).save(
        buffer, format=PHOTO_TRANSFER_FORMAT, quality=max(1, min(100, int(quality)))
    )
    return buffer.getvalue()


def encode_mask(mask: Image.Image) -> bytes:
    """Encode a mask as PNG bytes (single channel, lossless)."""
    buffer = io.BytesIO()
    mask.convert(MASK_MODE).save(buffer, format=MASK_TRANSFER_FORMAT)
    return buffer.getvalue()


def decode_image(data) -> Image.Image:
    """
    Decode image bytes into a fully loaded RGB PIL Image.

    Accepts raw bytes, base64 text, or a ``data:image/...;base64,`` URL.

    Raises:
        ValueError: If the payload is empty or not a decodable image
    """
    if isinstance(data, str):
        payload = _DATA_URL_PATTERN.sub("", data.strip())
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 image payload: {e}") from e

    if not data:
        raise ValueError("Empty image payload")

    try:
        with Image.open(io.BytesIO(data)) as opened:
            opened.load()
            return opened.convert(PHOTO_MODE)
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Payload is not a decodable image: {e}") from e


def save_image(image: Image.Image, output_dir: Path, source_name: str) -> Path:
    """
    Save an image to disk in PNG format.

    The file is named after the source photo with the output prefix.

    Returns:
        Path of the written file

    Raises:
        OSError: If directory cannot be accessed or files cannot be written
    """
    if not output_dir.exists():
        raise OSError(f"Output directory does not exist: {output_dir}")

    if not output_dir.is_dir():
        raise OSError(f"Output path is not a directory: {output_dir}")

    save_path = output_dir / f"{OUTPUT_FILE_PREFIX}{Path(source_name).stem}.png"
    image.save(save_path, format=DEFAULT_OUTPUT_FORMAT)
    return save_path
