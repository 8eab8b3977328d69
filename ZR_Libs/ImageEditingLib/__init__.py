"""
ImageEditingLib - Core image handling for Zone Retouch

This module provides the photo model, image codecs, and the mask
compositor used by the editing pipeline.
"""

from ZR_Libs.ImageEditingLib.image_models import Photo, derive_display_image, load_photo
from ZR_Libs.ImageEditingLib.image_codec import (
    encode_photo,
    encode_mask,
    decode_image,
    save_image,
)
from ZR_Libs.ImageEditingLib.mask_compositor import (
    MaskCompositor,
    is_mask_empty,
    mask_bounding_box,
    mask_bounding_box_area,
)

__all__ = [
    "Photo",
    "derive_display_image",
    "load_photo",
    "encode_photo",
    "encode_mask",
    "decode_image",
    "save_image",
    "MaskCompositor",
    "is_mask_empty",
    "mask_bounding_box",
    "mask_bounding_box_area",
]
