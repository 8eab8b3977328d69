"""
MaskEditingLib - Interactive zone mask editing

This module provides the editor session that turns pointer strokes into
full-resolution per-zone masks, plus the stroke and transform models.
The PyQt5 canvas widget lives in mask_canvas_widget and is imported
directly by the desktop application.
"""

from ZR_Libs.MaskEditingLib.mask_models import Point, Stroke, StrokeTool, ViewTransform, ZoneSnapshot
from ZR_Libs.MaskEditingLib.mask_rasterizer import rasterize_zone_mask, rasterize_masks
from ZR_Libs.MaskEditingLib.editor_session import EditorSession, PALETTE_IDS

__all__ = [
    "Point",
    "Stroke",
    "StrokeTool",
    "ViewTransform",
    "ZoneSnapshot",
    "rasterize_zone_mask",
    "rasterize_masks",
    "EditorSession",
    "PALETTE_IDS",
]
