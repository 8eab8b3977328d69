"""
PyQt5 canvas for painting zone masks.

MaskCanvasWidget is a thin view over an EditorSession: mouse, wheel and
resize events are forwarded to the session (which owns all state) and the
widget paints the photo's display raster, a tinted overlay of every zone
mask and the stroke currently being drawn.

Mouse mapping:
    Left button: active tool (paint, erase or pan)
    Middle button: pan
    Wheel: zoom around the viewport center
"""

import logging
from io import BytesIO
from typing import Dict, Optional

from PIL import Image
from PyQt5.QtCore import QPointF, QRectF, Qt, pyqtSignal
from PyQt5.QtGui import QColor, QPainter, QPen, QPixmap
from PyQt5.QtWidgets import QWidget

from ZR_Libs.constants import ZONE_COLORS
from ZR_Libs.MaskEditingLib.editor_session import EditorSession
from ZR_Libs.MaskEditingLib.mask_models import StrokeTool

logger = logging.getLogger(__name__)

OVERLAY_ALPHA = 110
ERASE_PREVIEW_COLOR = "#9ca3af"
CANVAS_BACKGROUND = "#1f2937"

ZONE_HEX: Dict[str, str] = {color_id: hex_value for color_id, hex_value, _ in ZONE_COLORS}


def _hex_to_rgb(hex_value: str):
    value = hex_value.lstrip("#")
    return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))


def pil_to_pixmap(image: Image.Image) -> QPixmap:
    """Convert a PIL image to a QPixmap through an in-memory PNG."""
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    pixmap = QPixmap()
    if not pixmap.loadFromData(buffer.getvalue(), "PNG"):
        raise ValueError("Could not convert image to pixmap")
    return pixmap


def build_mask_overlay(masks: Dict[str, Image.Image], size) -> Image.Image:
    """Tint every zone mask with its palette color, at display size."""
    overlay = Image.new("RGBA", size, (0, 0, 0, 0))
    for color, mask in masks.items():
        rgb = _hex_to_rgb(ZONE_HEX.get(color, "#ffffff"))
        scaled = mask.resize(size, Image.Resampling.NEAREST)
        alpha = scaled.point(lambda value: OVERLAY_ALPHA if value else 0)
        tint = Image.new("RGBA", size, rgb + (0,))
        tint.putalpha(alpha)
        overlay = Image.alpha_composite(overlay, tint)
    return overlay


class MaskCanvasWidget(QWidget):
    """Interactive mask painting surface bound to one EditorSession."""

    masks_changed = pyqtSignal()

    def __init__(self, session: EditorSession, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.session = session
        self._photo_pixmap: Optional[QPixmap] = None
        self._overlay_pixmap: Optional[QPixmap] = None
        self._middle_pan_last: Optional[QPointF] = None

        self.setMinimumSize(400, 300)
        self.setFocusPolicy(Qt.StrongFocus)
        self.session.add_masks_listener(self._on_masks_rebuilt)

    def refresh_photo(self) -> None:
        """Reload the display raster after the session's photo changed."""
        photo = self.session.photo
        self._photo_pixmap = pil_to_pixmap(photo.display) if photo is not None else None
        self.session.set_viewport(self.width(), self.height())
        self._on_masks_rebuilt(self.session.masks, self.session.composite_mask)

    def show_image(self, image: Optional[Image.Image]) -> None:
        """Show a different raster (e.g. the pipeline result) in place of the photo."""
        photo = self.session.photo
        if image is None or photo is None:
            self.refresh_photo()
            return
        self._photo_pixmap = pil_to_pixmap(image.resize(photo.display.size, Image.Resampling.LANCZOS))
        self.update()

    def _on_masks_rebuilt(self, masks, composite) -> None:
        photo = self.session.photo
        if photo is None or not masks:
            self._overlay_pixmap = None
        else:
            self._overlay_pixmap = pil_to_pixmap(build_mask_overlay(masks, photo.display.size))
        self.masks_changed.emit()
        self.update()

    # ------------------------------------------------------------------
    # Qt events
    # ------------------------------------------------------------------

    def resizeEvent(self, event) -> None:
        self.session.set_viewport(event.size().width(), event.size().height())
        super().resizeEvent(event)

    def wheelEvent(self, event) -> None:
        steps = event.angleDelta().y() / 120.0
        if steps:
            self.session.zoom(steps)
            self.update()
        event.accept()

    def mousePressEvent(self, event) -> None:
        if event.button() == Qt.MiddleButton:
            self._middle_pan_last = QPointF(event.pos())
            self.setCursor(Qt.ClosedHandCursor)
            event.accept()
            return
        if event.button() == Qt.LeftButton:
            self.session.pointer_down(event.x(), event.y())
            self.update()
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event) -> None:
        if self._middle_pan_last is not None:
            position = QPointF(event.pos())
            delta = position - self._middle_pan_last
            self._middle_pan_last = position
            self.session.pan(delta.x(), delta.y())
            self.update()
            event.accept()
            return
        if event.buttons() & Qt.LeftButton:
            self.session.pointer_move(event.x(), event.y())
            self.update()
            event.accept()
            return
        super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event) -> None:
        if event.button() == Qt.MiddleButton and self._middle_pan_last is not None:
            self._middle_pan_last = None
            self.unsetCursor()
            event.accept()
            return
        if event.button() == Qt.LeftButton:
            self.session.pointer_up()
            self.update()
            event.accept()
            return
        super().mouseReleaseEvent(event)

    def paintEvent(self, event) -> None:
        painter = QPainter(self)
        painter.setRenderHint(QPainter.SmoothPixmapTransform)
        painter.setRenderHint(QPainter.Antialiasing)
        painter.fillRect(self.rect(), QColor(CANVAS_BACKGROUND))

        if self._photo_pixmap is not None:
            transform = self.session.transform
            scale = self.session.display_scale
            target = QRectF(
                transform.offset_x,
                transform.offset_y,
                self._photo_pixmap.width() * scale,
                self._photo_pixmap.height() * scale,
            )
            painter.drawPixmap(target, self._photo_pixmap, QRectF(self._photo_pixmap.rect()))
            if self._overlay_pixmap is not None:
                painter.drawPixmap(target, self._overlay_pixmap, QRectF(self._overlay_pixmap.rect()))
            self._paint_stroke_in_progress(painter)

        painter.end()

    def _paint_stroke_in_progress(self, painter: QPainter) -> None:
        current = self.session.stroke_in_progress
        if current is None:
            return
        points, width, tool, color = current

        pen_color = QColor(ERASE_PREVIEW_COLOR if tool is StrokeTool.ERASE else ZONE_HEX.get(color, "#ffffff"))
        pen_color.setAlpha(180)
        pen = QPen(pen_color, max(1.0, width * self.session.transform.scale))
        pen.setCapStyle(Qt.RoundCap)
        pen.setJoinStyle(Qt.RoundJoin)
        painter.setPen(pen)

        screen_points = [QPointF(*self.session.image_to_screen(x, y)) for x, y in points]
        if len(screen_points) == 1:
            painter.drawPoint(screen_points[0])
            return
        for start, end in zip(screen_points, screen_points[1:]):
            painter.drawLine(start, end)
