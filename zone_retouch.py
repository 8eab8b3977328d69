import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

from PIL import Image
from PyQt5.QtCore import QThread, Qt, pyqtSignal
from PyQt5.QtWidgets import (
    QApplication,
    QButtonGroup,
    QFileDialog,
    QGridLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QRadioButton,
    QSlider,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from ZR_Libs.constants import DEFAULT_BRUSH_SIZE, ENV_LOG_LEVEL, SUPPORTED_STANDARD_IMAGES, ZONE_COLORS
from ZR_Libs.errors import InvalidTransitionError, PipelineCancelledError, PipelineFatalError
from ZR_Libs.GenerationLib.generation_gateway import GatewayConfig
from ZR_Libs.GenerationLib.gemini_gateway import GeminiGenerationGateway
from ZR_Libs.ImageEditingLib.image_codec import save_image
from ZR_Libs.ImageEditingLib.image_models import load_photo
from ZR_Libs.ImageEditingLib.mask_compositor import MaskCompositor
from ZR_Libs.MaskEditingLib.editor_session import EditorSession
from ZR_Libs.MaskEditingLib.mask_canvas_widget import MaskCanvasWidget
from ZR_Libs.MaskEditingLib.mask_models import StrokeTool
from ZR_Libs.PipelineLib.edit_orchestrator import EditOrchestrator
from ZR_Libs.PipelineLib.pipeline_config import PipelineConfig
from ZR_Libs.PipelineLib.pipeline_state import PipelineState

logger = logging.getLogger(__name__)


class PipelineWorker(QThread):
    """Runs one orchestrator coroutine on its own event loop."""

    phase_changed = pyqtSignal(str)
    succeeded = pyqtSignal(object)
    failed = pyqtSignal(str, object)

    def __init__(self, job: Callable[[], Awaitable[object]]) -> None:
        super().__init__()
        self._job = job

    def run(self) -> None:
        try:
            result = asyncio.run(self._job())
        except PipelineCancelledError as e:
            self.failed.emit(f"Cancelled: {e}", None)
        except PipelineFatalError as e:
            self.failed.emit(str(e), e.state)
        except (InvalidTransitionError, ValueError, RuntimeError) as e:
            self.failed.emit(str(e), None)
        else:
            self.succeeded.emit(result)


class ZoneRetouchMainWindow(QMainWindow):
    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle("Zone Retouch")
        self.resize(1400, 850)

        self.session = EditorSession()
        self.config = PipelineConfig.from_env()
        self.orchestrator: Optional[EditOrchestrator] = None
        self.worker: Optional[PipelineWorker] = None
        self.resume_state: Optional[PipelineState] = None
        self.source_path: Optional[Path] = None
        self.result_display: Optional[Image.Image] = None
        self.instruction_edits: Dict[str, QLineEdit] = {}

        self._build_ui()
        self._connect_signals()

    def _build_ui(self) -> None:
        central = QWidget(self)
        self.setCentralWidget(central)

        root = QHBoxLayout(central)
        controls_col = QVBoxLayout()
        canvas_col = QVBoxLayout()

        self.btn_load_photo = QPushButton("Load Photo")

        self.tool_group = QButtonGroup(self)
        tools_row = QHBoxLayout()
        for tool in (StrokeTool.PAINT, StrokeTool.ERASE, StrokeTool.PAN):
            button = QRadioButton(tool.value.capitalize())
            button.setProperty("tool", tool.value)
            button.setChecked(tool is StrokeTool.PAINT)
            self.tool_group.addButton(button)
            tools_row.addWidget(button)

        self.brush_size = QSpinBox()
        self.brush_size.setRange(2, 400)
        self.brush_size.setValue(int(DEFAULT_BRUSH_SIZE))
        self.brush_size.setSuffix(" px")

        self.color_group = QButtonGroup(self)
        zones_grid = QGridLayout()
        for row, (color_id, hex_value, label) in enumerate(ZONE_COLORS):
            button = QRadioButton(label)
            button.setProperty("zone_color", color_id)
            button.setStyleSheet(f"color: {hex_value}; font-weight: bold;")
            button.setChecked(row == 0)
            self.color_group.addButton(button)

            edit = QLineEdit()
            edit.setPlaceholderText(f"Instruction for the {label.lower()} zone")
            self.instruction_edits[color_id] = edit

            zones_grid.addWidget(button, row, 0)
            zones_grid.addWidget(edit, row, 1)

        self.btn_undo = QPushButton("Undo Stroke")
        self.btn_clear = QPushButton("Clear Strokes")
        self.btn_submit = QPushButton("Submit")
        self.btn_resume = QPushButton("Resume")
        self.btn_resume.setEnabled(False)
        self.refine_edit = QLineEdit()
        self.refine_edit.setPlaceholderText("Follow-up instruction for the whole image")
        self.btn_refine = QPushButton("Refine")
        self.btn_reset = QPushButton("Reset")
        self.btn_save = QPushButton("Save Result")

        self.btn_show_original = QPushButton("Show Original")
        self.btn_show_original.setCheckable(True)
        self.compare_slider = QSlider(Qt.Horizontal)
        self.compare_slider.setRange(0, 100)
        self.compare_slider.setValue(0)
        self.compare_slider.setToolTip("Drag to reveal the original on the left")
        self._set_compare_enabled(False)

        self.label_status = QLabel("Load a photo to start")
        self.summary_view = QPlainTextEdit()
        self.summary_view.setReadOnly(True)

        self.canvas = MaskCanvasWidget(self.session)
        self.canvas.setStyleSheet("border: 1px solid #888;")

        controls_col.addWidget(self.btn_load_photo)
        controls_col.addWidget(QLabel("Tool"))
        controls_col.addLayout(tools_row)
        controls_col.addWidget(QLabel("Brush Size"))
        controls_col.addWidget(self.brush_size)
        controls_col.addWidget(QLabel("Zones"))
        controls_col.addLayout(zones_grid)
        controls_col.addWidget(self.btn_undo)
        controls_col.addWidget(self.btn_clear)
        controls_col.addWidget(self.btn_submit)
        controls_col.addWidget(self.btn_resume)
        controls_col.addWidget(QLabel("Refinement"))
        controls_col.addWidget(self.refine_edit)
        controls_col.addWidget(self.btn_refine)
        controls_col.addWidget(self.btn_reset)
        controls_col.addWidget(self.btn_save)
        controls_col.addWidget(QLabel("Result"))
        controls_col.addWidget(self.summary_view)

        canvas_col.addWidget(self.canvas, stretch=1)
        compare_row = QHBoxLayout()
        compare_row.addWidget(QLabel("Compare"))
        compare_row.addWidget(self.compare_slider, stretch=1)
        compare_row.addWidget(self.btn_show_original)
        canvas_col.addLayout(compare_row)
        canvas_col.addWidget(self.label_status)

        root.addLayout(controls_col, stretch=1)
        root.addLayout(canvas_col, stretch=3)

    def _connect_signals(self) -> None:
        self.btn_load_photo.clicked.connect(self.load_photo)
        self.tool_group.buttonClicked.connect(self.on_tool_selected)
        self.color_group.buttonClicked.connect(self.on_color_selected)
        self.brush_size.valueChanged.connect(self.on_brush_size_changed)
        for color_id, edit in self.instruction_edits.items():
            edit.textChanged.connect(lambda text, color=color_id: self.on_instruction_changed(color, text))
        self.btn_undo.clicked.connect(self.undo_stroke)
        self.btn_clear.clicked.connect(self.clear_strokes)
        self.btn_submit.clicked.connect(self.submit)
        self.btn_resume.clicked.connect(self.resume)
        self.btn_refine.clicked.connect(self.refine)
        self.btn_reset.clicked.connect(self.reset)
        self.btn_save.clicked.connect(self.save_result)
        self.compare_slider.valueChanged.connect(self._refresh_view)
        self.btn_show_original.toggled.connect(self._on_show_original_toggled)

    def _ensure_orchestrator(self) -> bool:
        if self.orchestrator is not None:
            return True
        try:
            gateway = GeminiGenerationGateway(GatewayConfig.from_env())
        except ValueError as e:
            QMessageBox.warning(self, "Generation Service", str(e))
            return False
        self.orchestrator = EditOrchestrator(gateway, self.config, editor=self.session)
        self.orchestrator.add_phase_listener(self._on_phase)
        return True

    def load_photo(self) -> None:
        patterns = " ".join(f"*{suffix}" for suffix in sorted(SUPPORTED_STANDARD_IMAGES))
        file_path, _ = QFileDialog.getOpenFileName(self, "Select Photo", "", f"Images ({patterns})")
        if not file_path:
            return

        try:
            photo = load_photo(Path(file_path))
            self.session.load_photo(photo)
        except (ValueError, OSError) as e:
            QMessageBox.warning(self, "Load Failed", str(e))
            return

        self.source_path = Path(file_path)
        for edit in self.instruction_edits.values():
            edit.blockSignals(True)
            edit.clear()
            edit.blockSignals(False)
        self.summary_view.clear()
        self.resume_state = None
        self.btn_resume.setEnabled(False)
        self._show_result(None)
        self.label_status.setText(f"{self.source_path.name}: {photo.width}x{photo.height}")

    def on_tool_selected(self, button) -> None:
        self.session.set_tool(button.property("tool"))

    def on_color_selected(self, button) -> None:
        self.session.set_active_color(button.property("zone_color"))

    def on_brush_size_changed(self, value: int) -> None:
        self.session.set_brush_size(float(value))

    def on_instruction_changed(self, color: str, text: str) -> None:
        if self.session.locked:
            return
        self.session.set_instruction(color, text)

    def undo_stroke(self) -> None:
        if self.session.locked:
            return
        self.session.undo_last_stroke()

    def clear_strokes(self) -> None:
        if self.session.locked:
            return
        self.session.clear()

    def submit(self) -> None:
        if self.session.photo is None:
            QMessageBox.warning(self, "No Photo", "Load a photo first.")
            return
        if not self._ensure_orchestrator():
            return

        for color, reason in self.session.excluded_zones.items():
            logger.warning(f"Zone '{color}' left out: {reason}")
        zones = self.session.export_zones()
        photo = self.session.photo
        self.summary_view.clear()
        self._start_worker(lambda: self.orchestrator.run(photo, zones), self._on_run_finished)

    def resume(self) -> None:
        if self.resume_state is None or not self._ensure_orchestrator():
            return
        state = self.resume_state
        self.resume_state = None
        self.btn_resume.setEnabled(False)
        self._start_worker(lambda: self.orchestrator.resume(state), self._on_run_finished)

    def refine(self) -> None:
        instruction = self.refine_edit.text().strip()
        if not instruction:
            return
        if self.orchestrator is None:
            QMessageBox.warning(self, "No Result", "Submit the zones first.")
            return
        self._start_worker(lambda: self.orchestrator.refine(instruction), self._on_refine_finished)

    def reset(self) -> None:
        if self.orchestrator is not None:
            self.orchestrator.reset()
        else:
            self.session.reset()
        self.source_path = None
        self.resume_state = None
        self.btn_resume.setEnabled(False)
        for edit in self.instruction_edits.values():
            edit.blockSignals(True)
            edit.clear()
            edit.blockSignals(False)
        self.summary_view.clear()
        self._show_result(None)
        self.label_status.setText("Session reset")

    def save_result(self) -> None:
        if self.orchestrator is None or self.orchestrator.state.working_image is None or self.source_path is None:
            QMessageBox.warning(self, "No Result", "Nothing to save yet.")
            return

        folder = QFileDialog.getExistingDirectory(self, "Select Save Directory")
        if not folder:
            return

        try:
            save_path = save_image(self.orchestrator.state.working_image, Path(folder), self.source_path.name)
        except OSError as e:
            QMessageBox.warning(self, "Save Failed", str(e))
            return
        self._show_info("Success", f"Saved {save_path}")

    def _start_worker(self, job, on_success) -> None:
        if self.worker is not None and self.worker.isRunning():
            QMessageBox.information(self, "Busy", "A pipeline step is already running.")
            return

        self.worker = PipelineWorker(job)
        self.worker.phase_changed.connect(self.label_status.setText)
        self.worker.succeeded.connect(on_success)
        self.worker.failed.connect(self._on_worker_failed)
        self._set_busy(True)
        self.worker.finished.connect(lambda: self._set_busy(False))
        self.worker.start()

    def _on_phase(self, state: PipelineState) -> None:
        # Called on the worker thread; hand over to the UI through the signal
        if self.worker is not None:
            self.worker.phase_changed.emit(state.describe())

    def _set_busy(self, busy: bool) -> None:
        for button in (self.btn_submit, self.btn_refine, self.btn_undo, self.btn_clear, self.btn_load_photo):
            button.setEnabled(not busy)

    def _set_compare_enabled(self, enabled: bool) -> None:
        self.compare_slider.setEnabled(enabled)
        self.btn_show_original.setEnabled(enabled)
        if not enabled:
            self.btn_show_original.setChecked(False)

    def _show_result(self, image: Optional[Image.Image]) -> None:
        """Keep a display-sized copy of the result and redraw the comparison."""
        photo = self.session.photo
        if image is None or photo is None:
            self.result_display = None
        else:
            self.result_display = image.resize(photo.display.size, Image.Resampling.LANCZOS)
        self._set_compare_enabled(self.result_display is not None)
        self._refresh_view()

    def _on_show_original_toggled(self, checked: bool) -> None:
        self.btn_show_original.setText("Show Result" if checked else "Show Original")
        self.compare_slider.setEnabled(not checked and self.result_display is not None)
        self._refresh_view()

    def _refresh_view(self, *_) -> None:
        photo = self.session.photo
        if self.result_display is None or photo is None:
            self.canvas.refresh_photo()
            return
        if self.btn_show_original.isChecked():
            position = 1.0
        else:
            position = self.compare_slider.value() / 100.0
        self.canvas.show_image(MaskCompositor.compose_before_after(photo.display, self.result_display, position))

    def _on_run_finished(self, report) -> None:
        lines = [report.summary_message()]
        if not report.base_upgrade_applied:
            lines.append(f"Base upgrade skipped: {report.base_upgrade_failure}")
        lines.extend(["", report.instruction_summary])
        self.summary_view.setPlainText("\n".join(lines))
        self._show_result(report.final_image)
        self.label_status.setText(report.summary_message())

    def _on_refine_finished(self, outcome) -> None:
        self._show_result(outcome.image)
        if outcome.applied:
            self.label_status.setText("Refinement applied")
            self.refine_edit.clear()
        else:
            self.label_status.setText(f"Refinement failed, previous result kept: {outcome.failure}")

    def _on_worker_failed(self, message: str, state) -> None:
        if state is not None:
            self.resume_state = state
            self.btn_resume.setEnabled(True)
        self.label_status.setText(message)
        QMessageBox.warning(self, "Pipeline", message)

    def _show_info(self, title: str, message: str) -> None:
        QMessageBox.information(self, title, message)


def main() -> None:
    logging.basicConfig(
        level=os.environ.get(ENV_LOG_LEVEL, "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QApplication(sys.argv)
    window = ZoneRetouchMainWindow()
    window.show()
    sys.exit(app.exec_())


if __name__ == "__main__":
    main()
