"""gcodesplit – Step-by-step wizard flow (PyQt6).

Guides the user through:
  1. Pick file
  2. Choose how to split it
  3. Confirm, pick the output folder & run
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from PyQt6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDoubleSpinBox,
    QFileDialog,
    QFormLayout,
    QLabel,
    QMessageBox,
    QPushButton,
    QSpinBox,
    QVBoxLayout,
    QWizard,
    QWizardPage,
)

from gcodesplit.app.controller import GCodeSplitController
from gcodesplit.core.profiles import ProfileLoader


# ---------------------------------------------------------------------------
# Page 1 – Pick G-code file
# ---------------------------------------------------------------------------

class FilePickerPage(QWizardPage):
    """Wizard page: select the source .gcode file."""

    def __init__(self, parent: Optional[QWizard] = None) -> None:
        super().__init__(parent)
        self.setTitle("Select G-code File")
        self.setSubTitle("Choose the sliced .gcode file to split into parts.")

        layout = QVBoxLayout(self)

        self.path_label = QLabel("No file selected")
        self.path_label.setWordWrap(True)
        layout.addWidget(self.path_label)

        btn = QPushButton("Browse…")
        btn.clicked.connect(self._browse)
        layout.addWidget(btn)

        self._file_path: str = ""

    def _browse(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self,
            "Select G-code File",
            "",
            "G-code Files (*.gcode *.gco *.g);;All Files (*)",
        )
        if path:
            self._file_path = path
            self.path_label.setText(path)
            self.completeChanged.emit()

    def isComplete(self) -> bool:  # type: ignore[override]
        return bool(self._file_path) and os.path.isfile(self._file_path)

    def file_path(self) -> str:
        return self._file_path


# ---------------------------------------------------------------------------
# Page 2 – Split settings
# ---------------------------------------------------------------------------

class SplitSettingsPage(QWizardPage):
    """Wizard page: part count, limits and resume options."""

    def __init__(self, parent: Optional[QWizard] = None) -> None:
        super().__init__(parent)
        self.setTitle("Split Settings")
        self.setSubTitle("Choose how many parts to make and how each part resumes.")

        form = QFormLayout(self)

        self.parts_spin = QSpinBox()
        self.parts_spin.setRange(1, 999)
        self.parts_spin.setValue(3)
        form.addRow("Parts:", self.parts_spin)

        # 0 means "no limit"
        self.max_layers_spin = QSpinBox()
        self.max_layers_spin.setRange(0, 999999)
        self.max_layers_spin.setSpecialValueText("No limit")
        form.addRow("Max layers per part:", self.max_layers_spin)

        self.start_spin = QSpinBox()
        self.start_spin.setRange(0, 999999)
        form.addRow("Start layer:", self.start_spin)

        self.profile_combo = QComboBox()
        for name in ProfileLoader().list_profiles():
            self.profile_combo.addItem(name.removesuffix(".json"), name)
        if not self.profile_combo.count():
            self.profile_combo.addItem("Built-in defaults", None)
        form.addRow("Printer profile:", self.profile_combo)

        self.prime_combo = QComboBox()
        self.prime_combo.addItem("From profile", "profile")
        self.prime_combo.addItem("In the air (manual removal)", "air")
        self.prime_combo.addItem("On the bed", "bed")
        form.addRow("Nozzle priming:", self.prime_combo)

        self.shift_check = QCheckBox("Shift bed prime line per part")
        form.addRow(self.shift_check)
        self.initial_temp_check = QCheckBox("Resume with initial nozzle temperature")
        form.addRow(self.initial_temp_check)
        self.reheat_check = QCheckBox("Reheat bed for every part")
        form.addRow(self.reheat_check)
        self.iron_check = QCheckBox("Iron the previous part's last layer")
        form.addRow(self.iron_check)

        self.compression_spin = QDoubleSpinBox()
        self.compression_spin.setRange(0.0, 1.0)
        self.compression_spin.setDecimals(2)
        self.compression_spin.setSingleStep(0.05)
        form.addRow("Z compression (× layer height):", self.compression_spin)

        self.flow_spin = QSpinBox()
        self.flow_spin.setRange(50, 200)
        self.flow_spin.setValue(100)
        self.flow_spin.setSuffix(" %")
        form.addRow("Continuation flow rate:", self.flow_spin)

    def params(self) -> dict:
        return {
            "profile": self.profile_combo.currentData(),
            "parts": self.parts_spin.value(),
            "max_layers_per_part": self.max_layers_spin.value() or None,
            "start_layer": self.start_spin.value(),
            "prime_mode": self.prime_combo.currentData(),
            "shift_bed_prime": self.shift_check.isChecked(),
            "use_initial_nozzle_temp": self.initial_temp_check.isChecked(),
            "reheat_bed": self.reheat_check.isChecked(),
            "iron": self.iron_check.isChecked(),
            "z_compression": self.compression_spin.value(),
            "continuation_flow_rate": self.flow_spin.value(),
        }


# ---------------------------------------------------------------------------
# Page 3 – Confirm
# ---------------------------------------------------------------------------

class ConfirmPage(QWizardPage):
    """Wizard page: show summary and confirm generation."""

    def __init__(self, parent: Optional[QWizard] = None) -> None:
        super().__init__(parent)
        self.setTitle("Confirm")
        self.setSubTitle("Review the settings below. Click Finish to write the part files.")

        layout = QVBoxLayout(self)
        self.summary_label = QLabel()
        self.summary_label.setWordWrap(True)
        layout.addWidget(self.summary_label)

    def initializePage(self) -> None:  # type: ignore[override]
        wizard: SplitWizard = self.wizard()  # type: ignore[assignment]
        params = wizard.settings_page.params()
        lines: list[str] = []
        lines.append(f"<b>File:</b> {Path(wizard.gcode_path()).name}")
        lines.append(f"<b>Parts:</b> {params['parts']}")
        if params["max_layers_per_part"]:
            lines.append(f"<b>Max layers per part:</b> {params['max_layers_per_part']}")
        if params["start_layer"]:
            lines.append(f"<b>Start layer:</b> {params['start_layer']}")
        lines.append(f"<b>Priming:</b> {params['prime_mode']}")
        if params["iron"]:
            lines.append("<b>Ironing:</b> on")
        lines.append(f"<b>Profile:</b> {params['profile']}")
        self.summary_label.setText("<br>".join(lines))


# ---------------------------------------------------------------------------
# Wizard
# ---------------------------------------------------------------------------

class SplitWizard(QWizard):
    """Step-by-step wizard for splitting a print into parts."""

    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self.setWindowTitle("gcodesplit Wizard")
        self.setMinimumSize(480, 420)

        self.file_page = FilePickerPage()
        self.settings_page = SplitSettingsPage()
        self.confirm_page = ConfirmPage()

        self.addPage(self.file_page)
        self.addPage(self.settings_page)
        self.addPage(self.confirm_page)

        self.controller = GCodeSplitController()

    def gcode_path(self) -> str:
        return self.file_page.file_path()

    def accept(self) -> None:  # type: ignore[override]
        """Finish: ask for an output folder and write the part files."""
        src = Path(self.gcode_path())
        out_dir = QFileDialog.getExistingDirectory(
            self,
            "Output Folder for Part Files",
            str(src.parent),
        )
        if not out_dir:
            return  # cancelled, stay in wizard

        try:
            result = self.controller.process(
                gcode_path=str(src),
                output_dir=out_dir,
                **self.settings_page.params(),
            )
        except Exception as exc:
            QMessageBox.critical(self, "Error", str(exc))
            return

        text = "\n".join(str(p) for p in result.output_paths)
        if result.warnings:
            text += "\n\nWarnings:\n" + "\n".join(result.warnings)
        QMessageBox.information(
            self,
            "Success",
            f"{result.total_parts} part files written:\n{text}",
        )
        super().accept()
