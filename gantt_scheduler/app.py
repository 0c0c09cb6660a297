"""Main PyQt application entry point."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from PyQt6.QtGui import QAction, QCloseEvent, QKeySequence
from PyQt6.QtWidgets import QApplication, QFileDialog, QMainWindow, QMessageBox

from .controller import DropResult
from .models import SCHEDULES
from .seed import default_seed
from .storage import SettingsStorage
from .store import LoadOutcome, TaskStore
from .view import ScheduleView

LOGGER = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    """Primary window hosting the schedule grid for the first schedule."""

    def __init__(self, store: TaskStore) -> None:
        super().__init__()
        self.setWindowTitle("Factory Schedule")
        self.store = store
        self.view: Optional[ScheduleView] = None
        self._build_menu()
        self._show_first_schedule()
        self.resize(1200, 480)

    def _build_menu(self) -> None:
        """Create the File menu along with shortcuts."""
        file_menu = self.menuBar().addMenu("File")

        save_action = QAction("Save now", self)
        save_action.setShortcut(QKeySequence.StandardKey.Save)
        save_action.triggered.connect(self.action_save)
        file_menu.addAction(save_action)

        export_action = QAction("Export...", self)
        export_action.triggered.connect(self.action_export)
        file_menu.addAction(export_action)

        import_action = QAction("Import...", self)
        import_action.triggered.connect(self.action_import)
        file_menu.addAction(import_action)

        reset_action = QAction("Reset sample data", self)
        reset_action.triggered.connect(self.action_reset)
        file_menu.addAction(reset_action)

        file_menu.addSeparator()
        quit_action = QAction("Quit", self)
        quit_action.setShortcut(QKeySequence.StandardKey.Quit)
        quit_action.triggered.connect(self.close)
        file_menu.addAction(quit_action)

    def _show_first_schedule(self) -> None:
        """(Re)build the grid for the first schedule in the store."""
        if self.view is not None:
            self.view.dispose()
            self.view.deleteLater()
            self.view = None
        schedules = self.store.get_all(SCHEDULES)
        if not schedules:
            self.statusBar().showMessage("No schedule to display")
            return
        self.view = ScheduleView(self.store, schedules[0].id)
        self.view.drop_finished.connect(self._handle_drop)
        self.setCentralWidget(self.view)

    def _handle_drop(self, result: DropResult) -> None:
        if result.error is not None:
            self.statusBar().showMessage(result.error.message, 3000)
        elif result.committed:
            self.statusBar().showMessage("Task moved", 2000)

    # Menu actions ------------------------------------------------------
    def action_save(self) -> None:
        if self.store.persist():
            self.statusBar().showMessage("Saved", 2000)
        else:
            self.statusBar().showMessage("Storage unavailable; changes kept in memory", 3000)

    def action_export(self) -> None:
        path, _ = QFileDialog.getSaveFileName(self, "Export schedule data", filter="JSON Files (*.json)")
        if not path:
            return
        Path(path).write_text(self.store.export_json(), encoding="utf-8")
        self.statusBar().showMessage(f"Exported to {path}", 3000)

    def action_import(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Import schedule data", filter="JSON Files (*.json)")
        if not path:
            return
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:  # pragma: no cover - interactive guard
            QMessageBox.critical(self, "Import failed", str(exc))
            return
        if not self.store.import_json(text):
            QMessageBox.critical(self, "Import failed", "The file is not a valid schedule export.")
            return
        self._show_first_schedule()
        self.statusBar().showMessage(f"Imported {path}", 3000)

    def action_reset(self) -> None:
        self.store.reset()
        self._show_first_schedule()
        self.statusBar().showMessage("Sample data restored", 3000)

    def closeEvent(self, event: QCloseEvent) -> None:  # pragma: no cover - requires UI
        """Ask for confirmation, then release the grid and flush pending writes."""
        if QMessageBox.question(self, "Quit", "Close Factory Schedule?") != QMessageBox.StandardButton.Yes:
            event.ignore()
            return
        if self.view is not None:
            self.view.dispose()
        self.store.close()
        event.accept()


def run() -> None:
    """Entry point used by the ``gantt-scheduler`` launcher."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = QApplication(sys.argv)
    store = TaskStore(SettingsStorage(), seed=default_seed)
    outcome = store.load()
    if outcome is LoadOutcome.MEMORY_ONLY:
        LOGGER.warning("Running without durable storage for this session")
    window = MainWindow(store)
    window.show()
    app.exec()


if __name__ == "__main__":
    run()
