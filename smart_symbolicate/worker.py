"""Qt background worker running the symbolication pipeline off the UI thread."""
import traceback

from PySide6.QtCore import QThread, Signal

from .core import BuildConfig, ExtractionMode, SymbolicateError


class SymbolicateWorker(QThread):
    """Background worker for one symbolication run."""
    finished_report = Signal(object)  # Emits SymbolicationReport (None on failure)
    progress = Signal(str)  # Emits status messages
    progress_detail = Signal(str, float, str)  # stage, progress (0-1), message
    error = Signal(str)

    def __init__(self, symbolicator, text: str, config: BuildConfig,
                 mode: ExtractionMode = ExtractionMode.AUTO):
        super().__init__()
        self.symbolicator = symbolicator
        self.text = text
        self.config = config
        self.mode = mode
        self._cancel_requested = False
        self.symbolicator.set_progress_callback(self._on_progress)
        # Checked between addresses, never while addr2line is running
        self.symbolicator.set_abort_check(lambda: self._cancel_requested)

    def request_cancel(self) -> None:
        """Request that the run stop before the next address."""
        self._cancel_requested = True

    def _on_progress(self, stage: str, progress: float, message: str) -> None:
        self.progress_detail.emit(stage, progress, message)
        self.progress.emit(message)

    def run(self):
        try:
            report = self.symbolicator.run(self.text, self.config, self.mode)
        except SymbolicateError as e:
            self.error.emit(str(e))
            self.finished_report.emit(None)
            return
        except Exception as e:
            self.error.emit(f"{e}\n\nTraceback:\n{traceback.format_exc()}")
            self.finished_report.emit(None)
            return

        if report.cancelled:
            self.progress.emit("Symbolication cancelled.")
        else:
            self.progress.emit("Symbolication complete!")
        self.finished_report.emit(report)
