"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Iterator

from clipboard import ClipboardTextProvider, copy_code_blocks
from config import JsonConfigStore
from conversation import ConversationOrchestrator
from gesture import RecordingGestureController
from hotkey import GlobalShortcutAdapter
from interfaces import ConfigStore, TextProvider
from models import AnswerEvent, AnswerEventKind, SessionState
from overlay import OverlayWindow
from recorder import AudioCapturePipeline, MicrophoneSource, SystemAudioSource
from session_controller import SessionController

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QMenu, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"
ICON_RECORDING = "#FF4444"
ICON_BUSY = "#4488FF"
ICON_ERROR = "#FF8800"


class UIBridge(QObject):
    partial_signal = Signal(str)
    text_signal = Signal(str)
    submit_signal = Signal(str)
    insert_signal = Signal(str)
    error_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state
    answer_signal = Signal(str, str)  # event kind, text
    shortcut_signal = Signal(str)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store: ConfigStore = JsonConfigStore()
        settings = self.config_store.load()

        self.ui = UIBridge()
        self.ui.partial_signal.connect(self._on_partial_ui)
        self.ui.text_signal.connect(self._on_text_ui)
        self.ui.submit_signal.connect(self.ask)
        self.ui.insert_signal.connect(self._on_insert_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.answer_signal.connect(self._on_answer_ui)
        self.ui.shortcut_signal.connect(self._on_shortcut_ui)

        self.pipeline = AudioCapturePipeline(
            microphone=MicrophoneSource(),
            system=SystemAudioSource(),
        )
        self.controller = SessionController(
            pipeline=self.pipeline,
            settings_provider=self.config_store.load,
            on_state_change=self._on_state_change,
            on_partial=self.ui.partial_signal.emit,
            on_text=self.ui.text_signal.emit,
            on_submit=self.ui.submit_signal.emit,
            on_error=self._on_error,
        )
        self.gesture = RecordingGestureController(
            start_recording=self.controller.start_session,
            stop_recording=self._stop_in_background,
            insert_text=self.ui.insert_signal.emit,
            threshold_s=settings.push_to_talk_threshold_ms / 1000.0,
            threshold_provider=self._threshold_s,
        )
        self.orchestrator = ConversationOrchestrator(settings_provider=self.config_store.load)
        self.text_provider: TextProvider = ClipboardTextProvider()
        self.shortcuts = GlobalShortcutAdapter()
        self._answering = False

        self.overlay = OverlayWindow(
            on_mic=self.gesture.on_click,
            on_submit=self.ask,
            on_reset=self.reset,
            on_key_down=self.gesture.on_key_down,
            on_key_up=self.gesture.on_key_up,
        )

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("Aaru - Ready")
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        show_action = QAction("Show / Hide", menu)
        show_action.triggered.connect(self.overlay.toggle_visibility)
        menu.addAction(show_action)

        solve_action = QAction("Solve Clipboard Text", menu)
        solve_action.triggered.connect(self.solve)
        menu.addAction(solve_action)

        copy_action = QAction("Copy Code From Answer", menu)
        copy_action.triggered.connect(self._copy_code)
        menu.addAction(copy_action)

        reset_action = QAction("Reset Conversation", menu)
        reset_action.triggered.connect(self.reset)
        menu.addAction(reset_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_error(self, code: str, message: str) -> None:
        logger.warning("%s: %s", code, message)
        self.ui.error_signal.emit(message)

    def _threshold_s(self) -> float:
        return self.config_store.load().push_to_talk_threshold_ms / 1000.0

    def _stop_in_background(self) -> None:
        # stop_session blocks on transcription; keep it off the Qt thread.
        threading.Thread(target=self.controller.stop_session, daemon=True).start()

    def _drain(self, events: Iterator[AnswerEvent]) -> None:
        try:
            for event in events:
                self.ui.answer_signal.emit(event.kind.value, event.text)
        except Exception as exc:
            logger.exception("Answer stream failed")
            self.ui.answer_signal.emit(AnswerEventKind.ERROR.value, f"**Error:** {exc}")

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_partial_ui(self, text: str) -> None:
        self.overlay.set_input_text(text)

    def _on_text_ui(self, text: str) -> None:
        self.overlay.set_input_text(text)

    def _on_insert_ui(self, text: str) -> None:
        self.overlay.insert_at_caret(text)

    def _on_error_ui(self, message: str) -> None:
        self.overlay.show_notice(message)
        self.tray.setIcon(_create_icon(ICON_ERROR))

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        if to_state == SessionState.RECORDING.value:
            self.tray.setIcon(_create_icon(ICON_RECORDING))
            self.tray.setToolTip("Aaru - Recording...")
            self.overlay.clear_input()
            self.overlay.set_listening(True)
        elif to_state == SessionState.FINALIZING.value:
            self.tray.setIcon(_create_icon(ICON_BUSY))
            self.tray.setToolTip("Aaru - Transcribing...")
            self.overlay.set_listening(False)
            self.overlay.set_placeholder("Transcribing...")
        elif to_state == SessionState.IDLE.value:
            if from_state != SessionState.ERROR.value:
                self.tray.setIcon(_create_icon(ICON_IDLE))
            self.tray.setToolTip("Aaru - Ready")
            self.overlay.set_listening(False)

    def _on_answer_ui(self, kind: str, text: str) -> None:
        if kind == AnswerEventKind.START.value:
            self.overlay.begin_answer()
        elif kind == AnswerEventKind.CHUNK.value:
            self.overlay.append_answer(text)
        elif kind == AnswerEventKind.DONE.value:
            self.overlay.end_answer()
            self._answering = False
            self.overlay.set_busy(False)
        elif kind == AnswerEventKind.ERROR.value:
            self.overlay.show_answer_error(text)
            self._answering = False
            self.overlay.set_busy(False)

    def _on_shortcut_ui(self, action: str) -> None:
        if action == "toggle_mic":
            self.overlay.present()
            self.gesture.on_shortcut()
        elif action == "reset":
            self.reset()
        elif action == "solve":
            self.solve()
        elif action == "toggle_visibility":
            self.overlay.toggle_visibility()
        elif action == "quit":
            self.quit()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def ask(self, question: str) -> None:
        question = question.strip()
        if not question or self._answering:
            return
        self._answering = True
        self.overlay.set_busy(True)
        self.overlay.clear_input()
        self.overlay.clear_notice()
        events = self.orchestrator.ask(question)
        threading.Thread(target=self._drain, args=(events,), daemon=True).start()

    def solve(self) -> None:
        if self._answering:
            return
        self._answering = True
        self.overlay.present()
        self.overlay.set_busy(True)
        events = self.orchestrator.solve_from_text(self.text_provider.capture_text())
        threading.Thread(target=self._drain, args=(events,), daemon=True).start()

    def reset(self) -> None:
        self.orchestrator.reset()
        self.overlay.hide_response()
        self.overlay.clear_input()
        self.overlay.clear_notice()

    def _copy_code(self) -> None:
        if copy_code_blocks(self.overlay.answer_text):
            self.tray.showMessage("Aaru", "Copied to clipboard.")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.overlay.present()
        handlers = {
            action: (lambda a=action: self.ui.shortcut_signal.emit(a))
            for action in self.shortcuts.shortcuts
        }
        try:
            self.shortcuts.start(handlers)
        except Exception as exc:
            logger.error("Global shortcuts disabled: %s", exc)
            self.overlay.show_notice(f"Shortcuts disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.shortcuts.stop()
        self.gesture.reset()
        self.controller.cancel_session("app quit")
        self.app.quit()


def main() -> int:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
