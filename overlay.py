"""Floating overlay: question input, mic/submit/reset buttons and answer panel."""

from __future__ import annotations

from typing import Callable, Optional

try:
    from PySide6.QtCore import QEvent, QObject, Qt
    from PySide6.QtWidgets import (
        QApplication,
        QHBoxLayout,
        QLabel,
        QLineEdit,
        QPushButton,
        QTextBrowser,
        QVBoxLayout,
        QWidget,
    )
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QEvent = None  # type: ignore
    QObject = object  # type: ignore
    QApplication = None  # type: ignore
    QHBoxLayout = object  # type: ignore
    QLabel = object  # type: ignore
    QLineEdit = object  # type: ignore
    QPushButton = object  # type: ignore
    QTextBrowser = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

PANEL_STYLE = (
    "QWidget#panel { background: rgba(0,0,0,200); border-radius: 12px; }"
    "QLineEdit { color: white; font-size: 16px; padding: 8px;"
    " background: rgba(255,255,255,25); border: none; border-radius: 8px; }"
    "QPushButton { color: white; padding: 8px 12px; border: none;"
    " background: rgba(255,255,255,40); border-radius: 8px; }"
    "QTextBrowser { color: white; font-size: 14px; background: transparent; border: none; }"
    "QLabel { color: #FF6B6B; font-size: 13px; }"
)
MIC_IDLE_STYLE = "background: rgba(255,255,255,40);"
MIC_LISTENING_STYLE = "background: #FF4444;"

DEFAULT_PLACEHOLDER = "Ask a question, or hold Space to talk..."


class _PushToTalkFilter(QObject):
    """Forwards Space down/up on the input to the gesture controller.

    Auto-repeat events are swallowed so a held key yields one down and one
    up.  The Space itself is never typed; a tap re-inserts it via
    ``insert_at_caret``.
    """

    def __init__(self, on_down: Callable[[], None], on_up: Callable[[], None]) -> None:
        super().__init__()
        self._on_down = on_down
        self._on_up = on_up

    def eventFilter(self, watched, event) -> bool:  # noqa: N802 (Qt API)
        kind = event.type()
        if kind not in (QEvent.KeyPress, QEvent.KeyRelease):
            return False
        if event.key() != Qt.Key_Space or event.modifiers() != Qt.NoModifier:
            return False
        if event.isAutoRepeat():
            return True
        if kind == QEvent.KeyPress:
            self._on_down()
        else:
            self._on_up()
        return True


class OverlayWindow(QWidget):
    def __init__(
        self,
        on_mic: Optional[Callable[[], None]] = None,
        on_submit: Optional[Callable[[str], None]] = None,
        on_reset: Optional[Callable[[], None]] = None,
        on_key_down: Optional[Callable[[], None]] = None,
        on_key_up: Optional[Callable[[], None]] = None,
    ) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(640)

        self._on_submit = on_submit
        self._answer_text = ""

        panel = QWidget()
        panel.setObjectName("panel")
        panel.setStyleSheet(PANEL_STYLE)

        self._input = QLineEdit()
        self._input.setPlaceholderText(DEFAULT_PLACEHOLDER)
        self._input.returnPressed.connect(self._submit)

        self._mic_button = self._make_button("Mic", on_mic)
        self._submit_button = self._make_button("Ask", self._submit)
        self._reset_button = self._make_button("Reset", on_reset)

        row = QHBoxLayout()
        row.addWidget(self._input, 1)
        row.addWidget(self._mic_button)
        row.addWidget(self._submit_button)
        row.addWidget(self._reset_button)

        self._notice = QLabel("")
        self._notice.setWordWrap(True)
        self._notice.hide()

        self._response = QTextBrowser()
        self._response.setOpenExternalLinks(True)
        self._response.setMinimumHeight(240)
        self._response.hide()

        inner = QVBoxLayout()
        inner.setContentsMargins(12, 12, 12, 12)
        inner.addLayout(row)
        inner.addWidget(self._notice)
        inner.addWidget(self._response)
        panel.setLayout(inner)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(panel)
        self.setLayout(layout)

        self._ptt_filter: Optional[_PushToTalkFilter] = None
        if on_key_down is not None and on_key_up is not None:
            self._ptt_filter = _PushToTalkFilter(on_key_down, on_key_up)
            self._input.installEventFilter(self._ptt_filter)

    @property
    def answer_text(self) -> str:
        return self._answer_text

    def _make_button(self, label: str, handler: Optional[Callable[[], None]]) -> QPushButton:
        button = QPushButton(label)
        # Buttons must not steal focus from the input, or the caret is lost.
        button.setFocusPolicy(Qt.NoFocus)
        if handler is not None:
            button.clicked.connect(lambda _checked=False: handler())
        return button

    def _center_top(self) -> None:
        """Position the window at the top center of the primary screen."""
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + 40
        self.move(x, y)

    def present(self) -> None:
        self._center_top()
        self.show()
        self.raise_()
        self.activateWindow()
        self._input.setFocus()

    def toggle_visibility(self) -> None:
        if self.isVisible():
            self.hide()
        else:
            self.present()

    # ------------------------------------------------------------------
    # Input line
    # ------------------------------------------------------------------

    def _submit(self) -> None:
        text = self._input.text().strip()
        if not text or self._on_submit is None:
            return
        self._input.clear()
        self._on_submit(text)

    def insert_at_caret(self, text: str) -> None:
        self._input.insert(text)

    def set_input_text(self, text: str) -> None:
        self._input.setText(text)
        self._input.setCursorPosition(len(text))

    def clear_input(self) -> None:
        self._input.clear()

    def set_placeholder(self, text: str) -> None:
        self._input.setPlaceholderText(text or DEFAULT_PLACEHOLDER)

    def set_listening(self, listening: bool) -> None:
        self._mic_button.setStyleSheet(MIC_LISTENING_STYLE if listening else MIC_IDLE_STYLE)
        self.set_placeholder("Listening..." if listening else "")

    def set_busy(self, busy: bool) -> None:
        self._submit_button.setEnabled(not busy)

    def show_notice(self, text: str) -> None:
        self._notice.setText(f"⚠️ {text}")
        self._notice.show()

    def clear_notice(self) -> None:
        self._notice.clear()
        self._notice.hide()

    # ------------------------------------------------------------------
    # Response panel
    # ------------------------------------------------------------------

    def begin_answer(self) -> None:
        self._answer_text = ""
        self._response.clear()
        self._response.show()
        self._center_top()

    def append_answer(self, chunk: str) -> None:
        self._answer_text += chunk
        self._render()

    def end_answer(self) -> None:
        self._render()

    def show_answer_error(self, text: str) -> None:
        if self._answer_text:
            self._answer_text += "\n\n"
        self._answer_text += text
        self._render()

    def hide_response(self) -> None:
        self._answer_text = ""
        self._response.clear()
        self._response.hide()
        self.adjustSize()

    def _render(self) -> None:
        self._response.setMarkdown(self._answer_text)
        bar = self._response.verticalScrollBar()
        bar.setValue(bar.maximum())
