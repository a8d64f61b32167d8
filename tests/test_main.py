from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

pytest.importorskip("PySide6.QtWidgets")

import main  # noqa: E402
from config import Settings  # noqa: E402
from models import SessionState  # noqa: E402


def _app() -> SimpleNamespace:
    return SimpleNamespace(overlay=MagicMock(), tray=MagicMock())


def test_partial_text_fills_input_field() -> None:
    app = _app()

    main.App._on_partial_ui(app, "live")
    main.App._on_partial_ui(app, "live words")

    assert [c.args for c in app.overlay.set_input_text.call_args_list] == [("live",), ("live words",)]
    app.overlay.set_placeholder.assert_not_called()


@patch("main._create_icon")
def test_recording_start_clears_previous_input(_icon: MagicMock) -> None:
    app = _app()

    main.App._on_state_change_ui(app, SessionState.IDLE.value, SessionState.RECORDING.value)

    app.overlay.clear_input.assert_called_once()
    app.overlay.set_listening.assert_called_once_with(True)


def test_threshold_read_from_current_settings() -> None:
    store = MagicMock()
    store.load.return_value = Settings(push_to_talk_threshold_ms=450)
    app = SimpleNamespace(config_store=store)

    assert main.App._threshold_s(app) == 0.45
    store.load.return_value = Settings(push_to_talk_threshold_ms=300)
    assert main.App._threshold_s(app) == 0.3
