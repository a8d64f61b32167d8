from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from hotkey import DEFAULT_SHORTCUTS, GlobalShortcutAdapter


def test_shortcut_bindings_map_combos_to_handlers() -> None:
    adapter = GlobalShortcutAdapter()
    toggle = MagicMock()
    solve = MagicMock()

    bound = adapter.bindings({"toggle_mic": toggle, "solve": solve, "unknown": MagicMock()})

    assert bound == {"<alt>+<shift>+a": toggle, "<alt>+<shift>+s": solve}
    assert set(DEFAULT_SHORTCUTS) == {"toggle_mic", "reset", "solve", "toggle_visibility", "quit"}


@patch("hotkey.keyboard")
def test_shortcut_adapter_starts_and_stops_listener(mock_keyboard: MagicMock) -> None:
    listener = mock_keyboard.GlobalHotKeys.return_value
    adapter = GlobalShortcutAdapter({"quit": "<alt>+<shift>+e"})
    handler = MagicMock()

    adapter.start({"quit": handler})
    mock_keyboard.GlobalHotKeys.assert_called_once_with({"<alt>+<shift>+e": handler})
    listener.start.assert_called_once()

    adapter.stop()
    listener.stop.assert_called_once()


@patch("hotkey.keyboard")
def test_restart_replaces_previous_listener(mock_keyboard: MagicMock) -> None:
    first, second = MagicMock(), MagicMock()
    mock_keyboard.GlobalHotKeys.side_effect = [first, second]
    adapter = GlobalShortcutAdapter()

    adapter.start({"reset": MagicMock()})
    adapter.start({"reset": MagicMock()})

    first.stop.assert_called_once()
    second.start.assert_called_once()


@patch("hotkey.keyboard", None)
def test_start_without_pynput_raises() -> None:
    with pytest.raises(RuntimeError, match="pynput"):
        GlobalShortcutAdapter().start({"quit": MagicMock()})


def test_stop_without_start_is_noop() -> None:
    GlobalShortcutAdapter().stop()
