"""Global shortcut adapter based on pynput."""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_SHORTCUTS = {
    "toggle_mic": "<alt>+<shift>+a",
    "reset": "<alt>+<shift>+c",
    "solve": "<alt>+<shift>+s",
    "toggle_visibility": "<alt>+<shift>+v",
    "quit": "<alt>+<shift>+e",
}


class GlobalShortcutAdapter:
    """Maps action names to pynput hotkey combos.

    Handlers run on the listener thread; callers must marshal to the UI
    thread themselves.
    """

    def __init__(self, shortcuts: Optional[Mapping[str, str]] = None) -> None:
        self._shortcuts = dict(shortcuts or DEFAULT_SHORTCUTS)
        self._listener: Optional[object] = None

    @property
    def shortcuts(self) -> dict:
        return dict(self._shortcuts)

    def bindings(self, handlers: Mapping[str, Callable[[], None]]) -> dict:
        """Combo -> handler for every action that has both."""
        bound = {}
        for action, handler in handlers.items():
            combo = self._shortcuts.get(action)
            if combo is None:
                logger.warning("No shortcut configured for action %s", action)
                continue
            bound[combo] = handler
        return bound

    def start(self, handlers: Mapping[str, Callable[[], None]]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self.stop()
        self._listener = keyboard.GlobalHotKeys(self.bindings(handlers))
        self._listener.start()
        logger.info("Global shortcuts registered: %s", ", ".join(self._shortcuts.values()))

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
