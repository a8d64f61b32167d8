"""Click / shortcut / push-to-talk gesture state machine."""

from __future__ import annotations

import functools
import logging
import threading
from typing import Any, Callable, Optional

from models import GestureState, RecordingSource

logger = logging.getLogger(__name__)

StartCallback = Callable[[RecordingSource], Any]
TimerFactory = Callable[[float, Callable[[], None]], Any]
GestureCallback = Callable[[GestureState, Optional[RecordingSource]], None]


class RecordingGestureController:
    """Turns raw click/key events into start/stop recording commands.

    A push-to-talk key press arms a threshold timer.  Releasing the key
    before it fires counts as a tap and inserts ``tap_text`` at the caret;
    holding past it starts a push-to-talk recording that stops on release.
    When ``threshold_provider`` is given the threshold is re-read on every
    key press.
    While a click or shortcut recording is running the key is ignored.
    """

    def __init__(
        self,
        start_recording: StartCallback,
        stop_recording: Callable[[], None],
        insert_text: Callable[[str], None],
        threshold_s: float = 0.2,
        timer_factory: TimerFactory = threading.Timer,
        tap_text: str = " ",
        on_state_change: Optional[GestureCallback] = None,
        threshold_provider: Optional[Callable[[], float]] = None,
    ) -> None:
        self._start_recording = start_recording
        self._stop_recording = stop_recording
        self._insert_text = insert_text
        self._threshold_s = threshold_s
        self._timer_factory = timer_factory
        self._tap_text = tap_text
        self._on_state_change = on_state_change
        self._threshold_provider = threshold_provider

        self._lock = threading.RLock()
        self._state = GestureState.IDLE
        self._source: Optional[RecordingSource] = None
        self._timer: Any = None
        self._arm_token = 0

    @property
    def state(self) -> GestureState:
        return self._state

    @property
    def source(self) -> Optional[RecordingSource]:
        return self._source

    def on_click(self) -> None:
        self._toggle(RecordingSource.CLICK)

    def on_shortcut(self) -> None:
        self._toggle(RecordingSource.SHORTCUT)

    def on_key_down(self) -> None:
        with self._lock:
            if self._state != GestureState.IDLE:
                return
            if self._threshold_provider is not None:
                self._threshold_s = self._threshold_provider()
            self._arm_token += 1
            self._timer = self._timer_factory(
                self._threshold_s, functools.partial(self._on_threshold, self._arm_token)
            )
            self._transition(GestureState.ARMED, None)
            self._timer.start()

    def on_key_up(self) -> None:
        with self._lock:
            if self._state == GestureState.ARMED:
                self._cancel_timer()
                self._transition(GestureState.IDLE, None)
            elif self._state == GestureState.RECORDING and self._source == RecordingSource.PUSH_TO_TALK:
                self._stop_locked()
                return
            else:
                return
        self._insert_text(self._tap_text)

    def set_threshold(self, threshold_s: float) -> None:
        with self._lock:
            self._threshold_s = threshold_s

    def reset(self) -> None:
        """Back to Idle without issuing a stop (used after capture failures)."""
        with self._lock:
            self._cancel_timer()
            self._transition(GestureState.IDLE, None)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _toggle(self, source: RecordingSource) -> None:
        with self._lock:
            if self._state == GestureState.RECORDING:
                self._stop_locked()
                return
            if self._state == GestureState.ARMED:
                self._cancel_timer()
            self._start_locked(source)

    def _on_threshold(self, token: int) -> None:
        with self._lock:
            if self._state != GestureState.ARMED or token != self._arm_token:
                return
            self._timer = None
            self._start_locked(RecordingSource.PUSH_TO_TALK)

    def _start_locked(self, source: RecordingSource) -> None:
        self._transition(GestureState.RECORDING, source)
        try:
            started = self._start_recording(source)
        except Exception as exc:
            logger.warning("Recording start failed (%s): %s", source.value, exc)
            self._transition(GestureState.IDLE, None)
            return
        if not started:
            logger.info("Recording start refused (%s)", source.value)
            self._transition(GestureState.IDLE, None)

    def _stop_locked(self) -> None:
        self._transition(GestureState.IDLE, None)
        try:
            self._stop_recording()
        except Exception as exc:
            logger.warning("Recording stop failed: %s", exc)

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _transition(self, to_state: GestureState, source: Optional[RecordingSource]) -> None:
        if self._state == to_state and self._source == source:
            return
        self._state = to_state
        self._source = source
        if self._on_state_change:
            self._on_state_change(to_state, source)
