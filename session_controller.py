"""State-machine based recording/transcription orchestration."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from config import Settings
from errors import (
    ERROR_MESSAGES,
    NO_SPEECH,
    PROCESS_ERROR,
    AppError,
    CaptureError,
    TranscriptionError,
)
from interfaces import BatchTranscriber, LiveTranscriber
from live_recognizer import build_live_transcriber
from models import AudioSession, RecordingSource, SessionState
from recognizer import build_batch_transcriber
from recorder import AudioCapturePipeline

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
TextCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
BatchFactory = Callable[[Settings], BatchTranscriber]
LiveFactory = Callable[..., LiveTranscriber]


class SessionController:
    """Idle -> Recording -> Finalizing -> Completed -> Idle.

    Live sessions stream interim text through ``on_partial`` while recording;
    batch sessions hand the encoded buffer to a transcriber on stop.  The
    completed text is staged through ``on_text`` and, with auto-submit
    enabled, also passed to ``on_submit``.
    """

    def __init__(
        self,
        pipeline: AudioCapturePipeline,
        settings_provider: Callable[[], Settings],
        batch_factory: BatchFactory = build_batch_transcriber,
        live_factory: LiveFactory = build_live_transcriber,
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[TextCallback] = None,
        on_text: Optional[TextCallback] = None,
        on_submit: Optional[TextCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._pipeline = pipeline
        self._settings_provider = settings_provider
        self._batch_factory = batch_factory
        self._live_factory = live_factory
        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_text = on_text
        self._on_submit = on_submit
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session_id = 0
        self._settings = Settings()
        self._live_mode = False
        self._live: Optional[LiveTranscriber] = None
        self._transcriber: Optional[BatchTranscriber] = None

    @property
    def state(self) -> SessionState:
        return self._state

    def start_session(self, source: RecordingSource) -> Optional[AudioSession]:
        """Start capturing; ``None`` if a session is already in flight.

        Capture failures are reported through ``on_error`` and re-raised so
        the caller can reset its own state.
        """
        with self._lock:
            if self._state != SessionState.IDLE:
                return None
            settings = self._settings_provider()
            self._settings = settings
            self._session_id += 1
            self._live_mode = settings.uses_live_transcription
            self._live = None
            self._transcriber = None

            if self._live_mode:
                live = self._live_factory(
                    settings, on_update=self._handle_live_update, on_error=self._handle_live_error
                )
                try:
                    live.start()
                    self._live = live
                except AppError as exc:
                    self._emit_error(exc.code, exc.message)

            try:
                session = self._pipeline.start(source, live_sink=self._live)
            except Exception as exc:
                self._safe_close_live()
                self._fail(getattr(exc, "code", PROCESS_ERROR), str(exc))
                raise
            self._transition(SessionState.RECORDING)
            return session

    def stop_session(self) -> None:
        """Stop capturing and block until the turn's text is resolved."""
        with self._lock:
            if self._state != SessionState.RECORDING:
                return
            self._transition(SessionState.FINALIZING)
            session_id = self._session_id
            settings = self._settings
            try:
                wav = self._pipeline.stop()
            except CaptureError as exc:
                self._safe_close_live()
                self._fail(exc.code, exc.message)
                return

            if self._live_mode:
                live, self._live = self._live, None
                transcriber = None
            else:
                live = None
                transcriber = self._batch_factory(settings)
                self._transcriber = transcriber

        if transcriber is None:
            text = ""
            if live is not None:
                live.close()
                text = live.text
            self._complete(session_id, text)
            return

        try:
            result = transcriber.transcribe(wav)
        except Exception as exc:
            logger.error("Transcription failed: %s", exc)
            with self._lock:
                if session_id == self._session_id and self._state == SessionState.FINALIZING:
                    self._transcriber = None
                    self._fail(getattr(exc, "code", PROCESS_ERROR), str(exc))
            return
        if result is None:
            return
        self._complete(session_id, result.text)

    def cancel_session(self, reason: str) -> None:
        with self._lock:
            if self._state == SessionState.IDLE:
                return
            self._session_id += 1
            self._emit_error(PROCESS_ERROR, reason)
            if self._pipeline.is_active:
                try:
                    self._pipeline.stop()
                except CaptureError:
                    pass
            self._safe_close_live()
            transcriber, self._transcriber = self._transcriber, None
            if transcriber is not None:
                transcriber.cancel()
            self._transition(SessionState.IDLE)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _complete(self, session_id: int, text: str) -> None:
        with self._lock:
            if session_id != self._session_id or self._state != SessionState.FINALIZING:
                return
            self._transcriber = None
            final_text = text.strip()
            if not final_text:
                self._emit_error(NO_SPEECH, ERROR_MESSAGES[NO_SPEECH])
                self._transition(SessionState.IDLE)
                return
            self._transition(SessionState.COMPLETED)
            if self._on_text:
                self._on_text(final_text)
            auto_submit = self._settings.auto_submit
            self._transition(SessionState.IDLE)

        if auto_submit and self._on_submit:
            self._on_submit(final_text)

    def _handle_live_update(self, text: str) -> None:
        if self._on_partial:
            self._on_partial(text)

    def _handle_live_error(self, error: TranscriptionError) -> None:
        self._emit_error(error.code, error.message)

    def _fail(self, code: str, message: str) -> None:
        self._transition(SessionState.ERROR)
        self._emit_error(code, message)
        self._transition(SessionState.IDLE)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _safe_close_live(self) -> None:
        live, self._live = self._live, None
        if live is None:
            return
        try:
            live.close()
        except Exception as exc:
            logger.warning("Closing live transcription failed: %s", exc)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
