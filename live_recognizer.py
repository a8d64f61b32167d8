"""Live transcription over Deepgram's streaming websocket."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Optional, Union

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect as ws_connect

from config import Settings
from errors import ConfigurationError, ParseError, TranscriptionError
from models import TranscriptionResult

logger = logging.getLogger(__name__)

DEEPGRAM_LIVE_URL = (
    "wss://api.deepgram.com/v1/listen?model=nova-3&smart_format=true"
    "&encoding=linear16&sample_rate=16000&interim_results=true"
)

UpdateCallback = Callable[[str], None]
LiveErrorCallback = Callable[[TranscriptionError], None]


class LiveTranscript:
    """Final segments are committed; the latest interim replaces the previous one."""

    def __init__(self) -> None:
        self.finalized = ""
        self.interim = ""

    @property
    def text(self) -> str:
        return " ".join(part for part in (self.finalized, self.interim) if part)

    def apply(self, result: TranscriptionResult) -> bool:
        if not result.text:
            return False
        if result.is_final:
            self.finalized = f"{self.finalized} {result.text}" if self.finalized else result.text
            self.interim = ""
        else:
            self.interim = result.text
        return True

    def reset(self) -> None:
        self.finalized = ""
        self.interim = ""


def parse_live_event(message: Union[str, bytes]) -> Optional[TranscriptionResult]:
    """Map one Deepgram event frame to a result; ``None`` for non-transcript frames."""
    try:
        data = json.loads(message)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Malformed live event: {exc}") from exc
    if not isinstance(data, dict):
        return None
    channel = data.get("channel")
    if not isinstance(channel, dict):
        return None
    alternatives = channel.get("alternatives") or []
    if not alternatives:
        return None
    best = alternatives[0]
    return TranscriptionResult(
        text=best.get("transcript") or "",
        is_final=bool(data.get("is_final")),
        confidence=best.get("confidence"),
    )


class DeepgramLiveSession:
    def __init__(
        self,
        api_key: str,
        url: str = DEEPGRAM_LIVE_URL,
        on_update: Optional[UpdateCallback] = None,
        on_error: Optional[LiveErrorCallback] = None,
        connect: Callable[..., Any] = ws_connect,
        close_timeout_s: float = 2.0,
    ) -> None:
        self._api_key = api_key
        self._url = url
        self._on_update = on_update
        self._on_error = on_error
        self._connect = connect
        self._close_timeout_s = close_timeout_s
        self._lock = threading.Lock()
        self._transcript = LiveTranscript()
        self._ws: Any = None
        self._thread: Optional[threading.Thread] = None
        self._closing = threading.Event()

    @property
    def text(self) -> str:
        with self._lock:
            return self._transcript.text

    def start(self) -> None:
        if not self._api_key:
            raise ConfigurationError("Missing Deepgram API Key")
        if self._thread and self._thread.is_alive():
            return
        with self._lock:
            self._transcript.reset()
        self._closing.clear()
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    def send_audio(self, pcm16_bytes: bytes) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            ws.send(pcm16_bytes)
        except ConnectionClosed:
            logger.debug("Deepgram socket closed; dropping audio block")

    def close(self) -> None:
        """Send CloseStream, close the socket and wait for the receiver to drain."""
        self._closing.set()
        with self._lock:
            ws = self._ws
        if ws is not None:
            try:
                ws.send(json.dumps({"type": "CloseStream"}))
            except ConnectionClosed:
                pass
            ws.close()
        thread = self._thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=self._close_timeout_s)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        try:
            ws = self._connect(self._url, subprotocols=["token", self._api_key])
        except (WebSocketException, OSError) as exc:
            self._report(TranscriptionError(f"Deepgram connection failed: {exc}"))
            return

        with self._lock:
            if self._closing.is_set():
                ws.close()
                return
            self._ws = ws
        logger.info("Deepgram WS connected")

        try:
            for message in ws:
                self._handle_message(message)
        except ConnectionClosed as exc:
            if not self._closing.is_set():
                self._report(TranscriptionError(f"Deepgram connection lost: {exc}"))
        finally:
            with self._lock:
                self._ws = None
            logger.info("Deepgram WS closed")

    def _handle_message(self, message: Union[str, bytes]) -> None:
        try:
            result = parse_live_event(message)
        except ParseError as exc:
            logger.warning("Deepgram parse error: %s", exc)
            return
        if result is None:
            return
        with self._lock:
            changed = self._transcript.apply(result)
            text = self._transcript.text
        if changed and self._on_update:
            self._on_update(text)

    def _report(self, error: TranscriptionError) -> None:
        logger.error("%s", error)
        if self._on_error:
            self._on_error(error)


def build_live_transcriber(
    settings: Settings,
    on_update: Optional[UpdateCallback] = None,
    on_error: Optional[LiveErrorCallback] = None,
) -> DeepgramLiveSession:
    return DeepgramLiveSession(
        api_key=settings.resolved_deepgram_key(),
        on_update=on_update,
        on_error=on_error,
    )
