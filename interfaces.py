"""Protocol interfaces used by the controllers."""

from __future__ import annotations

from typing import Callable, Iterator, Optional, Protocol

import numpy as np

from config import Settings
from models import TranscriptionResult

BlockCallback = Callable[[np.ndarray], None]


class AudioSource(Protocol):
    name: str

    def start(self, on_block: BlockCallback) -> None: ...

    def stop(self) -> None: ...


class PcmSink(Protocol):
    def send_audio(self, pcm16_bytes: bytes) -> None: ...


class BatchTranscriber(Protocol):
    def transcribe(self, wav_bytes: bytes) -> Optional[TranscriptionResult]: ...

    def cancel(self) -> None: ...


class LiveTranscriber(PcmSink, Protocol):
    @property
    def text(self) -> str: ...

    def start(self) -> None: ...

    def close(self) -> None: ...


class ChatBackend(Protocol):
    def stream_chat(self, messages: list[dict]) -> Iterator[str]: ...


class ConfigStore(Protocol):
    def load(self) -> Settings: ...

    def save(self, settings: Settings) -> None: ...


class TextProvider(Protocol):
    def capture_text(self) -> str: ...
