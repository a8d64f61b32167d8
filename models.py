"""Core data models for the app."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class RecordingSource(str, Enum):
    CLICK = "click"
    SHORTCUT = "shortcut"
    PUSH_TO_TALK = "pushToTalk"


class GestureState(str, Enum):
    IDLE = "IDLE"
    ARMED = "ARMED"
    RECORDING = "RECORDING"


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    FINALIZING = "FINALIZING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class AnswerEventKind(str, Enum):
    START = "start"
    CHUNK = "chunk"
    DONE = "done"
    ERROR = "error"


@dataclass
class AudioSession:
    source: RecordingSource
    sample_rate: int = 16000
    microphone_track: str = ""
    system_track: str = ""
    chunks: list = field(default_factory=list)
    is_active: bool = True
    started_at: float = field(default_factory=time.time)

    @property
    def sample_count(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)


@dataclass
class TranscriptionResult:
    text: str
    is_final: bool = True
    confidence: Optional[Any] = None


@dataclass
class ChatMessage:
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass
class AnswerEvent:
    kind: AnswerEventKind
    text: str = ""


@dataclass
class StreamingAnswer:
    accumulated_text: str = ""
    is_done: bool = False

    def append(self, chunk: str) -> None:
        self.accumulated_text += chunk
