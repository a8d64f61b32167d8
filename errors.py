"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

from enum import Enum

PERMISSION_DENIED = "PERMISSION_DENIED"
NO_SCREEN_SOURCE = "NO_SCREEN_SOURCE"
EMPTY_BUFFER = "EMPTY_BUFFER"
PROCESS_ERROR = "PROCESS_ERROR"
TRANSCRIPTION_ERROR = "TRANSCRIPTION_ERROR"
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
PARSE_ERROR = "PARSE_ERROR"
NO_SPEECH = "NO_SPEECH"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone permission was denied.",
    NO_SCREEN_SOURCE: "No screen source available for system audio.",
    EMPTY_BUFFER: "No audio recorded.",
    PROCESS_ERROR: "Transcription process failed.",
    TRANSCRIPTION_ERROR: "Live transcription failed.",
    CONFIGURATION_ERROR: "Configuration is incomplete.",
    NETWORK_ERROR: "Network failed, please retry.",
    PARSE_ERROR: "Response format is invalid.",
    NO_SPEECH: "No speech detected.",
}


class CaptureFailure(str, Enum):
    PERMISSION_DENIED = PERMISSION_DENIED
    NO_SCREEN_SOURCE = NO_SCREEN_SOURCE
    EMPTY_BUFFER = EMPTY_BUFFER


class AppError(RuntimeError):
    """Base class for failures that end up as a single UI message."""

    code = PROCESS_ERROR

    def __init__(self, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))

    @property
    def message(self) -> str:
        return str(self)


class CaptureError(AppError):
    def __init__(self, kind: CaptureFailure, message: str = "") -> None:
        self.kind = kind
        self.code = kind.value
        super().__init__(message)


class ProcessError(AppError):
    code = PROCESS_ERROR

    def __init__(
        self,
        message: str = "",
        exit_code: int | None = None,
        path: str | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.path = path
        super().__init__(message)


class TranscriptionError(AppError):
    code = TRANSCRIPTION_ERROR


class ConfigurationError(AppError):
    code = CONFIGURATION_ERROR


class NetworkError(AppError):
    code = NETWORK_ERROR


class ParseError(AppError):
    """Malformed streaming frame. Callers log it and keep reading."""

    code = PARSE_ERROR
