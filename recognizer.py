"""Batch transcription: local whisper.cpp subprocess and Deepgram file upload.

The local path writes the recorded WAV to a scratch file, runs the bundled
whisper binary over it and cleans the captured stdout.  Known hallucinations
and noise-only output are dropped so they never reach the AI backend.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import subprocess
import sys
import tempfile
import threading
from pathlib import Path
from typing import Optional

import httpx

from config import Settings
from errors import ConfigurationError, NetworkError, ParseError, ProcessError
from interfaces import BatchTranscriber
from models import TranscriptionResult

logger = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"

_INFO_LINES = (re.compile(r"system_info.*"), re.compile(r"main: .*"))
_ANNOTATIONS = (re.compile(r"\[.*?\]"), re.compile(r"\(.*?\)"))
_HALLUCINATIONS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (r"^Expected", r"^Silence", r"^Audio", r"^Music", r"^Song")
)
_PUNCTUATION_ONLY = re.compile(r"^[.?!, ]+$")

_NO_WINDOW = getattr(subprocess, "CREATE_NO_WINDOW", 0)


def clean_transcript(raw: str) -> str:
    """Strip engine logs and annotations; return "" for noise/hallucinations."""
    text = raw
    for pattern in _INFO_LINES:
        text = pattern.sub("", text)
    text = text.replace("\r", "").replace("\n", " ")
    for pattern in _ANNOTATIONS:
        text = pattern.sub("", text)
    text = text.strip()

    if (
        any(h.search(text) for h in _HALLUCINATIONS)
        or len(text) < 2
        or _PUNCTUATION_ONLY.match(text)
    ):
        if text:
            logger.info("Filtered hallucination/noise: %r", text)
        return ""
    return text


def _arch_folder() -> str:
    machine = platform.machine().lower()
    if machine in ("x86", "i386", "i686", "ia32"):
        return "ia32"
    return "x64"


class WhisperCppTranscriber:
    def __init__(
        self,
        resources_dir: Path,
        model: str = "ggml-base.en.bin",
        use_gpu: bool = False,
        arch: Optional[str] = None,
        scratch_dir: Optional[Path] = None,
    ) -> None:
        self._resources_dir = Path(resources_dir)
        self._model = model
        self._use_gpu = use_gpu
        self._arch = arch
        self._scratch_dir = scratch_dir
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._cancelled = False

    @property
    def binary_path(self) -> Path:
        variant = "cuda" if self._use_gpu else "cpu"
        exe = "main.exe" if sys.platform == "win32" else "main"
        arch = self._arch or _arch_folder()
        return (self._resources_dir / "whisper_bin" / arch / variant / exe).resolve()

    @property
    def model_path(self) -> Path:
        model = Path(self._model)
        if model.is_absolute():
            return model
        return (self._resources_dir / "whisper_models" / model).resolve()

    def transcribe(self, wav_bytes: bytes) -> Optional[TranscriptionResult]:
        """Run the binary over ``wav_bytes``; ``None`` if cancelled meanwhile."""
        binary = self.binary_path
        model = self.model_path
        if not binary.exists():
            raise ProcessError(f"Binary not found: {binary}", path=str(binary))
        if not model.exists():
            raise ProcessError(f"Model not found: {model}", path=str(model))

        with self._lock:
            self._cancelled = False

        fd, scratch = tempfile.mkstemp(
            prefix="aaru_input_",
            suffix=".wav",
            dir=str(self._scratch_dir) if self._scratch_dir else None,
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(wav_bytes)

            args = [str(binary), "-m", str(model), "-f", scratch, "--no-timestamps"]
            logger.info("Spawning %s with model %s", binary, model)
            with self._lock:
                if self._cancelled:
                    return None
                try:
                    process = subprocess.Popen(
                        args,
                        stdout=subprocess.PIPE,
                        stderr=subprocess.PIPE,
                        creationflags=_NO_WINDOW,
                    )
                except OSError as exc:
                    raise ProcessError(f"Failed to start {binary}: {exc}", path=str(binary)) from exc
                self._process = process

            stdout, stderr = process.communicate()
            exit_code = process.returncode
        finally:
            with self._lock:
                self._process = None
            try:
                os.unlink(scratch)
            except OSError:
                pass

        if self._cancelled:
            logger.info("Transcription cancelled; discarding output")
            return None
        if exit_code != 0:
            logger.error("Whisper stderr: %s", stderr.decode("utf-8", errors="replace")[-500:])
            raise ProcessError(f"Process exited with code {exit_code}", exit_code=exit_code)

        text = clean_transcript(stdout.decode("utf-8", errors="replace"))
        return TranscriptionResult(text=text, is_final=True)

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            process = self._process
        if process is not None and process.poll() is None:
            logger.info("Killing transcription process %s", process.pid)
            process.kill()


class DeepgramFileTranscriber:
    """Uploads the whole WAV to Deepgram's pre-recorded endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "nova-3",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._transport = transport
        self._cancelled = False

    def transcribe(self, wav_bytes: bytes) -> Optional[TranscriptionResult]:
        if not self._api_key:
            raise ConfigurationError("Deepgram API Key is missing.")
        self._cancelled = False
        try:
            with httpx.Client(transport=self._transport, timeout=None) as client:
                response = client.post(
                    DEEPGRAM_LISTEN_URL,
                    params={"model": self._model, "smart_format": "true"},
                    headers={
                        "Authorization": f"Token {self._api_key}",
                        "Content-Type": "audio/wav",
                    },
                    content=wav_bytes,
                )
        except httpx.HTTPError as exc:
            raise NetworkError(f"Deepgram request failed: {exc}") from exc

        logger.info("Deepgram responded %s", response.status_code)
        if self._cancelled:
            return None
        if not 200 <= response.status_code < 300:
            raise NetworkError(f"Deepgram Error: {response.status_code} {response.text}")
        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError("Failed to parse Deepgram response") from exc
        if not isinstance(data, dict):
            raise ParseError("Failed to parse Deepgram response")

        channels = (data.get("results") or {}).get("channels") or [{}]
        alternatives = channels[0].get("alternatives") or [{}]
        best = alternatives[0]
        return TranscriptionResult(
            text=best.get("transcript") or "",
            is_final=True,
            confidence=best.get("confidence"),
        )

    def cancel(self) -> None:
        self._cancelled = True


def build_batch_transcriber(settings: Settings) -> BatchTranscriber:
    if settings.transcription_provider == "deepgram":
        return DeepgramFileTranscriber(api_key=settings.resolved_deepgram_key())
    return WhisperCppTranscriber(
        resources_dir=settings.resolved_resources_dir(),
        model=settings.whisper_model,
        use_gpu=settings.use_gpu,
    )
