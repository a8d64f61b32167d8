"""Simple JSON-based settings store."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

APP_DIR = Path(__file__).resolve().parent


@dataclass
class Settings:
    transcription_provider: str = "local"
    whisper_model: str = "ggml-base.en.bin"
    use_gpu: bool = False
    deepgram_key: str = ""
    deepgram_live: bool = True
    auto_submit: bool = False
    ai_provider: str = "ollama"
    ollama_model: str = "llama3.2"
    ollama_url: str = "http://localhost:11434"
    deepseek_key: str = ""
    deepseek_model: str = "deepseek-chat"
    interview_type: str = "general"
    resume_text: str = ""
    push_to_talk_threshold_ms: int = 200
    resources_dir: str = ""

    @property
    def uses_live_transcription(self) -> bool:
        return self.transcription_provider == "deepgram" and self.deepgram_live

    def resolved_resources_dir(self) -> Path:
        return Path(self.resources_dir) if self.resources_dir else APP_DIR

    def resolved_deepgram_key(self) -> str:
        return self.deepgram_key or os.getenv("DEEPGRAM_API_KEY", "")

    def resolved_deepseek_key(self) -> str:
        return self.deepseek_key or os.getenv("DEEPSEEK_API_KEY", "")


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "aaru" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> Settings:
        data = self._read_all()
        known = {f.name for f in dataclasses.fields(Settings)}
        values = {k: v for k, v in data.items() if k in known}
        try:
            return Settings(**values)
        except TypeError:
            logger.warning("Ignoring malformed settings in %s", self._path)
            return Settings()

    def save(self, settings: Settings) -> None:
        self._write_all(dataclasses.asdict(settings))

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
