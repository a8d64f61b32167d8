from __future__ import annotations

import json
from pathlib import Path

from config import JsonConfigStore, Settings


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    settings = store.load()
    assert settings == Settings()
    assert settings.transcription_provider == "local"
    assert settings.ai_provider == "ollama"

    settings.transcription_provider = "deepgram"
    settings.deepgram_key = "dg-key"
    settings.auto_submit = True
    store.save(settings)

    reloaded = JsonConfigStore(path=path).load()
    assert reloaded.transcription_provider == "deepgram"
    assert reloaded.deepgram_key == "dg-key"
    assert reloaded.auto_submit is True
    assert reloaded.uses_live_transcription is True


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.load() == Settings()


def test_config_ignores_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"ollama_model": "qwen2", "legacy_hotkey": "Key.alt_l"}), encoding="utf-8")

    settings = JsonConfigStore(path=path).load()
    assert settings.ollama_model == "qwen2"


def test_config_non_object_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert JsonConfigStore(path=path).load() == Settings()


def test_credentials_fall_back_to_environment(monkeypatch) -> None:
    monkeypatch.setenv("DEEPGRAM_API_KEY", "env-dg")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "env-ds")

    assert Settings().resolved_deepgram_key() == "env-dg"
    assert Settings(deepseek_key="own").resolved_deepseek_key() == "own"


def test_live_mode_requires_deepgram_live() -> None:
    assert Settings(transcription_provider="deepgram", deepgram_live=False).uses_live_transcription is False
    assert Settings(transcription_provider="local").uses_live_transcription is False
