"""Streaming chat backends: local Ollama server and DeepSeek SSE API."""

from __future__ import annotations

import json
import logging
from typing import Iterator, Optional

import httpx

from config import Settings
from errors import ConfigurationError, NetworkError
from interfaces import ChatBackend

logger = logging.getLogger(__name__)

DEEPSEEK_URL = "https://api.deepseek.com/v1/chat/completions"
SSE_PREFIX = "data: "
SSE_DONE = "[DONE]"


class LineBuffer:
    """Splits arbitrarily fragmented text into complete ``\\n``-terminated lines."""

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, text: str) -> list[str]:
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        return lines


class OllamaChatBackend:
    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = "http://localhost:11434",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.model = model
        self._url = base_url.rstrip("/") + "/api/chat"
        self._transport = transport

    def stream_chat(self, messages: list[dict]) -> Iterator[str]:
        payload = {"model": self.model, "stream": True, "messages": messages}
        logger.info("POST %s (model=%s, %d messages)", self._url, self.model, len(messages))
        try:
            with httpx.Client(transport=self._transport, timeout=None) as client:
                with client.stream("POST", self._url, json=payload) as response:
                    logger.info("Ollama responded %s", response.status_code)
                    if response.status_code != 200:
                        raise NetworkError(
                            f"Ollama API Error: {response.status_code} {response.reason_phrase}"
                        )
                    buffer = LineBuffer()
                    for text in response.iter_text():
                        for line in buffer.feed(text):
                            if not line.strip():
                                continue
                            try:
                                data = json.loads(line)
                            except json.JSONDecodeError as exc:
                                logger.warning("Error parsing Ollama chunk: %s", exc)
                                continue
                            if not isinstance(data, dict):
                                continue
                            content = (data.get("message") or {}).get("content")
                            if content:
                                yield content
                            if data.get("done"):
                                return
        except httpx.HTTPError as exc:
            raise NetworkError(f"Ollama request failed: {exc}") from exc


class DeepSeekChatBackend:
    def __init__(
        self,
        api_key: str,
        model: str = "deepseek-chat",
        url: str = DEEPSEEK_URL,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self._url = url
        self._transport = transport

    def stream_chat(self, messages: list[dict]) -> Iterator[str]:
        if not self._api_key:
            raise ConfigurationError("DeepSeek API Key is missing.")
        payload = {"model": self.model, "stream": True, "messages": messages}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        logger.info("POST %s (model=%s, %d messages)", self._url, self.model, len(messages))
        try:
            with httpx.Client(transport=self._transport, timeout=None) as client:
                with client.stream("POST", self._url, json=payload, headers=headers) as response:
                    logger.info("DeepSeek responded %s", response.status_code)
                    if response.status_code != 200:
                        response.read()
                        raise NetworkError(
                            f"DeepSeek API Error: {response.status_code} {response.text}"
                        )
                    buffer = LineBuffer()
                    for text in response.iter_text():
                        for line in buffer.feed(text):
                            trimmed = line.strip()
                            if not trimmed.startswith(SSE_PREFIX):
                                continue
                            body = trimmed[len(SSE_PREFIX):]
                            if body == SSE_DONE:
                                return
                            try:
                                data = json.loads(body)
                            except json.JSONDecodeError as exc:
                                logger.warning("Error parsing DeepSeek chunk: %s", exc)
                                continue
                            content = _delta_content(data)
                            if content:
                                yield content
        except httpx.HTTPError as exc:
            raise NetworkError(f"DeepSeek request failed: {exc}") from exc


def _delta_content(data: object) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    return str(delta.get("content") or "")


def build_chat_backend(settings: Settings) -> ChatBackend:
    if settings.ai_provider == "ollama":
        return OllamaChatBackend(model=settings.ollama_model or "llama3.2", base_url=settings.ollama_url)
    if settings.ai_provider == "deepseek":
        return DeepSeekChatBackend(
            api_key=settings.resolved_deepseek_key(),
            model=settings.deepseek_model,
        )
    raise ConfigurationError(f"Unknown AI provider: {settings.ai_provider}")
