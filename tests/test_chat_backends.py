"""Tests for the streaming chat backends."""

from __future__ import annotations

import json

import httpx
import pytest

from chat_backends import (
    DeepSeekChatBackend,
    LineBuffer,
    OllamaChatBackend,
    build_chat_backend,
)
from config import Settings
from errors import ConfigurationError, NetworkError

MESSAGES = [{"role": "user", "content": "hi"}]


def _stream(*parts: str):
    def body():
        for part in parts:
            yield part.encode("utf-8")

    return body()


def _ollama_line(content: str, done: bool = False) -> str:
    return json.dumps({"message": {"role": "assistant", "content": content}, "done": done}) + "\n"


def _sse(content: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n"


# ---------------------------------------------------------------
# LineBuffer
# ---------------------------------------------------------------

def test_line_buffer_keeps_trailing_partial() -> None:
    buffer = LineBuffer()

    assert buffer.feed('{"a"') == []
    assert buffer.feed(': 1}\n{"b"') == ['{"a": 1}']
    assert buffer.pending == '{"b"'
    assert buffer.feed(": 2}\n\n") == ['{"b": 2}', ""]
    assert buffer.pending == ""


# ---------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------

def test_ollama_reassembles_fragmented_lines() -> None:
    seen: dict = {}
    full = _ollama_line("Hel") + _ollama_line("lo") + _ollama_line(" world") + _ollama_line("", done=True)
    parts = [full[:7], full[7:50], full[50:51], full[51:]]

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=_stream(*parts))

    backend = OllamaChatBackend(model="llama3.2", transport=httpx.MockTransport(handler))
    chunks = list(backend.stream_chat(MESSAGES))

    assert chunks == ["Hel", "lo", " world"]
    assert "".join(chunks) == "Hello world"
    assert seen["url"] == "http://localhost:11434/api/chat"
    assert seen["body"] == {"model": "llama3.2", "stream": True, "messages": MESSAGES}


def test_ollama_skips_malformed_lines() -> None:
    body = _ollama_line("a") + "{oops\n" + "[1, 2]\n" + _ollama_line("b") + _ollama_line("", done=True)
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=_stream(body)))

    assert list(OllamaChatBackend(transport=transport).stream_chat(MESSAGES)) == ["a", "b"]


def test_ollama_stops_at_done() -> None:
    body = _ollama_line("a") + _ollama_line("", done=True) + _ollama_line("ignored")
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=_stream(body)))

    assert list(OllamaChatBackend(transport=transport).stream_chat(MESSAGES)) == ["a"]


def test_ollama_non_200_raises_network_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404, text="model not found"))

    with pytest.raises(NetworkError, match="Ollama API Error: 404"):
        list(OllamaChatBackend(transport=transport).stream_chat(MESSAGES))


def test_ollama_connection_failure_raises_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(NetworkError, match="refused"):
        list(OllamaChatBackend(transport=httpx.MockTransport(handler)).stream_chat(MESSAGES))


# ---------------------------------------------------------------
# DeepSeek
# ---------------------------------------------------------------

def test_deepseek_parses_sse_until_done() -> None:
    seen: dict = {}
    full = _sse("Hel") + ": keep-alive\n\n" + _sse("lo") + _sse(" world") + "data: [DONE]\n\n" + _sse("late")
    parts = [full[i:i + 5] for i in range(0, len(full), 5)]

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=_stream(*parts))

    backend = DeepSeekChatBackend(api_key="sk-test", transport=httpx.MockTransport(handler))
    chunks = list(backend.stream_chat(MESSAGES))

    assert "".join(chunks) == "Hello world"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "deepseek-chat"
    assert seen["body"]["stream"] is True


def test_deepseek_skips_malformed_payloads() -> None:
    body = _sse("a") + "data: {nope\n\n" + 'data: {"choices": []}\n\n' + _sse("b") + "data: [DONE]\n\n"
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=_stream(body)))

    assert list(DeepSeekChatBackend(api_key="k", transport=transport).stream_chat(MESSAGES)) == ["a", "b"]


def test_deepseek_missing_key_makes_no_request() -> None:
    calls: list[httpx.Request] = []
    transport = httpx.MockTransport(lambda request: calls.append(request) or httpx.Response(200))

    with pytest.raises(ConfigurationError):
        list(DeepSeekChatBackend(api_key="", transport=transport).stream_chat(MESSAGES))
    assert calls == []


def test_deepseek_non_200_includes_body() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(401, text="invalid key"))

    with pytest.raises(NetworkError, match="401 invalid key"):
        list(DeepSeekChatBackend(api_key="k", transport=transport).stream_chat(MESSAGES))


# ---------------------------------------------------------------
# Factory
# ---------------------------------------------------------------

def test_build_chat_backend_selects_provider() -> None:
    ollama = build_chat_backend(Settings(ai_provider="ollama", ollama_model="qwen2"))
    deepseek = build_chat_backend(Settings(ai_provider="deepseek", deepseek_key="k"))

    assert isinstance(ollama, OllamaChatBackend)
    assert ollama.model == "qwen2"
    assert isinstance(deepseek, DeepSeekChatBackend)


def test_build_chat_backend_rejects_unknown_provider() -> None:
    with pytest.raises(ConfigurationError):
        build_chat_backend(Settings(ai_provider="other"))
