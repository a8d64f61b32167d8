"""Conversation history and AI answer streaming."""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Optional

from chat_backends import build_chat_backend
from config import Settings
from interfaces import ChatBackend
from models import AnswerEvent, AnswerEventKind, ChatMessage, Role, StreamingAnswer

logger = logging.getLogger(__name__)

BackendFactory = Callable[[Settings], ChatBackend]

SOLVE_SYSTEM_PROMPT = """You are an expert Coding and Exam Assistant.
The user has captured a screenshot of a problem (MCQ or Coding Question).
The extracted text from the screen is provided below.
Ignore irrelevant UI elements, window titles, or noise.
Identify the question and provide the correct answer or solution.
If it is an MCQ, provide the correct option and a brief explanation.
If it is a coding problem, provide the correct code solution.
Be concise and direct."""

ANSWER_STYLE = (
    "\nAnswer as the candidate. Be extremely concise and direct. Answer ONLY what is asked. "
    "Do not elaborate unless specifically requested. Keep answers short and to the point. "
    "Do not mention you are an AI."
)


def build_system_prompt(settings: Settings) -> str:
    prompt = "You are the candidate in this interview. "
    prompt += f"The interview type is {settings.interview_type or 'General'}. "
    if settings.resume_text:
        prompt += (
            "\nThis is YOUR resume and background. Answer questions based on this profile:\n"
            f"{settings.resume_text}\n"
        )
    return prompt + ANSWER_STYLE


class ConversationHistory:
    def __init__(self) -> None:
        self._messages: list[ChatMessage] = []

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    def append(self, role: Role, content: str) -> None:
        self._messages.append(ChatMessage(role=role, content=content))

    def clear(self) -> None:
        self._messages.clear()

    def to_payload(self) -> list[dict]:
        return [message.to_dict() for message in self._messages]


class ConversationOrchestrator:
    """Owns the shared history and drives one streamed answer per call.

    Callers are expected to serialize ``ask``; there is no lock.  When a
    request fails the user turn stays in history without an answer so the
    next question still carries it as context.
    """

    def __init__(
        self,
        settings_provider: Callable[[], Settings],
        backend_factory: BackendFactory = build_chat_backend,
        history: Optional[ConversationHistory] = None,
    ) -> None:
        self._settings_provider = settings_provider
        self._backend_factory = backend_factory
        self._history = history if history is not None else ConversationHistory()
        self._generation = 0

    @property
    def history(self) -> ConversationHistory:
        return self._history

    def reset(self) -> None:
        self._generation += 1
        self._history.clear()
        logger.info("Conversation history cleared")

    def ask(self, question: str) -> Iterator[AnswerEvent]:
        settings = self._settings_provider()
        if len(self._history) == 0:
            self._history.append(Role.SYSTEM, build_system_prompt(settings))
        self._history.append(Role.USER, question)
        generation = self._generation
        return self._stream(
            settings,
            self._history.to_payload(),
            on_done=lambda text: self._record_answer(generation, text),
        )

    def _record_answer(self, generation: int, text: str) -> None:
        if generation != self._generation:
            logger.info("Dropping answer from before the last reset")
            return
        self._history.append(Role.ASSISTANT, text)

    def solve_from_text(self, captured_text: str) -> Iterator[AnswerEvent]:
        """Answer an exam/coding problem without touching the history."""
        settings = self._settings_provider()
        text = captured_text.strip()
        if not text:
            return iter(
                [
                    AnswerEvent(AnswerEventKind.START),
                    AnswerEvent(AnswerEventKind.ERROR, "**Error:** No text found on screen."),
                ]
            )
        preview = text[:100].replace("\n", " ")
        messages = [
            ChatMessage(Role.SYSTEM, SOLVE_SYSTEM_PROMPT).to_dict(),
            ChatMessage(Role.USER, f"Here is the text from the screen:\n\n{text}").to_dict(),
        ]
        return self._stream(
            settings,
            messages,
            preface=f"**Found Text:**\n> {preview}...\n\n**Solving...**\n",
        )

    def _stream(
        self,
        settings: Settings,
        messages: list[dict],
        on_done: Optional[Callable[[str], None]] = None,
        preface: str = "",
    ) -> Iterator[AnswerEvent]:
        answer = StreamingAnswer()
        yield AnswerEvent(AnswerEventKind.START)
        if preface:
            yield AnswerEvent(AnswerEventKind.CHUNK, preface)
        try:
            backend = self._backend_factory(settings)
            for chunk in backend.stream_chat(messages):
                answer.append(chunk)
                yield AnswerEvent(AnswerEventKind.CHUNK, chunk)
        except Exception as exc:
            logger.error("AI Error: %s", exc)
            yield AnswerEvent(AnswerEventKind.ERROR, f"**Error:** {exc}")
            return
        answer.is_done = True
        if on_done is not None:
            on_done(answer.accumulated_text)
        yield AnswerEvent(AnswerEventKind.DONE, answer.accumulated_text)
