"""Clipboard helpers: screen text capture stand-in and answer code copying."""

from __future__ import annotations

import logging
import re

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

logger = logging.getLogger(__name__)

_CODE_BLOCK_RE = re.compile(r"```[^\n`]*\n(.*?)```", re.DOTALL)


def extract_code_blocks(markdown: str) -> list[str]:
    """Bodies of fenced code blocks in ``markdown``, in order."""
    return [block.rstrip("\n") for block in _CODE_BLOCK_RE.findall(markdown)]


def copy_text(text: str) -> bool:
    if pyperclip is None:
        logger.warning("pyperclip is not installed; cannot copy")
        return False
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as exc:
        logger.warning("Clipboard copy failed: %s", exc)
        return False
    return True


def copy_code_blocks(markdown: str) -> bool:
    """Copy every code block of an answer, falling back to the whole answer."""
    blocks = extract_code_blocks(markdown)
    text = "\n\n".join(blocks) if blocks else markdown
    if not text.strip():
        return False
    return copy_text(text)


class ClipboardTextProvider:
    """Supplies the solve flow with whatever text is on the clipboard."""

    def capture_text(self) -> str:
        if pyperclip is None:
            logger.warning("pyperclip is not installed; no text captured")
            return ""
        try:
            return pyperclip.paste() or ""
        except pyperclip.PyperclipException as exc:
            logger.warning("Clipboard read failed: %s", exc)
            return ""
