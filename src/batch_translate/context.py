"""Context-window batching for LLM providers."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from .cancellation import pause
from .config import DocumentType, RuntimeConfig
from .errors import IncompleteTranslationError, TranslationAborted, TranslationError
from .response_parser import extract_numbered_lines
from .retry import RetryController, is_auth_error

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

MAX_CONTEXT_PADDING = 25
# 上下文窗口最多缩小两次
MAX_CONTEXT_RETRIES = 2
MIN_CONTEXT_WINDOW = 5


_CONTEXT_DESCRIPTIONS = {
    DocumentType.SUBTITLE: {
        "description": "part of a subtitle file",
        "style": "Maintain the natural flow of dialogue and keep the same numbering in your response.",
        "notes": "If a line contains only sounds/exclamations, still translate them appropriately",
    },
    DocumentType.MARKDOWN: {
        "description": "part of a Markdown document",
        "style": (
            "Preserve ALL Markdown formatting syntax exactly as-is (**, *, [], (), #, >, -, ```, etc.). "
            "Only translate the text content, never modify the Markdown syntax or structure."
        ),
        "notes": (
            "URLs, code blocks, and LaTeX formulas must remain unchanged. "
            "Maintain paragraph coherence across lines"
        ),
    },
    DocumentType.GENERIC: {
        "description": "part of a text document",
        "style": (
            "Maintain consistency, natural language flow, and preserve the original text formatting "
            "(line breaks, spacing, punctuation style)."
        ),
        "notes": "Keep the original paragraph structure and any special formatting patterns",
    },
}


def context_padding(context_window: int) -> int:
    """Lines of context on each side of a batch."""
    return min(MAX_CONTEXT_PADDING, max(1, context_window // 2))


def build_marked_text(lines: Sequence[str], start: int, end: int, padding: int) -> str:
    """
    Mark lines [start, end) with ``[TRANSLATE_k]`` and up to ``padding``
    neighbours on each side with ``[CONTEXT]``.
    """
    context_start = max(0, start - padding)
    context_end = min(len(lines), end + padding)

    marked = []
    for index in range(context_start, context_end):
        line = lines[index]
        if start <= index < end:
            k = index - start
            marked.append(f"[TRANSLATE_{k}]{line}[/TRANSLATE_{k}]")
        else:
            marked.append(f"[CONTEXT]{line}[/CONTEXT]")
    return "\n".join(marked)


def build_context_prompt(
    marked_text: str,
    base_user_prompt: str,
    batch_size: int,
    document_type: DocumentType | str = DocumentType.SUBTITLE,
) -> str:
    """Insert the marked text and the tag instructions into the user prompt."""
    ctx = _CONTEXT_DESCRIPTIONS[DocumentType(document_type)]

    content = (
        f"Context: This is {ctx['description']}. Only translate the lines marked with "
        f"[TRANSLATE_X][/TRANSLATE_X] tags (where X is the line number). Use the [CONTEXT][/CONTEXT] "
        f"lines for understanding but do not translate them. {ctx['style']}\n"
        f"\n"
        f"CRITICAL REQUIREMENTS:\n"
        f"1. You MUST translate ALL {batch_size} lines marked with [TRANSLATE_X] tags\n"
        f"2. Do NOT skip any numbers from 0 to {batch_size - 1}\n"
        f"3. Keep the exact format: [TRANSLATE_0]translation[/TRANSLATE_0]\n"
        f"4. {ctx['notes']}\n"
        f"\n"
        f"{marked_text}"
    )
    return base_user_prompt.replace("${content}", content, 1)


class ContextBatcher:
    """
    Translates an ordered document in batches of ``context_window`` lines,
    each sent with surrounding context lines.

    A batch whose response misses some lines is retried on smaller
    sub-ranges (context window halved, at most twice). Lines still missing
    after that are translated one by one; a failure there ends the run.
    """

    def __init__(
        self,
        controller: RetryController,
        config: RuntimeConfig,
        document_type: DocumentType | str = DocumentType.SUBTITLE,
        progress: Optional[ProgressCallback] = None,
        full_text: Optional[str] = None,
    ):
        self.controller = controller
        self.config = config
        self.document_type = DocumentType(document_type)
        self.progress = progress
        self.full_text = full_text

        self.lines: List[str] = []
        self.results: List[Optional[str]] = []

    def _report(self, current: int) -> None:
        if self.progress:
            self.progress(current, len(self.lines))

    def _missing(self, start: int, end: int) -> List[int]:
        return [i for i in range(start, end) if self.results[i] is None]

    async def _send_batch(self, start: int, end: int, window: int) -> bool:
        """
        One request for lines [start, end). Fills every slot the response
        yields; returns False if the request itself failed.
        """
        marked = build_marked_text(self.lines, start, end, context_padding(window))
        prompt = build_context_prompt(marked, self.config.effective_user_prompt, end - start, self.document_type)

        try:
            response = await self.controller.translate(marked, full_text=self.full_text, user_prompt=prompt)
        except TranslationAborted:
            raise
        except TranslationError as e:
            if is_auth_error(e):
                raise
            logger.warning(f"Batch {start + 1}-{end} translation error: {e}")
            return False

        for offset, value in enumerate(extract_numbered_lines(response or "", end - start)):
            if value and self.results[start + offset] is None:
                self.results[start + offset] = value
        return True

    async def translate_batch(self, start: int, end: int) -> bool:
        """
        Translate [start, end), shrinking the context window on gaps.

        Returns True when every line in the range is filled.
        """
        initial_window = min(self.config.context_window, len(self.lines))
        # (start, end, window, depth)
        work = [(start, end, initial_window, 0)]

        while work:
            sub_start, sub_end, window, depth = work.pop()
            if not self._missing(sub_start, sub_end):
                continue

            if not await self._send_batch(sub_start, sub_end, window):
                return False

            if not self._missing(sub_start, sub_end):
                continue

            if depth >= MAX_CONTEXT_RETRIES or window <= MIN_CONTEXT_WINDOW:
                return False

            new_window = max(MIN_CONTEXT_WINDOW, window // 2)
            logger.warning(
                f"Batch {sub_start + 1}-{sub_end} incomplete, "
                f"reducing context window from {window} to {new_window}"
            )
            sub_ranges = [
                (s, min(s + new_window, sub_end), new_window, depth + 1)
                for s in range(sub_start, sub_end, new_window)
            ]
            # 倒序入栈，保证按原顺序处理
            work.extend(reversed(sub_ranges))

        return not self._missing(start, end)

    async def _translate_individually(self, start: int, end: int) -> None:
        logger.warning(f"Batch {start + 1}-{end} requires individual translation fallback")
        for index in range(start, end):
            if self.results[index] is not None:
                continue
            value = await self.controller.translate(self.lines[index], full_text=self.full_text)
            if value.strip():
                self.results[index] = value
            else:
                logger.error(f"Line {index + 1} came back empty from individual translation")
            self._report(index + 1)
            if index < end - 1:
                await pause(self.config.delay_time)

    async def run(self, lines: Sequence[str]) -> List[str]:
        self.lines = list(lines)
        total = len(self.lines)
        # 空行无需翻译，直接保留
        self.results = [line if not line.strip() else None for line in self.lines]

        step = max(1, min(self.config.context_window, total))
        for start in range(0, total, step):
            end = min(start + step, total)

            if not await self.translate_batch(start, end):
                await self._translate_individually(start, end)

            self._report(end)
            if end < total:
                await pause(self.config.delay_time)

        missing = self._missing(0, total)
        if missing:
            raise IncompleteTranslationError(missing[0])

        logger.info(f"Context translation finished: {total} lines")
        return [r for r in self.results if r is not None]
