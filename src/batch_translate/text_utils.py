"""Text processing utilities."""

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from .languages import get_language_name


# HTML 实体 -> 字符；&amp; 必须在 &lt;/&gt; 之前处理
HTML_ENTITIES = (
    ("&#39;", "'"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
)

# 任意 Unicode 字母
_LETTER_RE = re.compile(r"[^\W\d_]")

_AUTO_SOURCE_RE = re.compile(r"from \$\{sourceLanguage\} (to|into)")


def clean_translated_text(text: str) -> str:
    """
    Unescape the HTML entities some providers return.

    Args:
        text: Raw provider output

    Returns:
        Cleaned text
    """
    if not text or not isinstance(text, str):
        return ""

    for entity, char in HTML_ENTITIES:
        text = text.replace(entity, char)
    return text


def has_translatable_content(text: str) -> bool:
    """True when the text contains at least one letter in any script."""
    return bool(_LETTER_RE.search(text or ""))


def build_prompt(
    content: str,
    user_prompt: str,
    target_language: str,
    source_language: str,
    full_text: Optional[str] = None,
) -> str:
    """
    Substitute the placeholders of a user prompt template.

    ``${fullText}`` is only touched when the template actually uses it and
    falls back to ``content`` when no full text was supplied.
    """
    prompt = user_prompt
    if source_language == "auto":
        prompt = _AUTO_SOURCE_RE.sub("into", prompt)

    prompt = (
        prompt.replace("${sourceLanguage}", get_language_name(source_language), 1)
        .replace("${targetLanguage}", get_language_name(target_language), 1)
        .replace("${content}", content, 1)
    )

    if "${fullText}" in prompt:
        prompt = prompt.replace("${fullText}", full_text or content, 1)

    return prompt


def split_into_chunks(lines: Sequence[str], max_length: int, delimiter: str = "\n") -> List[List[str]]:
    """
    Group lines into chunks whose joined length stays within ``max_length``.

    A line is never split; a single line longer than the budget becomes a
    chunk of its own.
    """
    chunks: List[List[str]] = []
    current: List[str] = []
    current_len = 0

    for line in lines:
        added = len(line) + (len(delimiter) if current else 0)
        if current and current_len + added > max_length:
            chunks.append(current)
            current, current_len = [line], len(line)
        else:
            current.append(line)
            current_len += added

    if current:
        chunks.append(current)

    return chunks


def truncate_text(text: str, max_length: int = 30, suffix: str = "...") -> str:
    """
    Truncate text for log previews.

    Args:
        text: Text to truncate
        max_length: Number of characters kept before the suffix
        suffix: Suffix to append if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max_length] + suffix
