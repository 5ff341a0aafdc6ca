"""Extraction of marker-delimited translations from LLM responses."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

logger = logging.getLogger(__name__)


_MARKER_PATTERNS = [
    re.compile(r"\[TRANSLATE_\d+\]", re.IGNORECASE),
    re.compile(r"\[/TRANSLTranslate_\d+\]", re.IGNORECASE),  # 模型常见的错误闭合标签
    re.compile(r"\[/TRANSLATE_\d+\]", re.IGNORECASE),
    re.compile(r"\[TRANSLATE\]", re.IGNORECASE),
    re.compile(r"\[/TRANSLATE\]", re.IGNORECASE),
    re.compile(r"\[CONTEXT\]", re.IGNORECASE),
    re.compile(r"\[/CONTEXT\]", re.IGNORECASE),
]

_UNNUMBERED_RE = re.compile(r"\[TRANSLATE\]([\s\S]*?)\[/TRANSLATE\]")
_CONTEXT_LINE_RE = re.compile(r"\[/?CONTEXT\]", re.IGNORECASE)


def clean_marker_content(content: str) -> str:
    """Remove every TRANSLATE / CONTEXT marker and surrounding whitespace."""
    for pattern in _MARKER_PATTERNS:
        content = pattern.sub("", content)
    return content.strip()


def _numbered_patterns(i: int) -> List[re.Pattern]:
    return [
        re.compile(rf"\[TRANSLATE_{i}\]([\s\S]*?)\[/TRANSLATE_{i}\]", re.IGNORECASE),
        re.compile(rf"\[TRANSLATE_{i}\]([\s\S]*?)\[/TRANSLTranslate_{i}\]", re.IGNORECASE),
    ]


def extract_numbered_lines(response: str, expected_count: int) -> List[Optional[str]]:
    """
    Extract ``[TRANSLATE_i]...[/TRANSLATE_i]`` segments for i in [0, N).

    When at least one numbered segment is found the result keeps ``None``
    in every slot that could not be matched; the caller is responsible for
    detecting those gaps. Otherwise falls back to :func:`extract_lines`.
    """
    results: List[Optional[str]] = [None] * expected_count

    for i in range(expected_count):
        for pattern in _numbered_patterns(i):
            match = pattern.search(response)
            if match:
                results[i] = clean_marker_content(match.group(1).strip())
                break

    matched = sum(1 for r in results if r)
    if matched:
        if matched < expected_count:
            logger.debug(f"Numbered markers matched {matched}/{expected_count}")
        return results

    return list(extract_lines(response, expected_count))


def extract_lines(response: str, expected_count: int) -> List[str]:
    """
    Extract translations without numbered markers.

    Tries unnumbered ``[TRANSLATE]`` pairs (the count must match exactly),
    then the first N non-empty lines. Yields N empty strings when neither
    strategy produces exactly N items.
    """
    matches = [clean_marker_content(m.group(1).strip()) for m in _UNNUMBERED_RE.finditer(response)]
    if len(matches) == expected_count:
        return matches

    # 回显的上下文行不能当作译文
    lines = [
        line for line in response.split("\n")
        if line.strip() and not _CONTEXT_LINE_RE.search(line)
    ][:expected_count]
    if len(lines) == expected_count:
        return [clean_marker_content(line) for line in lines]

    logger.debug(f"Could not extract {expected_count} lines from response")
    return [""] * expected_count
