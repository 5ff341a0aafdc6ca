"""Exception hierarchy for the translation engine."""

from __future__ import annotations

from typing import Optional


class TranslationError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(TranslationError):
    """Missing API key, endpoint URL, region or an unknown provider."""


class ProviderError(TranslationError):
    """A single provider request failed.

    ``status`` is the HTTP status (or the provider's nested error code) and
    is ``None`` for network failures and malformed response bodies.
    """

    def __init__(self, message: str, status: Optional[int] = None, provider: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.provider = provider


class AttemptTimeout(ProviderError):
    """One attempt exceeded its per-attempt deadline."""


class TranslationAborted(TranslationError):
    """The run-level abort signal fired before or during an attempt."""

    def __init__(self, message: str = "Translation aborted", reason: Optional[BaseException] = None):
        super().__init__(message)
        self.reason = reason


class IncompleteTranslationError(TranslationError):
    """A line is still untranslated after every fallback was exhausted."""

    def __init__(self, line_index: int):
        line_no = line_index + 1
        super().__init__(
            f"翻译失败：第 {line_no} 行在多次重试后仍未成功翻译，请检查 API 设置或稍后重试。\n"
            f"Translation failed: Line {line_no} could not be translated after multiple retries. "
            f"Please check API settings or retry later."
        )
        self.line_index = line_index


class SettingsError(TranslationError):
    """A settings blob could not be parsed or validated."""
