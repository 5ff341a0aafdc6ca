"""Run-level cancellation signal shared by every unit of work."""

from __future__ import annotations

import asyncio
from typing import Optional

from .errors import TranslationAborted


class AbortSignal:
    """
    One-way cancellation flag for a single translation run.

    Passed explicitly into every retry wrapper; once :meth:`abort` is called
    it stays aborted. The first reason wins.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[BaseException] = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[BaseException]:
        return self._reason

    def abort(self, reason: Optional[BaseException] = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_aborted(self) -> None:
        if self._event.is_set():
            raise TranslationAborted(reason=self._reason)

    async def wait(self) -> None:
        await self._event.wait()


async def pause(delay_ms: Optional[int]) -> None:
    """Pacing delay between requests; zero or None skips it."""
    if delay_ms and delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000)
