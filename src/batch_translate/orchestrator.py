"""Top-level translation runs: strategy selection, concurrency and progress."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import httpx

from .cache import CacheStore, generate_cache_suffix
from .cancellation import AbortSignal, pause
from .config import DocumentType, Provider, RuntimeConfig
from .context import ContextBatcher, ProgressCallback
from .dispatch import Dispatcher, probe_provider
from .errors import ConfigurationError, TranslationAborted, TranslationError
from .languages import FALLBACK_PROVIDER, check_language_support, is_valid_language
from .providers import Adapter, provider_label
from .retry import RetryController, RetryPolicy
from .text_utils import split_into_chunks

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 5000
PROGRESS_EVERY = 10

# 运行前做连通性测试的服务
PROBE_PROVIDERS = frozenset({Provider.DEEPL, Provider.DEEPLX, Provider.LLM, Provider.GTX})


@dataclass
class PreflightReport:
    """Outcome of :meth:`Translator.preflight`."""

    ok: bool
    config: RuntimeConfig
    messages: List[str] = field(default_factory=list)


def _no_progress(current: int, total: int) -> None:
    pass


async def _run_all(tasks: List[asyncio.Task], signal: AbortSignal) -> None:
    """
    Wait for every task; on the first failure abort the run, cancel the
    rest and re-raise the error that triggered it.
    """
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    errors = [
        task.exception() for task in tasks
        if task in done and not task.cancelled() and task.exception() is not None
    ]
    if not errors:
        return

    first = next((e for e in errors if not isinstance(e, TranslationAborted)), errors[0])
    signal.abort(first)

    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    # 认证错误等先触发终止的原因优先
    reason = signal.reason
    raise reason if isinstance(reason, Exception) else first


class Translator:
    """
    Owns the shared HTTP client and cache for one or more translation runs.

    Usage::

        async with Translator(cache=CacheStore()) as translator:
            lines = await translator.translate_lines(lines, config)
    """

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        adapters: Optional[Mapping[Provider, Adapter]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.cache = cache
        self.adapters = adapters
        self.retry_policy = retry_policy
        self._http = http
        self._owns_http = http is None
        self._dispatcher: Optional[Dispatcher] = None

    async def __aenter__(self) -> "Translator":
        if self._http is None:
            # 单次请求的超时由 RetryController 控制
            self._http = httpx.AsyncClient(timeout=None, follow_redirects=True)
        self._dispatcher = Dispatcher(self._http, self.cache, self.adapters)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
        self._dispatcher = None

    @property
    def dispatcher(self) -> Dispatcher:
        if self._dispatcher is None:
            raise RuntimeError("Translator must be used as an async context manager")
        return self._dispatcher

    def _controller(self, config: RuntimeConfig, signal: AbortSignal) -> RetryController:
        suffix = generate_cache_suffix(
            config.source_language,
            config.target_language,
            config.provider,
            model=config.model,
            temperature=config.temperature,
            sys_prompt=config.effective_sys_prompt,
            user_prompt=config.effective_user_prompt,
        )
        return RetryController(self.dispatcher, config, signal, suffix, policy=self.retry_policy)

    async def translate_lines(
        self,
        lines: Sequence[str],
        config: RuntimeConfig,
        document_type: Optional[DocumentType | str] = None,
        progress: Optional[ProgressCallback] = None,
        signal: Optional[AbortSignal] = None,
    ) -> List[str]:
        """
        Translate an ordered list of lines; the result has the same length
        and order.

        Context-aware batching is used for LLM providers when a document
        type is given, chunking when ``config.chunk_size`` is set, and
        bounded line-by-line requests otherwise.
        """
        lines = list(lines)
        if not lines:
            return []

        error = config.validate()
        if error:
            raise ConfigurationError(error)

        signal = signal or AbortSignal()
        report = progress or _no_progress
        controller = self._controller(config, signal)

        # 仅当 prompt 使用 ${fullText} 时才拼接全文
        full_text = "\n".join(lines) if "${fullText}" in config.effective_user_prompt else None

        logger.info(
            f"Translating {len(lines)} lines with {provider_label(config.provider)} "
            f"({config.source_language} -> {config.target_language})"
        )

        try:
            if document_type and config.is_llm and len(lines) > 1:
                batcher = ContextBatcher(controller, config, document_type, report, full_text)
                return await batcher.run(lines)

            if config.chunk_size is None:
                return await self._translate_line_by_line(lines, config, controller, signal, report, full_text)

            return await self._translate_chunks(lines, config, controller, report, full_text)
        except TranslationError as e:
            signal.abort(e)
            raise

    async def _translate_line_by_line(
        self,
        lines: List[str],
        config: RuntimeConfig,
        controller: RetryController,
        signal: AbortSignal,
        report: ProgressCallback,
        full_text: Optional[str],
    ) -> List[str]:
        total = len(lines)
        results: List[str] = [""] * total
        semaphore = asyncio.Semaphore(max(1, config.batch_size))
        completed = 0

        async def translate_one(index: int, line: str) -> None:
            nonlocal completed
            async with semaphore:
                signal.raise_if_aborted()
                results[index] = await controller.translate(line, full_text=full_text)
                completed += 1
                if completed % PROGRESS_EVERY == 0 or completed == total:
                    report(completed, total)
                if completed < total:
                    await pause(config.delay_time)

        tasks = [asyncio.create_task(translate_one(i, line)) for i, line in enumerate(lines)]
        await _run_all(tasks, signal)

        report(total, total)
        return results

    async def _translate_chunks(
        self,
        lines: List[str],
        config: RuntimeConfig,
        controller: RetryController,
        report: ProgressCallback,
        full_text: Optional[str],
    ) -> List[str]:
        """
        Translate character-budgeted chunks sequentially.

        Blank lines stay in place as empty segments and are restored from
        the source afterwards. A chunk that comes back with a different
        number of lines is translated line by line instead.
        """
        delimiter = "<>" if config.provider == Provider.DEEPLX else "\n"
        total = len(lines)
        results: List[str] = []

        chunks = split_into_chunks(lines, config.chunk_size or DEFAULT_CHUNK_SIZE, delimiter)
        for chunk_no, chunk in enumerate(chunks):
            translated = await controller.translate(delimiter.join(chunk), full_text=full_text)
            if delimiter == "<>":
                translated = translated.replace("<>", "\n")
            parts = translated.split("\n")

            if len(parts) != len(chunk):
                logger.warning(
                    f"Chunk {chunk_no + 1}/{len(chunks)} returned {len(parts)} lines instead of "
                    f"{len(chunk)}, translating its lines individually"
                )
                parts = []
                for i, line in enumerate(chunk):
                    parts.append(await controller.translate(line, full_text=full_text) if line.strip() else line)
                    if line.strip() and i < len(chunk) - 1:
                        await pause(config.delay_time)

            # 以原文判断空行
            results.extend(
                original if not original.strip() else part
                for original, part in zip(chunk, parts)
            )
            report(len(results), total)

            if chunk_no < len(chunks) - 1:
                await pause(config.delay_time)

        return results

    async def translate_to_languages(
        self,
        lines: Sequence[str],
        config: RuntimeConfig,
        target_languages: Sequence[str],
        document_type: Optional[DocumentType | str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, List[str]]:
        """Run one full translation per target language, in order."""
        lines = list(lines)
        count = len(target_languages)
        results: Dict[str, List[str]] = {}

        for position, language in enumerate(target_languages):
            scaled = None
            if progress:
                def scaled(current: int, total: int, position: int = position) -> None:
                    progress(position * total + current, count * total)

            logger.info(f"Target language {position + 1}/{count}: {language}")
            results[language] = await self.translate_lines(
                lines,
                config.with_changes(target_language=language),
                document_type=document_type,
                progress=scaled,
            )

        return results

    async def preflight(
        self,
        config: RuntimeConfig,
        probe_providers: frozenset = PROBE_PROVIDERS,
    ) -> PreflightReport:
        """
        Check a config before a run: language support, configuration and
        (for some providers) connectivity.

        An unsupported language pair switches to the free GTX provider; the
        returned report carries the config to use.
        """
        messages: List[str] = []

        support = check_language_support(config.provider, config.source_language, config.target_language)
        if not support.supported:
            messages.append(support.error_message or "")
            if not (is_valid_language(config.source_language) and is_valid_language(config.target_language)):
                return PreflightReport(False, config, messages)

            config = RuntimeConfig.for_provider(
                FALLBACK_PROVIDER,
                source_language=config.source_language,
                target_language=config.target_language,
                use_cache=config.use_cache,
                retry_count=config.retry_count,
                retry_timeout=config.retry_timeout,
            )

        error = config.validate()
        if error:
            messages.append(error)
            return PreflightReport(False, config, messages)

        if config.provider in probe_providers:
            if not await probe_provider(self.dispatcher, config):
                messages.append(f"{provider_label(config.provider)} connectivity test failed")
                return PreflightReport(False, config, messages)

        return PreflightReport(True, config, messages)


async def translate_lines(
    lines: Sequence[str],
    config: RuntimeConfig,
    document_type: Optional[DocumentType | str] = None,
    progress: Optional[ProgressCallback] = None,
    signal: Optional[AbortSignal] = None,
    cache: Optional[CacheStore] = None,
) -> List[str]:
    """One-shot helper around :class:`Translator`."""
    own_cache = cache is None and config.use_cache
    if own_cache:
        cache = CacheStore()
    try:
        async with Translator(cache=cache) as translator:
            return await translator.translate_lines(
                lines, config, document_type=document_type, progress=progress, signal=signal
            )
    finally:
        if own_cache and cache is not None:
            cache.close()
