"""Retry controller: backoff, per-attempt deadline and run-level abort."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_exponential_jitter,
)

from .cancellation import AbortSignal
from .config import DEFAULT_RETRY_COUNT, Provider, ProviderFamily, RuntimeConfig, get_provider_family
from .dispatch import Dispatcher
from .errors import (
    AttemptTimeout,
    ConfigurationError,
    ProviderError,
    TranslationAborted,
    TranslationError,
)
from .providers import ProviderRequest
from .text_utils import truncate_text

logger = logging.getLogger(__name__)


class APIErrorType(Enum):
    """API 错误类型分类。"""
    AUTH = "auth"                    # 401/403 - 不可重试，终止整个任务
    RATE_LIMIT = "rate_limit"        # 429 - 可重试
    SERVER = "server"                # 5xx - 可重试
    CONNECTION = "connection"        # 网络问题 / 超时 / 响应格式错误 - 可重试
    CONTEXT_LIMIT = "context_limit"  # 上下文超长 - 不可重试
    CONFIG = "config"                # 缺少 key / url - 不可重试
    ABORTED = "aborted"              # 任务已终止
    CLIENT = "client"                # 其他 4xx
    UNKNOWN = "unknown"


AUTH_MESSAGE_PATTERNS = ("unauthorized", "invalid api key", "authentication", "forbidden")
CONTEXT_LIMIT_PATTERNS = ("context length", "token limit")


def _status_of(error: BaseException) -> Optional[int]:
    status = getattr(error, "status", None)
    return status if isinstance(status, int) else None


def is_auth_error(error: BaseException) -> bool:
    """True for 401/403 or an auth-looking message; such errors abort the run."""
    if _status_of(error) in (401, 403):
        return True
    message = str(error).lower()
    return any(p in message for p in AUTH_MESSAGE_PATTERNS)


def classify_error(error: BaseException, provider: Optional[Provider] = None) -> tuple[APIErrorType, bool]:
    """
    分类错误并判断是否可重试。

    Returns:
        (错误类型, 是否可重试)
    """
    if isinstance(error, TranslationAborted):
        return APIErrorType.ABORTED, False
    if isinstance(error, ConfigurationError):
        return APIErrorType.CONFIG, False
    if is_auth_error(error):
        return APIErrorType.AUTH, False

    # 重试无法修复过长的 prompt
    if provider is not None and get_provider_family(provider) == ProviderFamily.LLM:
        message = str(error).lower()
        if any(p in message for p in CONTEXT_LIMIT_PATTERNS):
            return APIErrorType.CONTEXT_LIMIT, False

    if not isinstance(error, ProviderError):
        return APIErrorType.UNKNOWN, False

    status = error.status
    if status is None:
        return APIErrorType.CONNECTION, True
    if status == 429:
        return APIErrorType.RATE_LIMIT, True
    if status >= 500:
        return APIErrorType.SERVER, True
    return APIErrorType.CLIENT, False


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff between attempts; the timeouts are wait intervals in seconds."""

    retries: int = DEFAULT_RETRY_COUNT
    factor: float = 2
    min_timeout: float = 1.0
    max_timeout: float = 30.0
    randomize: bool = True

    def wait_strategy(self):
        if self.randomize:
            return wait_exponential_jitter(
                initial=self.min_timeout,
                max=self.max_timeout,
                exp_base=self.factor,
                jitter=self.min_timeout,
            )
        return wait_exponential(multiplier=self.min_timeout, exp_base=self.factor, max=self.max_timeout)


def get_retry_policy(provider: Provider, retry_count: Optional[int] = None) -> RetryPolicy:
    """Backoff settings per provider family; the free GTX endpoint backs off slower."""
    retries = DEFAULT_RETRY_COUNT if retry_count is None else retry_count
    if get_provider_family(Provider(provider)) == ProviderFamily.GTX:
        return RetryPolicy(retries=retries, min_timeout=2.0, max_timeout=60.0)
    return RetryPolicy(retries=retries)


class RetryController:
    """
    Wraps single provider calls with retry, a per-attempt deadline and the
    run's abort signal.

    An authentication error on any attempt aborts the whole run. Exhausted
    retries re-raise the last error; the original text is never returned in
    place of a translation.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        config: RuntimeConfig,
        signal: AbortSignal,
        cache_suffix: str,
        policy: Optional[RetryPolicy] = None,
    ):
        self.dispatcher = dispatcher
        self.config = config
        self.signal = signal
        self.cache_suffix = cache_suffix
        self.policy = policy or get_retry_policy(config.provider, config.retry_count)
        self.timeout = float(config.retry_timeout)

    def _should_retry(self, error: BaseException) -> bool:
        _, retryable = classify_error(error, self.config.provider)
        return retryable

    async def _with_deadline(self, work: Awaitable[str]) -> str:
        """Race one attempt against its deadline and the abort signal."""
        task = asyncio.ensure_future(work)
        abort_waiter = asyncio.ensure_future(self.signal.wait())
        try:
            done, _ = await asyncio.wait(
                {task, abort_waiter},
                timeout=self.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            abort_waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if task in done:
            return task.result()
        if self.signal.aborted:
            raise TranslationAborted(reason=self.signal.reason)
        raise AttemptTimeout(
            f"Request timed out after {self.timeout:g}s",
            provider=self.config.provider.value,
        )

    async def _attempt(self, request: ProviderRequest) -> str:
        # 每次尝试前检查是否已被其他请求终止
        self.signal.raise_if_aborted()
        try:
            return await self._with_deadline(
                self.dispatcher.translate(request, self.cache_suffix, self.config.use_cache)
            )
        except TranslationError as e:
            if is_auth_error(e):
                logger.error(f"Authentication error, aborting run: {e}")
                self.signal.abort(e)
            raise

    async def translate(
        self,
        text: str,
        full_text: Optional[str] = None,
        user_prompt: Optional[str] = None,
    ) -> str:
        """Translate one unit of work, retrying transient failures."""
        self.signal.raise_if_aborted()

        request = ProviderRequest.from_config(text, self.config, full_text=full_text, user_prompt=user_prompt)
        preview = truncate_text(text)

        def log_failed_attempt(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            retries_left = self.policy.retries + 1 - state.attempt_number
            logger.warning(
                f"Translation attempt {state.attempt_number} failed for \"{preview}\": {error} "
                f"({retries_left} retries left)"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.retries + 1),
            wait=self.policy.wait_strategy(),
            retry=retry_if_exception(self._should_retry),
            before_sleep=log_failed_attempt,
            reraise=True,
        )

        result: Any = None
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._attempt(request)
        except TranslationAborted:
            raise
        except TranslationError as e:
            logger.error(f"All translation attempts failed for \"{preview}\": {e}")
            raise

        return result
