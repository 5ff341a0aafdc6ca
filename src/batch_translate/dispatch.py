"""Single-request dispatch: short-circuit, cache lookup, adapter call, cleanup."""

from __future__ import annotations

import logging
import re
from typing import Mapping, Optional

import httpx

from .cache import CacheStore, generate_cache_key
from .config import Provider, RuntimeConfig
from .errors import ProviderError, TranslationError
from .providers import Adapter, ProviderRequest, get_adapter
from .text_utils import clean_translated_text, has_translatable_content

logger = logging.getLogger(__name__)

_CJK_RE = re.compile(r"[一-龥]")

PROBE_TEXT = "Hello, world!"


class Dispatcher:
    """
    Routes one unit of work to its provider adapter.

    ``adapters`` overrides registry entries, which is how tests and callers
    plug in custom backends without touching the network.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        cache: Optional[CacheStore] = None,
        adapters: Optional[Mapping[Provider, Adapter]] = None,
    ):
        self.http = http
        self.cache = cache
        self._overrides = {Provider(k): v for k, v in (adapters or {}).items()}

    def adapter_for(self, provider: Provider) -> Adapter:
        return self._overrides.get(provider) or get_adapter(provider)

    async def translate(self, request: ProviderRequest, cache_suffix: str, use_cache: bool = True) -> str:
        """
        Translate one piece of text.

        Text without letters, or a request whose source and target language
        are equal, is returned unchanged without touching cache or network.
        """
        text = request.text
        if not has_translatable_content(text) or request.source_language == request.target_language:
            return text

        cache_key = generate_cache_key(text, cache_suffix)
        if use_cache and self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached:
                logger.debug(f"Cache hit: {cache_key[:60]}")
                return cached

        adapter = self.adapter_for(request.provider)
        translated = await adapter(request, self.http)

        if not translated:
            raise ProviderError(
                f"No translation result received for method: {request.provider.value}",
                provider=request.provider.value,
            )

        cleaned = clean_translated_text(translated)
        if self.cache is not None:
            await self.cache.set(cache_key, cleaned)

        return cleaned


async def probe_provider(dispatcher: Dispatcher, config: RuntimeConfig) -> bool:
    """
    Probe a provider with a short en -> zh request.

    The adapter is called directly; the cache is neither read nor written.

    Returns:
        True if the provider answered
    """
    request = ProviderRequest.from_config(
        PROBE_TEXT,
        config.with_changes(source_language="en", target_language="zh"),
    )

    try:
        adapter = dispatcher.adapter_for(request.provider)
        result = clean_translated_text(await adapter(request, dispatcher.http))
    except TranslationError as e:
        logger.error(f"Translation test failed for {config.provider.value}: {e}")
        return False

    if not result:
        logger.error(f"Translation test failed for {config.provider.value}: empty result")
        return False

    if not _CJK_RE.search(result):
        logger.warning(f"Translation result does not contain Chinese characters, may not have actually translated: {result}")
    if result == PROBE_TEXT:
        logger.warning("Translation returned original text unchanged, may indicate translation service issue")

    return True
