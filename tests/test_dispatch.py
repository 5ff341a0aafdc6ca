"""Tests for single-request dispatch."""

import pytest

from batch_translate.cache import CacheStore, generate_cache_key
from batch_translate.config import Provider
from batch_translate.dispatch import Dispatcher, probe_provider
from batch_translate.errors import ProviderError
from batch_translate.providers import ProviderRequest

from conftest import FakeAdapter


def request_for(text, config):
    return ProviderRequest.from_config(text, config)


class TestDispatcher:

    @pytest.mark.asyncio
    async def test_no_letters_short_circuits(self, gtx_config, fake_adapter):
        dispatcher = Dispatcher(http=None, adapters={Provider.GTX: fake_adapter})
        assert await dispatcher.translate(request_for("00:01 --> 00:02", gtx_config), "s") == "00:01 --> 00:02"
        assert fake_adapter.calls == []

    @pytest.mark.asyncio
    async def test_same_language_short_circuits(self, gtx_config, fake_adapter):
        dispatcher = Dispatcher(http=None, adapters={Provider.GTX: fake_adapter})
        config = gtx_config.with_changes(source_language="zh")
        assert await dispatcher.translate(request_for("你好", config), "s") == "你好"
        assert fake_adapter.calls == []

    @pytest.mark.asyncio
    async def test_result_entities_unescaped(self, gtx_config):
        dispatcher = Dispatcher(http=None, adapters={Provider.GTX: FakeAdapter(lambda r: "Tom &amp; Jerry &#39;s")})
        assert await dispatcher.translate(request_for("Tom and Jerry", gtx_config), "s") == "Tom & Jerry 's"

    @pytest.mark.asyncio
    async def test_empty_result_is_error(self, gtx_config):
        dispatcher = Dispatcher(http=None, adapters={Provider.GTX: FakeAdapter(lambda r: "")})
        with pytest.raises(ProviderError, match="No translation result received for method: gtxFreeAPI"):
            await dispatcher.translate(request_for("Hello", gtx_config), "s")

    @pytest.mark.asyncio
    async def test_cache_hit_skips_adapter(self, gtx_config, fake_adapter, tmp_path):
        cache = CacheStore(tmp_path / "cache.sqlite3")
        await cache.set(generate_cache_key("Hello", "sfx"), "你好")
        dispatcher = Dispatcher(http=None, cache=cache, adapters={Provider.GTX: fake_adapter})

        assert await dispatcher.translate(request_for("Hello", gtx_config), "sfx") == "你好"
        assert fake_adapter.calls == []
        cache.close()

    @pytest.mark.asyncio
    async def test_cache_written_even_when_reads_disabled(self, gtx_config, fake_adapter, tmp_path):
        cache = CacheStore(tmp_path / "cache.sqlite3")
        dispatcher = Dispatcher(http=None, cache=cache, adapters={Provider.GTX: fake_adapter})

        await dispatcher.translate(request_for("Hello", gtx_config), "sfx", use_cache=False)

        assert await cache.get(generate_cache_key("Hello", "sfx")) == "<Hello>"
        cache.close()

    def test_registry_adapter_used_by_default(self):
        from batch_translate.providers import traditional

        dispatcher = Dispatcher(http=None)
        assert dispatcher.adapter_for(Provider.DEEPL) is traditional.deepl


class TestProbeProvider:

    @pytest.mark.asyncio
    async def test_probe_ok(self, gtx_config):
        adapter = FakeAdapter(lambda r: "你好，世界！")
        dispatcher = Dispatcher(http=None, adapters={Provider.GTX: adapter})

        assert await probe_provider(dispatcher, gtx_config.with_changes(target_language="ja"))
        assert adapter.calls[0].source_language == "en"
        assert adapter.calls[0].target_language == "zh"

    @pytest.mark.asyncio
    async def test_probe_failure(self, gtx_config):
        dispatcher = Dispatcher(http=None, adapters={Provider.GTX: FakeAdapter(lambda r: ProviderError("x", status=500))})
        assert not await probe_provider(dispatcher, gtx_config)

    @pytest.mark.asyncio
    async def test_probe_unchanged_text_still_passes(self, gtx_config, caplog):
        dispatcher = Dispatcher(http=None, adapters={Provider.GTX: FakeAdapter(lambda r: r.text)})
        assert await probe_provider(dispatcher, gtx_config)
        assert "unchanged" in caplog.text

    @pytest.mark.asyncio
    async def test_probe_leaves_cache_untouched(self, gtx_config, tmp_path):
        cache = CacheStore(tmp_path / "c.sqlite3")
        dispatcher = Dispatcher(http=None, cache=cache, adapters={Provider.GTX: FakeAdapter(lambda r: "你好，世界！")})

        assert await probe_provider(dispatcher, gtx_config)
        assert await cache.count() == 0
        cache.close()

    @pytest.mark.asyncio
    async def test_probe_empty_result_fails(self, gtx_config):
        dispatcher = Dispatcher(http=None, adapters={Provider.GTX: FakeAdapter(lambda r: "")})
        assert not await probe_provider(dispatcher, gtx_config)
