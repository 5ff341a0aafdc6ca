"""Tests for the top-level translation runs."""

import asyncio
import json

import httpx
import pytest

from batch_translate.cache import CacheStore
from batch_translate.cancellation import AbortSignal
from batch_translate.config import Provider, RuntimeConfig
from batch_translate.errors import ConfigurationError, ProviderError, TranslationAborted
from batch_translate.orchestrator import Translator

from conftest import ZERO_WAIT, FakeAdapter, chat_response


def translator_for(adapter, provider=Provider.GTX, cache=None):
    return Translator(cache=cache, adapters={provider: adapter}, retry_policy=ZERO_WAIT)


class TestLineByLine:

    @pytest.mark.asyncio
    async def test_order_preserved(self, gtx_config):
        class Jittery(FakeAdapter):
            async def __call__(self, request, http):
                # 后面的行先完成
                index = int(request.text.split()[-1])
                await asyncio.sleep((30 - index) * 0.001)
                return await super().__call__(request, http)

        adapter = Jittery()
        lines = [f"line {i}" for i in range(30)]

        async with translator_for(adapter) as translator:
            result = await translator.translate_lines(lines, gtx_config.with_changes(batch_size=8))

        assert result == [f"<line {i}>" for i in range(30)]

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, gtx_config):
        active = 0
        peak = 0

        class Counting(FakeAdapter):
            async def __call__(self, request, http):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return await super().__call__(request, http)

        async with translator_for(Counting()) as translator:
            await translator.translate_lines([f"line {i}" for i in range(12)], gtx_config.with_changes(batch_size=3))

        assert peak == 3

    @pytest.mark.asyncio
    async def test_auth_error_aborts_remaining_lines(self, gtx_config):
        def handle(request):
            if request.text == "line 2":
                return ProviderError("[401] Unauthorized", status=401)
            return request.text.upper()

        adapter = FakeAdapter(handle)
        signal = AbortSignal()
        lines = [f"line {i}" for i in range(10)]

        async with translator_for(adapter) as translator:
            with pytest.raises(ProviderError) as exc_info:
                await translator.translate_lines(lines, gtx_config.with_changes(batch_size=1), signal=signal)

        assert exc_info.value.status == 401
        assert not isinstance(exc_info.value, TranslationAborted)
        assert adapter.texts == ["line 0", "line 1", "line 2"]
        assert signal.aborted

    @pytest.mark.asyncio
    async def test_failure_is_fatal(self, gtx_config):
        adapter = FakeAdapter(lambda r: ProviderError("busy", status=503) if r.text == "line 1" else "ok")

        async with translator_for(adapter) as translator:
            with pytest.raises(ProviderError, match="busy"):
                await translator.translate_lines(["line 0", "line 1", "line 2"], gtx_config)

    @pytest.mark.asyncio
    async def test_progress_reported(self, gtx_config):
        progress = []
        async with translator_for(FakeAdapter()) as translator:
            await translator.translate_lines(
                [f"line {i}" for i in range(25)], gtx_config,
                progress=lambda current, total: progress.append((current, total)),
            )

        assert (10, 25) in progress
        assert (20, 25) in progress
        assert progress[-1] == (25, 25)

    @pytest.mark.asyncio
    async def test_invalid_config_rejected_before_dispatch(self):
        adapter = FakeAdapter()
        config = RuntimeConfig(provider=Provider.DEEPL, target_language="zh")

        async with translator_for(adapter, Provider.DEEPL) as translator:
            with pytest.raises(ConfigurationError, match="API key is required"):
                await translator.translate_lines(["Hello"], config)

        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_empty_input(self, gtx_config):
        async with translator_for(FakeAdapter()) as translator:
            assert await translator.translate_lines([], gtx_config) == []


class TestChunkMode:

    @pytest.mark.asyncio
    async def test_blank_line_preserved(self, gtx_config):
        adapter = FakeAdapter(lambda request: request.text)

        async with translator_for(adapter) as translator:
            result = await translator.translate_lines(["a", "", "b"], gtx_config.with_changes(chunk_size=100))

        assert result == ["a", "", "b"]
        assert adapter.texts == ["a\n\nb"]

    @pytest.mark.asyncio
    async def test_deeplx_delimiter(self, gtx_config):
        adapter = FakeAdapter(lambda request: request.text.upper())
        config = gtx_config.with_changes(provider=Provider.DEEPLX, chunk_size=100)

        async with translator_for(adapter, Provider.DEEPLX) as translator:
            result = await translator.translate_lines(["one", "", "two"], config)

        assert adapter.texts == ["one<><>two"]
        assert result == ["ONE", "", "TWO"]

    @pytest.mark.asyncio
    async def test_chunks_respect_budget(self, gtx_config):
        adapter = FakeAdapter(lambda request: request.text.upper())

        async with translator_for(adapter) as translator:
            result = await translator.translate_lines(["aaa", "bbb", "ccc"], gtx_config.with_changes(chunk_size=5))

        assert adapter.texts == ["aaa", "bbb", "ccc"]
        assert result == ["AAA", "BBB", "CCC"]

    @pytest.mark.asyncio
    async def test_line_count_mismatch_translates_lines(self, gtx_config):
        def handle(request):
            if "\n" in request.text:
                return "merged into one line"
            return request.text.upper()

        adapter = FakeAdapter(handle)

        async with translator_for(adapter) as translator:
            result = await translator.translate_lines(["one", "two", "three"], gtx_config.with_changes(chunk_size=100))

        assert result == ["ONE", "TWO", "THREE"]
        assert adapter.texts == ["one\ntwo\nthree", "one", "two", "three"]

    @pytest.mark.asyncio
    async def test_angle_brackets_kept_for_newline_delimiter(self, gtx_config):
        adapter = FakeAdapter(lambda request: request.text)
        config = gtx_config.with_changes(provider=Provider.DEEPL, api_key="k", chunk_size=100)
        lines = ["WHERE a <> b", "next"]

        async with translator_for(adapter, Provider.DEEPL) as translator:
            result = await translator.translate_lines(lines, config)

        assert result == lines
        assert adapter.texts == ["WHERE a <> b\nnext"]


class TestStrategySelection:

    @pytest.mark.asyncio
    async def test_context_mode_for_llm_with_document_type(self, llm_config):
        adapter = FakeAdapter(lambda r: "[TRANSLATE_0]A[/TRANSLATE_0]\n[TRANSLATE_1]B[/TRANSLATE_1]")

        async with translator_for(adapter, Provider.DEEPSEEK) as translator:
            result = await translator.translate_lines(["a", "b"], llm_config, document_type="generic")

        assert result == ["A", "B"]
        assert len(adapter.calls) == 1
        assert "[TRANSLATE_1]b[/TRANSLATE_1]" in adapter.calls[0].text

    @pytest.mark.asyncio
    async def test_line_mode_without_document_type(self, llm_config):
        adapter = FakeAdapter()

        async with translator_for(adapter, Provider.DEEPSEEK) as translator:
            result = await translator.translate_lines(["a", "b"], llm_config)

        assert result == ["<a>", "<b>"]
        assert sorted(adapter.texts) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_full_text_only_when_prompt_uses_it(self, llm_config):
        adapter = FakeAdapter()
        config = llm_config.with_changes(user_prompt="Doc:\n${fullText}\nLine: ${content}")

        async with translator_for(adapter, Provider.DEEPSEEK) as translator:
            await translator.translate_lines(["a", "b"], config)
            assert {r.full_text for r in adapter.calls} == {"a\nb"}

            adapter.calls.clear()
            await translator.translate_lines(["a", "b"], llm_config)
            assert {r.full_text for r in adapter.calls} == {None}


class TestCaching:

    @pytest.mark.asyncio
    async def test_second_run_served_from_cache(self, gtx_config, tmp_path):
        adapter = FakeAdapter()
        cache = CacheStore(tmp_path / "cache.sqlite3")

        async with translator_for(adapter, cache=cache) as translator:
            first = await translator.translate_lines(["Hello"], gtx_config)
            second = await translator.translate_lines(["Hello"], gtx_config)
        cache.close()

        assert first == second == ["<Hello>"]
        assert len(adapter.calls) == 1

    @pytest.mark.asyncio
    async def test_no_cache_skips_lookup(self, gtx_config, tmp_path):
        adapter = FakeAdapter()
        cache = CacheStore(tmp_path / "cache.sqlite3")
        config = gtx_config.with_changes(use_cache=False)

        async with translator_for(adapter, cache=cache) as translator:
            await translator.translate_lines(["Hello"], config)
            await translator.translate_lines(["Hello"], config)
        cache.close()

        assert len(adapter.calls) == 2


class TestMultiLanguage:

    @pytest.mark.asyncio
    async def test_one_run_per_language(self, gtx_config):
        adapter = FakeAdapter(lambda r: f"{r.target_language}:{r.text}")
        progress = []

        async with translator_for(adapter) as translator:
            result = await translator.translate_to_languages(
                ["Hello", "World"], gtx_config, ["ja", "ko"],
                progress=lambda current, total: progress.append((current, total)),
            )

        assert result == {"ja": ["ja:Hello", "ja:World"], "ko": ["ko:Hello", "ko:World"]}
        assert progress[-1] == (4, 4)
        assert all(total == 4 for _, total in progress)


class TestPreflight:

    @pytest.mark.asyncio
    async def test_unsupported_language_switches_to_gtx(self):
        gtx = FakeAdapter(lambda r: "你好，世界！")
        config = RuntimeConfig.for_provider(Provider.DEEPL, api_key="k", source_language="en", target_language="jv")

        async with Translator(adapters={Provider.GTX: gtx}) as translator:
            report = await translator.preflight(config)

        assert report.ok
        assert report.config.provider == Provider.GTX
        assert report.config.target_language == "jv"
        assert "doesn't support Javanese" in report.messages[0]
        assert gtx.texts == ["Hello, world!"]

    @pytest.mark.asyncio
    async def test_invalid_language_code(self, gtx_config):
        async with translator_for(FakeAdapter()) as translator:
            report = await translator.preflight(gtx_config.with_changes(target_language="xx"))

        assert not report.ok
        assert report.messages == ["Invalid language code provided"]

    @pytest.mark.asyncio
    async def test_probe_failure(self, gtx_config):
        adapter = FakeAdapter(lambda r: ProviderError("down", status=500))

        async with translator_for(adapter) as translator:
            report = await translator.preflight(gtx_config)

        assert not report.ok
        assert "connectivity test failed" in report.messages[-1]

    @pytest.mark.asyncio
    async def test_config_error(self):
        config = RuntimeConfig(provider=Provider.AZURE, api_key="k", target_language="zh")

        async with Translator() as translator:
            report = await translator.preflight(config)

        assert not report.ok
        assert report.messages == ["Azure Translate region is required"]


class TestOverHTTP:

    @pytest.mark.asyncio
    async def test_keyless_custom_llm(self, monkeypatch):
        monkeypatch.delenv("LLM_API_KEY", raising=False)
        seen = []

        def handle(request):
            seen.append(request)
            return chat_response("你好")

        config = RuntimeConfig.for_provider(Provider.LLM, source_language="en", target_language="zh", retry_timeout=5)
        assert config.validate() is None

        async with httpx.AsyncClient(transport=httpx.MockTransport(handle)) as http:
            async with Translator(http=http, retry_policy=ZERO_WAIT) as translator:
                result = await translator.translate_lines(["Hello"], config)

        assert result == ["你好"]
        assert str(seen[0].url) == "http://127.0.0.1:11434/v1/chat/completions"

    @pytest.mark.asyncio
    async def test_html_batch_response_falls_back_to_single_lines(self, llm_config):
        batch_calls = 0

        def handle(request):
            nonlocal batch_calls
            user = json.loads(request.content)["messages"][1]["content"]
            if "[TRANSLATE_" in user:
                batch_calls += 1
                return httpx.Response(200, text="<html>proxy login</html>", headers={"content-type": "text/html"})
            return chat_response(f"T({user.splitlines()[-1]})")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handle)) as http:
            async with Translator(http=http, retry_policy=ZERO_WAIT) as translator:
                result = await translator.translate_lines(["line 0", "line 1"], llm_config, document_type="subtitle")

        assert result == ["T(line 0)", "T(line 1)"]
        # 格式错误按瞬时错误重试
        assert batch_calls == ZERO_WAIT.retries + 1
