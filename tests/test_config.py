"""Tests for runtime configuration."""

from argparse import Namespace

import pytest

from batch_translate.config import (
    PROVIDER_DEFAULTS,
    Provider,
    ProviderFamily,
    RuntimeConfig,
    get_provider_family,
    is_llm_provider,
    provider_env_key,
    resolve_provider_config,
)


class TestProviderFamily:

    def test_families(self):
        assert get_provider_family(Provider.GTX) == ProviderFamily.GTX
        assert get_provider_family(Provider.DEEPL) == ProviderFamily.TRADITIONAL
        assert get_provider_family(Provider.GEMINI) == ProviderFamily.LLM
        assert is_llm_provider("llm")
        assert not is_llm_provider("deeplx")
        assert not is_llm_provider("nope")

    def test_env_key(self):
        assert provider_env_key(Provider.AZURE_OPENAI) == "AZUREOPENAI_API_KEY"


class TestForProvider:

    def test_defaults_applied(self):
        config = RuntimeConfig.for_provider("deepl", api_key="k")

        assert config.provider == Provider.DEEPL
        assert config.chunk_size == 5000
        assert config.delay_time == 200
        assert config.batch_size == 20

    def test_none_overrides_ignored(self):
        config = RuntimeConfig.for_provider(Provider.GROQ, model=None, temperature=0.1)
        assert config.model == PROVIDER_DEFAULTS[Provider.GROQ]["model"]
        assert config.temperature == 0.1

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-env")
        assert RuntimeConfig.for_provider("deepseek").api_key == "sk-env"
        assert RuntimeConfig.for_provider("deepseek", api_key="sk-arg").api_key == "sk-arg"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            RuntimeConfig.for_provider("babelfish")


class TestValidate:

    def test_keyless_provider_valid(self):
        assert RuntimeConfig(provider=Provider.GTX).validate() is None

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("DEEPL_API_KEY", raising=False)
        error = RuntimeConfig.for_provider("deepl").validate()
        assert error == "API key is required for deepl. Set DEEPL_API_KEY or use --api-key"

    def test_azure_openai_needs_url(self):
        error = RuntimeConfig.for_provider("azureopenai", api_key="k").validate()
        assert error == "Endpoint URL is required for azureopenai"

    def test_azure_region(self):
        assert RuntimeConfig(provider=Provider.AZURE, api_key="k").validate() == "Azure Translate region is required"
        assert RuntimeConfig.for_provider("azure", api_key="k").validate() is None

    @pytest.mark.parametrize("changes, fragment", [
        ({"batch_size": 0}, "Batch size"),
        ({"context_window": 0}, "Context window"),
        ({"chunk_size": 0}, "Chunk size"),
        ({"retry_count": -1}, "Retry count"),
        ({"retry_timeout": 0}, "Retry timeout"),
    ])
    def test_numeric_bounds(self, changes, fragment):
        error = RuntimeConfig(**changes).validate()
        assert error is not None and fragment in error


class TestResolveProviderConfig:

    def test_missing_uses_defaults(self):
        assert resolve_provider_config({}, "gtxFreeAPI") == PROVIDER_DEFAULTS[Provider.GTX]

    def test_valid_saved_config_used(self):
        saved = {**PROVIDER_DEFAULTS[Provider.DEEPLX], "url": "http://x"}
        assert resolve_provider_config({"deeplx": saved}, "deeplx")["url"] == "http://x"

    def test_stale_config_keeps_key(self):
        resolved = resolve_provider_config({"openai": {"api_key": "sk", "old_field": 1}}, "openai")
        assert resolved == {**PROVIDER_DEFAULTS[Provider.OPENAI], "api_key": "sk"}

    def test_unknown_provider_falls_back_to_gtx(self):
        assert resolve_provider_config({}, "babelfish") == PROVIDER_DEFAULTS[Provider.GTX]


class TestFromArgs:

    def test_namespace(self):
        args = Namespace(
            provider="deeplx", source_language="en", target_languages=["ja", "ko"],
            concurrency=3, delay_time=0, no_cache=True,
        )
        config = RuntimeConfig.from_args(args)

        assert config.provider == Provider.DEEPLX
        assert config.target_language == "ja"
        assert config.batch_size == 3
        assert config.delay_time == 0
        assert config.chunk_size == 1000
        assert config.use_cache is False

    def test_empty_namespace(self):
        config = RuntimeConfig.from_args(Namespace())
        assert config.provider == Provider.GTX
        assert config.target_language == "zh"
