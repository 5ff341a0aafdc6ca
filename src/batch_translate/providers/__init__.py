"""Provider registry: one adapter per :class:`Provider`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..config import Provider, ProviderFamily, get_provider_family
from ..errors import ConfigurationError
from .base import Adapter, ProviderRequest
from . import llm, traditional


@dataclass(frozen=True)
class ProviderSpec:
    provider: Provider
    label: str
    adapter: Adapter
    docs: Optional[str] = None
    api_key_url: Optional[str] = None

    @property
    def family(self) -> ProviderFamily:
        return get_provider_family(self.provider)


_SPECS: List[ProviderSpec] = [
    ProviderSpec(Provider.GTX, "GTX API (Free)", traditional.gtx_free),
    ProviderSpec(
        Provider.GOOGLE, "Google Translate", traditional.google,
        docs="https://docs.cloud.google.com/translate/docs/setup",
    ),
    ProviderSpec(
        Provider.DEEPL, "DeepL", traditional.deepl,
        docs="https://developers.deepl.com/docs/api-reference/translate",
        api_key_url="https://www.deepl.com/your-account/keys",
    ),
    ProviderSpec(
        Provider.AZURE, "Azure Translate", traditional.azure,
        docs="https://learn.microsoft.com/azure/ai-services/translator/text-translation/reference/v3/translate",
    ),
    ProviderSpec(
        Provider.DEEPLX, "DeepLX (Free)", traditional.deeplx,
        docs="https://deeplx.owo.network/endpoints/free.html",
    ),
    ProviderSpec(
        Provider.DEEPSEEK, "DeepSeek", llm.chat_completion,
        docs="https://api-docs.deepseek.com/zh-cn/",
        api_key_url="https://platform.deepseek.com/api_keys",
    ),
    ProviderSpec(
        Provider.OPENAI, "OpenAI", llm.chat_completion,
        docs="https://platform.openai.com/docs/api-reference/chat",
        api_key_url="https://platform.openai.com/api-keys",
    ),
    ProviderSpec(
        Provider.GEMINI, "Gemini", llm.gemini,
        docs="https://ai.google.dev/gemini-api/docs/text-generation",
        api_key_url="https://aistudio.google.com/app/api-keys",
    ),
    ProviderSpec(
        Provider.PERPLEXITY, "Perplexity", llm.chat_completion,
        docs="https://docs.perplexity.ai/api-reference/chat-completions-post",
        api_key_url="https://www.perplexity.ai/account/api/keys",
    ),
    ProviderSpec(
        Provider.AZURE_OPENAI, "Azure OpenAI", llm.azure_openai,
        docs="https://learn.microsoft.com/azure/ai-foundry/foundry-models/concepts/models-sold-directly-by-azure",
    ),
    ProviderSpec(
        Provider.SILICONFLOW, "SiliconFlow", llm.chat_completion,
        docs="https://docs.siliconflow.cn/api-reference/chat-completions/chat-completions",
        api_key_url="https://cloud.siliconflow.cn/me/account/ak",
    ),
    ProviderSpec(
        Provider.GROQ, "Groq", llm.chat_completion,
        docs="https://console.groq.com/docs/text-chat",
        api_key_url="https://console.groq.com/keys",
    ),
    ProviderSpec(
        Provider.OPENROUTER, "OpenRouter", llm.chat_completion,
        docs="https://openrouter.ai/models?q=free",
        api_key_url="https://openrouter.ai/settings/keys",
    ),
    ProviderSpec(Provider.LLM, "Custom LLM", llm.chat_completion),
]

PROVIDERS: Dict[Provider, ProviderSpec] = {spec.provider: spec for spec in _SPECS}

# 每个 Provider 必须恰好注册一次
_missing = set(Provider) - set(PROVIDERS)
if _missing or len(PROVIDERS) != len(_SPECS):
    raise RuntimeError(f"Provider registry out of sync: missing {sorted(p.value for p in _missing)}")


def get_spec(provider: Provider | str) -> ProviderSpec:
    try:
        return PROVIDERS[Provider(provider)]
    except ValueError:
        raise ConfigurationError(f"Unsupported translation method: {provider}")


def get_adapter(provider: Provider | str) -> Adapter:
    return get_spec(provider).adapter


def provider_label(provider: Provider | str) -> str:
    try:
        return get_spec(provider).label
    except ConfigurationError:
        return str(provider)


__all__ = [
    "Adapter",
    "ProviderRequest",
    "ProviderSpec",
    "PROVIDERS",
    "get_adapter",
    "get_spec",
    "provider_label",
]
