"""Configuration and constants."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

# Load environment variables once
load_dotenv()


DEFAULT_SYS_PROMPT = (
    "You are a professional translator. Respond only with the content, either translated or rewritten. "
    "Do not add explanations, comments, or any extra text."
)
DEFAULT_USER_PROMPT = (
    "Please respect the original meaning, maintain the original format, and rewrite the following content "
    "in ${targetLanguage}.\n\n${content}"
)

DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_TIMEOUT = 60  # seconds
DEFAULT_CONTEXT_WINDOW = 20
DEFAULT_BATCH_SIZE = 10
DEFAULT_DELAY_MS = 200


class Provider(str, Enum):
    """Every supported translation backend."""

    GTX = "gtxFreeAPI"
    GOOGLE = "google"
    DEEPL = "deepl"
    DEEPLX = "deeplx"
    AZURE = "azure"
    DEEPSEEK = "deepseek"
    OPENAI = "openai"
    GEMINI = "gemini"
    PERPLEXITY = "perplexity"
    AZURE_OPENAI = "azureopenai"
    SILICONFLOW = "siliconflow"
    GROQ = "groq"
    OPENROUTER = "openrouter"
    LLM = "llm"

    def __str__(self) -> str:
        return self.value


class ProviderFamily(Enum):
    GTX = "gtx"                  # free endpoint, slower backoff
    TRADITIONAL = "traditional"  # DeepL, Google, Azure...
    LLM = "llm"                  # chat-completion APIs


class DocumentType(str, Enum):
    """Style guidance for context-aware LLM translation."""

    SUBTITLE = "subtitle"
    MARKDOWN = "markdown"
    GENERIC = "generic"

    def __str__(self) -> str:
        return self.value


LLM_PROVIDERS = frozenset({
    Provider.DEEPSEEK,
    Provider.OPENAI,
    Provider.GEMINI,
    Provider.PERPLEXITY,
    Provider.AZURE_OPENAI,
    Provider.SILICONFLOW,
    Provider.GROQ,
    Provider.OPENROUTER,
    Provider.LLM,
})


def get_provider_family(provider: Provider) -> ProviderFamily:
    if provider == Provider.GTX:
        return ProviderFamily.GTX
    if provider in LLM_PROVIDERS:
        return ProviderFamily.LLM
    return ProviderFamily.TRADITIONAL


def is_llm_provider(provider: str | Provider) -> bool:
    try:
        return Provider(provider) in LLM_PROVIDERS
    except ValueError:
        return False


def _llm_defaults(model: str, temperature: float = 0.7, **extra: Any) -> Dict[str, Any]:
    return {
        "api_key": "",
        "model": model,
        "temperature": temperature,
        "batch_size": 20,
        "context_window": 50,
        **extra,
    }


# 每个服务的默认配置；键集合同时用于校验已保存配置的结构
PROVIDER_DEFAULTS: Dict[Provider, Dict[str, Any]] = {
    Provider.GTX: {"batch_size": 100},
    Provider.DEEPLX: {"url": "", "chunk_size": 1000, "delay_time": 200, "batch_size": 10},
    Provider.DEEPL: {"url": "", "api_key": "", "chunk_size": 5000, "delay_time": 200, "batch_size": 20},
    Provider.AZURE: {"api_key": "", "chunk_size": 10000, "delay_time": 200, "region": "eastasia", "batch_size": 100},
    Provider.GOOGLE: {"api_key": "", "delay_time": 200, "batch_size": 100},
    Provider.DEEPSEEK: _llm_defaults("deepseek-chat", use_relay=False),
    Provider.OPENAI: _llm_defaults("gpt-5-mini", temperature=1),
    Provider.GEMINI: _llm_defaults("gemini-2.5-flash"),
    Provider.PERPLEXITY: _llm_defaults("sonar"),
    Provider.AZURE_OPENAI: _llm_defaults("gpt-5-mini", url="", api_version="2025-08-07"),
    Provider.SILICONFLOW: _llm_defaults("deepseek-ai/DeepSeek-V3"),
    Provider.GROQ: _llm_defaults("openai/gpt-oss-20b"),
    Provider.OPENROUTER: _llm_defaults("mistralai/devstral-2512:free"),
    Provider.LLM: _llm_defaults("llama3.2", url="http://127.0.0.1:11434/v1/chat/completions"),
}

# 不需要 API key 的服务
KEYLESS_PROVIDERS = frozenset({Provider.GTX, Provider.DEEPLX, Provider.LLM})


def provider_env_key(provider: Provider) -> str:
    """Environment variable holding the API key, e.g. ``DEEPSEEK_API_KEY``."""
    return f"{provider.value.upper()}_API_KEY"


def normalize_prompt(value: Optional[str], fallback: str) -> str:
    return value if isinstance(value, str) and value.strip() else fallback


@dataclass
class RuntimeConfig:
    """
    Per-run translation settings.

    The engine never mutates an instance; derived configs are produced with
    :meth:`with_changes`.
    """

    provider: Provider = Provider.GTX
    source_language: str = "auto"
    target_language: str = "zh"

    # Credentials / endpoint
    api_key: Optional[str] = None
    url: Optional[str] = None
    region: Optional[str] = None
    model: Optional[str] = None
    api_version: Optional[str] = None
    temperature: Optional[float] = None
    use_relay: bool = False

    # Scheduling knobs
    chunk_size: Optional[int] = None
    delay_time: int = DEFAULT_DELAY_MS
    batch_size: int = DEFAULT_BATCH_SIZE
    context_window: int = DEFAULT_CONTEXT_WINDOW
    retry_count: int = DEFAULT_RETRY_COUNT
    retry_timeout: float = DEFAULT_RETRY_TIMEOUT

    # Prompts
    sys_prompt: Optional[str] = None
    user_prompt: Optional[str] = None

    use_cache: bool = True

    def __post_init__(self):
        self.provider = Provider(self.provider)

    @classmethod
    def for_provider(cls, provider: Provider | str, **overrides: Any) -> "RuntimeConfig":
        """
        Build a config from the provider's defaults, then apply overrides.

        Overrides that are ``None`` are ignored so argparse values can be
        passed straight through. A missing API key is read from the
        environment.
        """
        provider = Provider(provider)
        values: Dict[str, Any] = dict(PROVIDER_DEFAULTS[provider])
        values.update({k: v for k, v in overrides.items() if v is not None})

        if not values.get("api_key"):
            values["api_key"] = os.environ.get(provider_env_key(provider)) or values.get("api_key") or None

        known = {f.name for f in fields(cls)}
        return cls(provider=provider, **{k: v for k, v in values.items() if k in known})

    @classmethod
    def from_args(cls, args) -> "RuntimeConfig":
        """Create config from argparse namespace."""
        return cls.for_provider(
            getattr(args, "provider", None) or Provider.GTX,
            source_language=getattr(args, "source_language", None),
            target_language=(getattr(args, "target_languages", None) or [None])[0],
            api_key=getattr(args, "api_key", None),
            url=getattr(args, "url", None),
            region=getattr(args, "region", None),
            model=getattr(args, "model", None),
            temperature=getattr(args, "temperature", None),
            batch_size=getattr(args, "concurrency", None),
            chunk_size=getattr(args, "chunk_size", None),
            context_window=getattr(args, "context_window", None),
            delay_time=getattr(args, "delay_time", None),
            retry_count=getattr(args, "retry_count", None),
            retry_timeout=getattr(args, "retry_timeout", None),
            sys_prompt=getattr(args, "sys_prompt", None),
            user_prompt=getattr(args, "user_prompt", None),
            use_cache=not getattr(args, "no_cache", False),
        )

    @property
    def effective_sys_prompt(self) -> str:
        return normalize_prompt(self.sys_prompt, DEFAULT_SYS_PROMPT)

    @property
    def effective_user_prompt(self) -> str:
        return normalize_prompt(self.user_prompt, DEFAULT_USER_PROMPT)

    @property
    def family(self) -> ProviderFamily:
        return get_provider_family(self.provider)

    @property
    def is_llm(self) -> bool:
        return self.provider in LLM_PROVIDERS

    def with_changes(self, **changes: Any) -> "RuntimeConfig":
        return replace(self, **changes)

    def validate(self) -> Optional[str]:
        """
        Validate configuration.

        Returns:
            Error message if invalid, None if valid
        """
        if self.provider not in KEYLESS_PROVIDERS and not (self.api_key or "").strip():
            return (
                f"API key is required for {self.provider.value}. "
                f"Set {provider_env_key(self.provider)} or use --api-key"
            )

        if self.provider in (Provider.LLM, Provider.AZURE_OPENAI) and not (self.url or "").strip():
            return f"Endpoint URL is required for {self.provider.value}"

        if self.provider == Provider.AZURE and not (self.region or "").strip():
            return "Azure Translate region is required"

        if self.batch_size < 1:
            return f"Batch size must be >= 1, got {self.batch_size}"

        if self.context_window < 1:
            return f"Context window must be >= 1, got {self.context_window}"

        if self.chunk_size is not None and self.chunk_size < 1:
            return f"Chunk size must be >= 1, got {self.chunk_size}"

        if self.retry_count < 0:
            return f"Retry count must be >= 0, got {self.retry_count}"

        if self.retry_timeout <= 0:
            return f"Retry timeout must be > 0, got {self.retry_timeout}"

        return None


def is_config_structure_valid(config: Mapping[str, Any], default_config: Mapping[str, Any]) -> bool:
    return sorted(config.keys()) == sorted(default_config.keys())


def resolve_provider_config(saved: Mapping[str, Mapping[str, Any]], provider: Provider | str) -> Dict[str, Any]:
    """
    Return the saved per-provider config, or the defaults if it is stale.

    A saved config whose keys differ from the defaults (older release,
    hand-edited file) is replaced by the defaults, keeping only the
    previously saved API key.
    """
    try:
        provider = Provider(provider)
    except ValueError:
        provider = Provider.GTX

    defaults = PROVIDER_DEFAULTS[provider]
    current = saved.get(provider.value)

    if current is None or not is_config_structure_valid(current, defaults):
        resolved = dict(defaults)
        if current and current.get("api_key") is not None and "api_key" in defaults:
            resolved["api_key"] = current["api_key"]
        return resolved

    return dict(current)


# Cache database location (overridable via env)
DEFAULT_CACHE_PATH = os.environ.get(
    "BATCH_TRANSLATE_CACHE",
    os.path.join(os.path.expanduser("~"), ".cache", "batch_translate", "translation-cache.sqlite3"),
)

# Output file prefix for the CLI
OUTPUT_PREFIX = "translated_"
