"""
Batch Translate - async batch translation through MT and LLM APIs.

Features:
- 14 providers: free GTX, Google, DeepL, DeepLX, Azure and LLM chat APIs
- Context-aware batching for LLM providers with marker repair
- Retry with backoff, per-attempt timeout and run-level abort
- Persistent translation cache
- Line-by-line, chunked and multi-language runs
"""

__version__ = "1.0.0"

from .cache import CacheStore, generate_cache_key, generate_cache_suffix
from .cancellation import AbortSignal
from .config import DocumentType, Provider, ProviderFamily, RuntimeConfig
from .context import ContextBatcher, build_context_prompt
from .dispatch import Dispatcher, probe_provider
from .errors import (
    AttemptTimeout,
    ConfigurationError,
    IncompleteTranslationError,
    ProviderError,
    SettingsError,
    TranslationAborted,
    TranslationError,
)
from .languages import LANGUAGES, check_language_support
from .orchestrator import PreflightReport, Translator, translate_lines
from .providers import ProviderRequest, get_adapter
from .response_parser import extract_lines, extract_numbered_lines
from .retry import RetryController, RetryPolicy, classify_error, get_retry_policy
from .settings import TranslationSettings, export_settings, load_settings, parse_settings, save_settings

__all__ = [
    # Config
    "Provider",
    "ProviderFamily",
    "DocumentType",
    "RuntimeConfig",
    "LANGUAGES",
    "check_language_support",
    # Engine
    "Translator",
    "translate_lines",
    "PreflightReport",
    "ContextBatcher",
    "build_context_prompt",
    "Dispatcher",
    "probe_provider",
    "RetryController",
    "RetryPolicy",
    "get_retry_policy",
    "classify_error",
    "AbortSignal",
    # Providers
    "ProviderRequest",
    "get_adapter",
    # Parsing
    "extract_numbered_lines",
    "extract_lines",
    # Cache
    "CacheStore",
    "generate_cache_key",
    "generate_cache_suffix",
    # Settings
    "TranslationSettings",
    "export_settings",
    "save_settings",
    "parse_settings",
    "load_settings",
    # Errors
    "TranslationError",
    "ConfigurationError",
    "ProviderError",
    "AttemptTimeout",
    "TranslationAborted",
    "IncompleteTranslationError",
    "SettingsError",
]
