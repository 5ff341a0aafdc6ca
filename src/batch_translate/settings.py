"""Import / export of translation settings as a versioned JSON blob."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import (
    DEFAULT_SYS_PROMPT,
    DEFAULT_USER_PROMPT,
    Provider,
    RuntimeConfig,
    resolve_provider_config,
)
from .errors import SettingsError

logger = logging.getLogger(__name__)

SETTINGS_VERSION = "1.0"

# 配置字段：Python 名 -> JSON 名
_CONFIG_KEYS = {
    "api_key": "apiKey",
    "url": "url",
    "region": "region",
    "model": "model",
    "api_version": "apiVersion",
    "temperature": "temperature",
    "use_relay": "useRelay",
    "chunk_size": "chunkSize",
    "delay_time": "delayTime",
    "batch_size": "batchSize",
    "context_window": "contextWindow",
}
_CONFIG_KEYS_FROM_JSON = {v: k for k, v in _CONFIG_KEYS.items()}

# (JSON 名, 属性名, 类型)
_TOP_LEVEL_FIELDS = [
    ("sysPrompt", "sys_prompt", str),
    ("userPrompt", "user_prompt", str),
    ("translationMethod", "translation_method", str),
    ("sourceLanguage", "source_language", str),
    ("targetLanguage", "target_language", str),
    ("target_langs", "target_langs", list),
    ("multiLanguageMode", "multi_language_mode", bool),
]


@dataclass
class TranslationSettings:
    """User-level settings: per-provider configs, prompts and languages."""

    translation_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    sys_prompt: str = DEFAULT_SYS_PROMPT
    user_prompt: str = DEFAULT_USER_PROMPT
    translation_method: str = Provider.GTX.value
    source_language: str = "auto"
    target_language: str = "zh"
    target_langs: List[str] = field(default_factory=lambda: ["zh"])
    multi_language_mode: bool = False

    def provider_config(self, provider: Optional[Provider | str] = None) -> Dict[str, Any]:
        """Saved config for a provider, falling back to its defaults when stale."""
        provider = provider or self.translation_method
        return resolve_provider_config(self.translation_configs, provider)

    def runtime_config(self, **overrides: Any) -> RuntimeConfig:
        """Build the :class:`RuntimeConfig` for the selected provider."""
        values: Dict[str, Any] = dict(self.provider_config())
        values.update(
            source_language=self.source_language,
            target_language=self.target_language,
            sys_prompt=self.sys_prompt,
            user_prompt=self.user_prompt,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RuntimeConfig.for_provider(self.translation_method, **values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "translationConfigs": {
                provider: {_CONFIG_KEYS.get(k, k): v for k, v in config.items()}
                for provider, config in self.translation_configs.items()
            },
            "sysPrompt": self.sys_prompt,
            "userPrompt": self.user_prompt,
            "translationMethod": self.translation_method,
            "sourceLanguage": self.source_language,
            "targetLanguage": self.target_language,
            "target_langs": list(self.target_langs),
            "multiLanguageMode": self.multi_language_mode,
        }


def export_settings(settings: TranslationSettings) -> str:
    data = settings.to_dict()
    data["exportDate"] = datetime.now(timezone.utc).isoformat()
    data["version"] = SETTINGS_VERSION
    return json.dumps(data, indent=2, ensure_ascii=False)


def save_settings(settings: TranslationSettings, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.write_text(export_settings(settings), encoding="utf-8")
    logger.info(f"Settings exported to {path}")
    return path


def _is_provider(value: Any) -> bool:
    try:
        Provider(value)
    except ValueError:
        return False
    return True


def _merge_configs(base: Dict[str, Dict[str, Any]], incoming: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    merged = {provider: dict(config) for provider, config in base.items()}
    for provider, config in incoming.items():
        if not _is_provider(provider) or not isinstance(config, dict):
            logger.warning(f"Ignoring invalid provider config: {provider!r}")
            continue
        converted = {_CONFIG_KEYS_FROM_JSON.get(k, k): v for k, v in config.items()}
        merged[provider] = {**merged.get(provider, {}), **converted}
    return merged


def parse_settings(text: str, base: Optional[TranslationSettings] = None) -> TranslationSettings:
    """
    Parse an exported settings blob and merge it over ``base``.

    Missing fields keep their current value; fields with the wrong type are
    skipped with a warning.

    Raises:
        SettingsError: Input is not JSON or not a JSON object
    """
    base = base or TranslationSettings()

    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise SettingsError(f"Failed to parse settings file: {e}") from e

    if not isinstance(data, dict):
        raise SettingsError("Invalid settings format")

    changes: Dict[str, Any] = {}

    for json_key, attr, expected in _TOP_LEVEL_FIELDS:
        if json_key not in data:
            continue
        value = data[json_key]
        if not isinstance(value, expected):
            logger.warning(f"Ignoring setting {json_key}: expected {expected.__name__}")
            continue
        changes[attr] = value

    if "translation_method" in changes and not _is_provider(changes["translation_method"]):
        logger.warning(f"Ignoring unknown translation method: {changes.pop('translation_method')}")
    if "target_langs" in changes and not all(isinstance(lang, str) for lang in changes["target_langs"]):
        logger.warning("Ignoring setting target_langs: expected a list of language codes")
        del changes["target_langs"]

    configs = data.get("translationConfigs")
    if isinstance(configs, dict):
        changes["translation_configs"] = _merge_configs(base.translation_configs, configs)
    elif configs is not None:
        logger.warning("Ignoring setting translationConfigs: expected object")

    if data.get("version") not in (None, SETTINGS_VERSION):
        logger.warning(f"Settings version {data.get('version')} differs from {SETTINGS_VERSION}")

    return replace(base, **changes)


def load_settings(path: Union[str, Path], base: Optional[TranslationSettings] = None) -> TranslationSettings:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise SettingsError(f"Failed to read file: {path}") from e
    settings = parse_settings(text, base)
    logger.info(f"Settings imported from {path}")
    return settings
