"""Shared request type and helpers for provider adapters."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..config import Provider, RuntimeConfig, normalize_prompt, DEFAULT_SYS_PROMPT, DEFAULT_USER_PROMPT
from ..errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderRequest:
    """Everything an adapter needs for one request."""

    text: str
    provider: Provider
    source_language: str
    target_language: str
    api_key: Optional[str] = None
    url: Optional[str] = None
    region: Optional[str] = None
    model: Optional[str] = None
    api_version: Optional[str] = None
    temperature: Optional[float] = None
    sys_prompt: Optional[str] = None
    user_prompt: Optional[str] = None
    use_relay: bool = False
    full_text: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        text: str,
        config: RuntimeConfig,
        full_text: Optional[str] = None,
        user_prompt: Optional[str] = None,
    ) -> "ProviderRequest":
        """
        Build a request from a runtime config.

        ``user_prompt`` overrides the config's prompt (context batches pass a
        pre-rendered prompt here).
        """
        return cls(
            text=text,
            provider=config.provider,
            source_language=config.source_language,
            target_language=config.target_language,
            api_key=config.api_key,
            url=config.url,
            region=config.region,
            model=config.model,
            api_version=config.api_version,
            temperature=config.temperature,
            sys_prompt=config.sys_prompt,
            user_prompt=user_prompt if user_prompt is not None else config.user_prompt,
            use_relay=config.use_relay if config.provider == Provider.DEEPSEEK else False,
            full_text=full_text,
        )

    @property
    def effective_sys_prompt(self) -> str:
        return normalize_prompt(self.sys_prompt, DEFAULT_SYS_PROMPT)

    @property
    def effective_user_prompt(self) -> str:
        return normalize_prompt(self.user_prompt, DEFAULT_USER_PROMPT)

    @property
    def source_is_auto(self) -> bool:
        return self.source_language == "auto"


Adapter = Callable[[ProviderRequest, httpx.AsyncClient], Awaitable[str]]


def normalize_number(value: Any, fallback: float) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return fallback
    return n if math.isfinite(n) else fallback


def require_api_key(service_name: str, api_key: Optional[str]) -> str:
    key = (api_key or "").strip()
    if not key:
        raise ConfigurationError(f"{service_name} API Key is required")
    return key


def require_url(service_name: str, url: Optional[str]) -> str:
    endpoint = (url or "").strip().rstrip("/")
    if not endpoint:
        raise ConfigurationError(f"{service_name} endpoint URL is required")
    return endpoint


def _status_hint(code: int) -> str:
    if code == 401:
        return " (API Key invalid or expired / API 密钥无效或已过期)"
    if code == 403:
        return " (Access forbidden / 访问被禁止)"
    if code == 429:
        return " (Rate limit exceeded, please retry later / 请求过于频繁，请稍后重试)"
    if 500 <= code < 600:
        return " (Server error, please retry later / 服务器错误，请稍后重试)"
    return ""


def error_details(data: Any, status: int) -> tuple[str, int]:
    """
    Build a readable message from an error body.

    Returns:
        (message, effective code); the nested ``error.code`` wins over the
        HTTP status when the provider supplies one.
    """
    error = data.get("error") if isinstance(data, dict) else None

    if isinstance(error, dict):
        nested = error.get("message")
        nested_code = error.get("code")
        code = nested_code if isinstance(nested_code, int) and nested_code else status
        if isinstance(nested, str) and nested.strip():
            return f"[{code}] {nested}{_status_hint(code)}", code

    top_level = error if isinstance(error, str) else (data.get("message") if isinstance(data, dict) else None)
    if isinstance(top_level, str) and top_level.strip():
        return f"[{status}] {top_level}{_status_hint(status)}", status

    return f"HTTP error! status: {status}{_status_hint(status)}", status


def parse_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, ValueError):
        return None


def raise_for_status(response: httpx.Response, provider: Provider) -> Any:
    """Return the decoded JSON body, or raise :class:`ProviderError` on non-2xx."""
    data = parse_json(response)
    if not response.is_success:
        message, code = error_details(data, response.status_code)
        raise ProviderError(message, status=code, provider=provider.value)
    return data


async def send(http: httpx.AsyncClient, provider: Provider, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """Issue one HTTP request, mapping transport failures to :class:`ProviderError`."""
    logger.debug(f"{provider.value}: {method} {url.split('?')[0]}")
    try:
        return await http.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise ProviderError(f"Network error: {e}", provider=provider.value) from e


def invalid_response(service_name: str, provider: Provider) -> ProviderError:
    return ProviderError(f"Invalid response format from {service_name} API", provider=provider.value)
