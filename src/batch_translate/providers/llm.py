"""Adapters for LLM chat APIs (OpenAI-compatible, Azure OpenAI, Gemini)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from openai import (
    AsyncAzureOpenAI,
    AsyncOpenAI,
    APIConnectionError,
    APIError,
    APIStatusError,
    OpenAIError,
)

from ..config import PROVIDER_DEFAULTS, Provider
from ..errors import ConfigurationError, ProviderError
from ..text_utils import build_prompt
from .base import (
    ProviderRequest,
    error_details,
    invalid_response,
    normalize_number,
    raise_for_status,
    require_api_key,
    require_url,
    send,
)

logger = logging.getLogger(__name__)

DEEPSEEK_RELAY_URL = "https://llm-proxy.aishort.top/api/deepseek"
GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"
KEYLESS_PLACEHOLDER = "no-key"

RELAY_HINT_403 = (
    "DeepSeek API returned 403 Forbidden. Please enable 'API Relay' in API Settings. / "
    "DeepSeek API 返回 403 禁止访问，请在 API 设置中开启「中转 API」。"
)
RELAY_HINT_NETWORK = (
    "Network error (possibly CORS). Please enable 'API Relay' in API Settings. / "
    "网络错误（可能是 CORS 限制），请在 API 设置中开启「中转 API」。"
)


@dataclass(frozen=True)
class ChatEndpoint:
    """Static description of one OpenAI-compatible service."""

    label: str
    base_url: Optional[str]
    requires_key: bool = True
    fixed_temperature: Optional[float] = None
    headers: Dict[str, str] = field(default_factory=dict)


CHAT_ENDPOINTS: Dict[Provider, ChatEndpoint] = {
    Provider.DEEPSEEK: ChatEndpoint("DeepSeek", "https://api.deepseek.com"),
    # gpt-5 系列只接受 temperature=1
    Provider.OPENAI: ChatEndpoint("OpenAI", "https://api.openai.com/v1", fixed_temperature=1),
    Provider.PERPLEXITY: ChatEndpoint("Perplexity", "https://api.perplexity.ai"),
    Provider.SILICONFLOW: ChatEndpoint("SiliconFlow", "https://api.siliconflow.cn/v1"),
    Provider.GROQ: ChatEndpoint("Groq", "https://api.groq.com/openai/v1"),
    Provider.OPENROUTER: ChatEndpoint(
        "OpenRouter",
        "https://openrouter.ai/api/v1",
        headers={"HTTP-Referer": "https://aishort.top", "X-Title": "AIShort"},
    ),
    Provider.LLM: ChatEndpoint("Custom LLM", None, requires_key=False),
}


def _messages(request: ProviderRequest) -> List[Dict[str, str]]:
    prompt = build_prompt(
        request.text,
        request.effective_user_prompt,
        request.target_language,
        request.source_language,
        request.full_text,
    )
    return [
        {"role": "system", "content": request.effective_sys_prompt},
        {"role": "user", "content": prompt},
    ]


def _default(provider: Provider, key: str) -> Any:
    return PROVIDER_DEFAULTS[provider].get(key)


def _temperature(request: ProviderRequest) -> float:
    return normalize_number(request.temperature, _default(request.provider, "temperature"))


def _chat_base_url(url: str) -> str:
    """The custom endpoint is configured as the full completions URL."""
    url = url.strip().rstrip("/")
    suffix = "/chat/completions"
    return url[: -len(suffix)] if url.endswith(suffix) else url


def _content_from_choices(data: Any, label: str, provider: Provider) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (TypeError, IndexError, KeyError):
        content = None
    if not isinstance(content, str):
        raise invalid_response(label, provider)
    return content.strip()


async def _create_completion(client: AsyncOpenAI, request: ProviderRequest, label: str, **params: Any) -> str:
    """Run one chat completion, mapping SDK errors to :class:`ProviderError`."""
    provider = request.provider
    try:
        response = await client.chat.completions.create(messages=_messages(request), **params)
    except APIStatusError as e:
        message, code = error_details({"error": e.body}, e.status_code)
        raise ProviderError(message, status=code, provider=provider.value) from e
    except APIConnectionError as e:
        raise ProviderError(f"Network error: {e}", provider=provider.value) from e
    except APIError as e:
        raise ProviderError(f"{label} API error: {e}", provider=provider.value) from e

    # 非 JSON 响应（如代理登录页）时 SDK 返回 str
    choices = getattr(response, "choices", None)
    if not isinstance(choices, list) or not choices:
        raise invalid_response(label, provider)

    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str):
        raise invalid_response(label, provider)
    return content.strip()


def _build_client(label: str, factory, **kwargs: Any) -> AsyncOpenAI:
    try:
        return factory(max_retries=0, **kwargs)
    except OpenAIError as e:
        raise ConfigurationError(f"{label} client configuration error: {e}") from e


async def chat_completion(request: ProviderRequest, http: httpx.AsyncClient) -> str:
    """Adapter shared by every OpenAI-compatible provider."""
    provider = request.provider
    endpoint = CHAT_ENDPOINTS[provider]

    if provider == Provider.DEEPSEEK and request.use_relay:
        return await _deepseek_relay(request, http)

    if endpoint.requires_key:
        key = require_api_key(endpoint.label, request.api_key)
    else:
        # 本地服务（如 Ollama）不校验 key，但 SDK 要求非空
        key = (request.api_key or "").strip() or KEYLESS_PLACEHOLDER

    base_url = endpoint.base_url or _chat_base_url(request.url or _default(provider, "url"))
    client = _build_client(
        endpoint.label,
        AsyncOpenAI,
        api_key=key,
        base_url=base_url,
        http_client=http,
        default_headers=endpoint.headers or None,
    )

    temperature = endpoint.fixed_temperature if endpoint.fixed_temperature is not None else _temperature(request)

    try:
        return await _create_completion(
            client, request, endpoint.label,
            model=request.model or _default(provider, "model"),
            temperature=temperature,
        )
    except ProviderError as e:
        if provider == Provider.DEEPSEEK:
            if e.status == 403:
                raise ProviderError(RELAY_HINT_403, status=403, provider=provider.value) from e
            if e.status is None and e.message.startswith("Network error"):
                raise ProviderError(RELAY_HINT_NETWORK, provider=provider.value) from e
        raise


async def _deepseek_relay(request: ProviderRequest, http: httpx.AsyncClient) -> str:
    key = require_api_key("DeepSeek", request.api_key)
    body = {
        "messages": _messages(request),
        "model": request.model or _default(Provider.DEEPSEEK, "model"),
        "temperature": _temperature(request),
        "stream": False,
    }
    response = await send(
        http, Provider.DEEPSEEK, "POST", DEEPSEEK_RELAY_URL,
        headers={"Authorization": f"Bearer {key}"}, json=body,
    )
    data = raise_for_status(response, Provider.DEEPSEEK)
    return _content_from_choices(data, "DeepSeek", Provider.DEEPSEEK)


async def azure_openai(request: ProviderRequest, http: httpx.AsyncClient) -> str:
    endpoint = require_url("Azure OpenAI", request.url)
    key = require_api_key("Azure OpenAI", request.api_key)

    client = _build_client(
        "Azure OpenAI",
        AsyncAzureOpenAI,
        api_key=key,
        azure_endpoint=endpoint,
        api_version=request.api_version or _default(Provider.AZURE_OPENAI, "api_version"),
        http_client=http,
    )
    return await _create_completion(
        client, request, "Azure OpenAI",
        model=request.model or _default(Provider.AZURE_OPENAI, "model"),
        temperature=_temperature(request),
    )


async def gemini(request: ProviderRequest, http: httpx.AsyncClient) -> str:
    key = require_api_key("Gemini", request.api_key)
    messages = _messages(request)
    model = request.model or _default(Provider.GEMINI, "model")

    body = {
        "contents": [{"parts": [{"text": messages[1]["content"]}]}],
        "systemInstruction": {"parts": [{"text": messages[0]["content"]}]},
        "generationConfig": {"temperature": _temperature(request)},
    }

    response = await send(
        http, Provider.GEMINI, "POST", f"{GEMINI_ENDPOINT}/{model}:generateContent",
        params={"key": key}, json=body,
    )
    data = raise_for_status(response, Provider.GEMINI)

    try:
        return data["candidates"][0]["content"]["parts"][0]["text"].strip()
    except (TypeError, IndexError, KeyError, AttributeError):
        raise invalid_response("Gemini", Provider.GEMINI)
