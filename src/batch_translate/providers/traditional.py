"""Adapters for traditional machine-translation APIs (GTX, Google, DeepL, DeepLX, Azure)."""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from ..config import Provider
from ..errors import ConfigurationError
from .base import (
    ProviderRequest,
    invalid_response,
    raise_for_status,
    require_api_key,
    send,
)

logger = logging.getLogger(__name__)

GTX_ENDPOINT = "https://translate.googleapis.com/translate_a/single"
GOOGLE_ENDPOINT = "https://translation.googleapis.com/language/translate/v2"
DEEPL_ENDPOINT = "https://api-edgeone.newzone.top/api/deepl"
DEEPLX_ENDPOINT = "https://deeplx.aishort.top/translate"
AZURE_ENDPOINT = "https://api.cognitive.microsofttranslator.com/translate"


def _with_source(body: Dict[str, Any], request: ProviderRequest, key: str) -> Dict[str, Any]:
    # auto 表示由服务端自动检测源语言
    if not request.source_is_auto:
        body[key] = request.source_language
    return body


async def gtx_free(request: ProviderRequest, http: httpx.AsyncClient) -> str:
    params = {
        "client": "gtx",
        "sl": request.source_language,
        "tl": request.target_language,
        "dt": "t",
        "q": request.text,
    }
    response = await send(http, Provider.GTX, "GET", GTX_ENDPOINT, params=params)
    data = raise_for_status(response, Provider.GTX)

    try:
        return "".join(part[0] for part in data[0] if part and part[0])
    except (TypeError, IndexError, KeyError):
        raise invalid_response("GTX", Provider.GTX)


async def google(request: ProviderRequest, http: httpx.AsyncClient) -> str:
    key = require_api_key("Google Translate", request.api_key)
    body = _with_source({"q": request.text, "target": request.target_language}, request, "source")

    response = await send(http, Provider.GOOGLE, "POST", GOOGLE_ENDPOINT, params={"key": key}, json=body)
    data = raise_for_status(response, Provider.GOOGLE)

    try:
        return data["data"]["translations"][0]["translatedText"]
    except (TypeError, IndexError, KeyError):
        raise invalid_response("Google Translate", Provider.GOOGLE)


async def deepl(request: ProviderRequest, http: httpx.AsyncClient) -> str:
    key = require_api_key("DeepL", request.api_key)
    body = _with_source(
        {"text": request.text, "target_lang": request.target_language, "authKey": key},
        request,
        "source_lang",
    )

    response = await send(http, Provider.DEEPL, "POST", (request.url or "").strip() or DEEPL_ENDPOINT, json=body)
    data = raise_for_status(response, Provider.DEEPL)

    try:
        return data["translations"][0]["text"]
    except (TypeError, IndexError, KeyError):
        raise invalid_response("DeepL", Provider.DEEPL)


async def deeplx(request: ProviderRequest, http: httpx.AsyncClient) -> str:
    body = _with_source({"text": request.text, "target_lang": request.target_language}, request, "source_lang")

    response = await send(http, Provider.DEEPLX, "POST", (request.url or "").strip() or DEEPLX_ENDPOINT, json=body)
    data = raise_for_status(response, Provider.DEEPLX)

    result = data.get("data") if isinstance(data, dict) else None
    if not isinstance(result, str):
        raise invalid_response("DeepLX", Provider.DEEPLX)
    return result


async def azure(request: ProviderRequest, http: httpx.AsyncClient) -> str:
    key = require_api_key("Azure Translate", request.api_key)
    region = (request.region or "").strip()
    if not region:
        raise ConfigurationError("Azure Translate region is required")

    params = _with_source({"api-version": "3.0", "to": request.target_language}, request, "from")
    headers = {
        "Ocp-Apim-Subscription-Key": key,
        "Ocp-Apim-Subscription-Region": region,
    }

    response = await send(
        http, Provider.AZURE, "POST", AZURE_ENDPOINT,
        params=params, headers=headers, json=[{"Text": request.text}],
    )
    data = raise_for_status(response, Provider.AZURE)

    try:
        return data[0]["translations"][0]["text"]
    except (TypeError, IndexError, KeyError):
        raise invalid_response("Azure Translate", Provider.AZURE)
