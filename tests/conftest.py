"""Shared fixtures: in-memory adapters instead of network providers."""

import asyncio

import httpx
import pytest

from batch_translate.config import Provider, RuntimeConfig
from batch_translate.retry import RetryPolicy


# 无等待的重试策略
ZERO_WAIT = RetryPolicy(retries=2, min_timeout=0, max_timeout=0, randomize=False)


def chat_response(content):
    """A minimal OpenAI chat.completion body."""
    return httpx.Response(200, json={
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "m",
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
    })


class FakeAdapter:
    """Records every request; ``handler`` returns a string or an exception to raise."""

    def __init__(self, handler=None, delay=0):
        self.calls = []
        self.handler = handler or (lambda request: f"<{request.text}>")
        self.delay = delay

    async def __call__(self, request, http):
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.handler(request)
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def texts(self):
        return [r.text for r in self.calls]


@pytest.fixture
def fake_adapter():
    return FakeAdapter()


@pytest.fixture
def gtx_config():
    return RuntimeConfig(
        provider=Provider.GTX,
        source_language="en",
        target_language="zh",
        delay_time=0,
        batch_size=4,
        retry_timeout=5,
    )


@pytest.fixture
def llm_config():
    return RuntimeConfig(
        provider=Provider.DEEPSEEK,
        source_language="en",
        target_language="zh",
        api_key="sk-test",
        model="deepseek-chat",
        temperature=0.7,
        delay_time=0,
        context_window=20,
        retry_timeout=5,
    )
