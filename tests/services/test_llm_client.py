# tests/services/test_llm_client.py
import httpx
import pytest

from atlas_core.services import llm_client
from atlas_core.services.llm_client import OpenAIClient

REAL_ASYNC_CLIENT = httpx.AsyncClient


@pytest.fixture
def openai_api(monkeypatch):
    def _install(responder):
        def _client(*args, **kwargs):
            return REAL_ASYNC_CLIENT(*args, transport=httpx.MockTransport(responder), **kwargs)

        monkeypatch.setattr(llm_client.httpx, "AsyncClient", _client)

    return _install


async def test_completion_text(openai_api):
    openai_api(lambda request: httpx.Response(200, json={
        "id": "chatcmpl-1", "model": "gpt-test",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": "- Todo bien"}, "finish_reason": "stop"}],
    }))

    response = await OpenAIClient(api_key="sk-test").get_completion([{"role": "user", "content": "hola"}])

    assert response.error is None
    assert response.text == "- Todo bien"


@pytest.mark.parametrize("body, expected", [
    ({"error": {"message": "Rate limit reached", "type": "requests", "code": "rate_limit_exceeded"}}, "Rate limit reached"),
    ({"error": "upstream unavailable"}, "upstream unavailable"),
    ({"error": {"message": None, "code": {"nested": True}}}, "HTTP error 429 from OpenAI"),
    (["unexpected"], "HTTP error 429 from OpenAI"),
])
async def test_http_errors_of_any_shape_come_back_as_error(openai_api, body, expected):
    openai_api(lambda request: httpx.Response(429, json=body))

    response = await OpenAIClient(api_key="sk-test").get_completion([{"role": "user", "content": "hola"}])

    assert response.choices == []
    assert response.error.message == expected


async def test_missing_key_is_not_configured():
    client = OpenAIClient(api_key="")
    assert client.is_configured is False
    response = await client.get_completion([{"role": "user", "content": "hola"}])
    assert response.error.type == "no-init"
