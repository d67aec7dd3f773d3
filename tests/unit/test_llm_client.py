"""Tests for the Gemini HTTP client."""
import json

import httpx
import pytest

from ascleon.errors import GeminiError
from ascleon.llm_client import GeminiClient
from ascleon.rag.embedder import Embedder


def make_client(handler, **kwargs):
    return GeminiClient(
        api_key="secret",
        base_url="https://gemini.test/v1beta",
        chat_model="gemini-test",
        embedding_model="embed-test",
        retry_backoff=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_generate_content_sends_config_and_parses_parts():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [
                {"text": "hidden", "thought": True},
                {"text": "visible"},
            ]}}]
        })

    client = make_client(handler)
    response = await client.generate_content(
        [{"text": "hello"}],
        temperature=0.3,
        max_output_tokens=800,
        response_mime_type="application/json",
    )

    assert response.final_text() == "visible"
    assert seen["url"].path == "/v1beta/models/gemini-test:generateContent"
    assert seen["url"].params["key"] == "secret"
    assert seen["body"]["contents"] == [{"parts": [{"text": "hello"}]}]
    assert seen["body"]["generationConfig"] == {
        "temperature": 0.3,
        "maxOutputTokens": 800,
        "responseMimeType": "application/json",
    }


@pytest.mark.asyncio
async def test_embed_content_returns_values():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1beta/models/embed-test:embedContent"
        assert json.loads(request.content) == {"content": {"parts": [{"text": "fever"}]}}
        return httpx.Response(200, json={"embedding": {"values": [0.1, 0.2, 0.3]}})

    assert await make_client(handler).embed_content("fever") == [0.1, 0.2, 0.3]


@pytest.mark.asyncio
async def test_empty_embedding_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"embedding": {"values": []}})

    with pytest.raises(GeminiError):
        await make_client(handler).embed_content("fever")


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": {"message": "API key not valid"}})

    client = make_client(handler, max_retries=3)
    with pytest.raises(GeminiError) as exc_info:
        await client.generate_content([{"text": "hi"}])

    assert exc_info.value.status_code == 400
    assert "API key not valid" in str(exc_info.value)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_server_error_retried_until_success():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503, json={"error": {"message": "overloaded"}})
        return httpx.Response(200, json={"embedding": {"values": [1.0]}})

    client = make_client(handler, max_retries=2)
    assert await client.embed_content("fever") == [1.0]
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_no_retry_by_default():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    client = make_client(handler, max_retries=0)
    with pytest.raises(GeminiError) as exc_info:
        await client.embed_content("fever")

    assert exc_info.value.status_code == 500
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_connection_error_wrapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GeminiError) as exc_info:
        await make_client(handler).generate_content([{"text": "hi"}])

    assert exc_info.value.status_code is None


def corrupt_gzip_handler(request):
    return httpx.Response(
        200,
        headers={"Content-Encoding": "gzip"},
        stream=httpx.ByteStream(b"this is not gzip"),
    )


@pytest.mark.asyncio
async def test_undecodable_body_wrapped():
    with pytest.raises(GeminiError):
        await make_client(corrupt_gzip_handler).embed_content("fever")


@pytest.mark.asyncio
async def test_embedder_tolerates_undecodable_body():
    embedder = Embedder(make_client(corrupt_gzip_handler))
    assert await embedder.embed("fever") is None
