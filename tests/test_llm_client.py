import io
import json
from urllib.error import HTTPError, URLError

import pytest

from llmcp.llm.client import (
    DEFAULT_SYSTEM_PROMPT,
    AuthError,
    ModelClient,
    ModelProviderError,
    NetworkError,
)


class FakeResponse:
    def __init__(self, body: bytes) -> None:
        self.body = body

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return None

    def read(self):
        return self.body


def _capture_urlopen(monkeypatch, body: dict[str, object], captured: dict[str, object]) -> None:
    def fake_urlopen(req, timeout=None):
        captured["url"] = req.full_url
        captured["headers"] = dict(req.header_items())
        captured["payload"] = json.loads(req.data.decode("utf-8"))
        captured["timeout"] = timeout
        return FakeResponse(json.dumps(body).encode("utf-8"))

    monkeypatch.setattr("llmcp.llm.client.request.urlopen", fake_urlopen)


def test_openai_payload_prepends_system_prompt() -> None:
    client = ModelClient(api_key="k", model="gpt-4o", temperature=0.2)

    payload = client._build_payload([{"role": "user", "content": "hi"}])

    assert payload["model"] == "gpt-4o"
    assert payload["temperature"] == 0.2
    assert payload["messages"] == [
        {"role": "system", "content": DEFAULT_SYSTEM_PROMPT},
        {"role": "user", "content": "hi"},
    ]


def test_anthropic_payload_uses_system_field() -> None:
    client = ModelClient(api_key="k", model="claude", provider="anthropic", system_prompt="be brief")

    payload = client._build_payload([{"role": "user", "content": "hi"}])

    assert payload["system"] == "be brief"
    assert payload["messages"] == [{"role": "user", "content": "hi"}]
    assert payload["max_tokens"] > 0
    assert "temperature" not in payload


def test_default_system_prompt_describes_directives() -> None:
    assert "[[TYPE: parameters]]" in DEFAULT_SYSTEM_PROMPT
    assert "[[EXECUTE: command]]" in DEFAULT_SYSTEM_PROMPT


def test_unknown_provider_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unsupported model provider"):
        ModelClient(api_key="k", model="m", provider="mystery")


@pytest.mark.asyncio
async def test_complete_returns_openai_message_content(monkeypatch) -> None:
    captured: dict[str, object] = {}
    _capture_urlopen(
        monkeypatch, {"choices": [{"message": {"content": "[[READ: a]]"}}]}, captured
    )
    client = ModelClient(api_key="secret", model="gpt-4o", timeout=12)

    reply = await client.complete([{"role": "user", "content": "read a"}])

    assert reply == "[[READ: a]]"
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer secret"
    assert captured["timeout"] == 12


@pytest.mark.asyncio
async def test_complete_joins_anthropic_text_blocks(monkeypatch) -> None:
    captured: dict[str, object] = {}
    _capture_urlopen(
        monkeypatch,
        {
            "content": [
                {"type": "text", "text": "Hello "},
                {"type": "tool_use", "id": "ignored"},
                {"type": "text", "text": "world"},
            ]
        },
        captured,
    )
    client = ModelClient(api_key="secret", model="claude", provider="anthropic")

    reply = await client.complete([{"role": "user", "content": "hi"}])

    assert reply == "Hello world"
    assert captured["url"] == "https://api.anthropic.com/v1/messages"
    assert captured["headers"]["X-api-key"] == "secret"


@pytest.mark.asyncio
async def test_missing_api_key_is_an_auth_error() -> None:
    client = ModelClient(api_key=None, model="gpt-4o")

    with pytest.raises(AuthError, match="No API key"):
        await client.complete([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_rejected_credentials_are_auth_errors(monkeypatch, status: int) -> None:
    def fake_urlopen(*_args, **_kwargs):
        raise HTTPError(url="https://example.com", code=status, msg="Denied", hdrs=None, fp=None)

    monkeypatch.setattr("llmcp.llm.client.request.urlopen", fake_urlopen)
    client = ModelClient(api_key="bad", model="gpt-4o")

    with pytest.raises(AuthError, match=f"HTTP {status}"):
        await client.complete([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_http_error_includes_response_excerpt(monkeypatch) -> None:
    class FakeHTTPError(HTTPError):
        def __init__(self):
            super().__init__(
                url="https://example.com",
                code=400,
                msg="Bad Request",
                hdrs=None,
                fp=io.BytesIO(b'{"error":{"message":"invalid model"}}'),
            )

    def fake_urlopen(*_args, **_kwargs):
        raise FakeHTTPError()

    monkeypatch.setattr("llmcp.llm.client.request.urlopen", fake_urlopen)
    client = ModelClient(api_key="k", model="gpt-4o")

    with pytest.raises(ModelProviderError) as excinfo:
        await client.complete([{"role": "user", "content": "hi"}])

    assert "HTTP 400" in str(excinfo.value)
    assert "invalid model" in str(excinfo.value)


@pytest.mark.asyncio
async def test_transport_error_is_a_network_error(monkeypatch) -> None:
    def fake_urlopen(*_args, **_kwargs):
        raise URLError("connection refused")

    monkeypatch.setattr("llmcp.llm.client.request.urlopen", fake_urlopen)
    client = ModelClient(api_key="k", model="gpt-4o")

    with pytest.raises(NetworkError, match="connection refused"):
        await client.complete([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_timeout_is_a_network_error(monkeypatch) -> None:
    def fake_urlopen(*_args, **_kwargs):
        raise TimeoutError()

    monkeypatch.setattr("llmcp.llm.client.request.urlopen", fake_urlopen)
    client = ModelClient(api_key="k", model="gpt-4o", timeout=5)

    with pytest.raises(NetworkError, match="timed out after 5.0s"):
        await client.complete([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_invalid_json_response_is_a_provider_error(monkeypatch) -> None:
    monkeypatch.setattr(
        "llmcp.llm.client.request.urlopen", lambda *_a, **_k: FakeResponse(b"not-json")
    )
    client = ModelClient(api_key="k", model="gpt-4o")

    with pytest.raises(ModelProviderError, match="parsing error"):
        await client.complete([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_response_without_text_is_a_provider_error(monkeypatch) -> None:
    monkeypatch.setattr(
        "llmcp.llm.client.request.urlopen",
        lambda *_a, **_k: FakeResponse(b'{"choices": []}'),
    )
    client = ModelClient(api_key="k", model="gpt-4o")

    with pytest.raises(ModelProviderError, match="did not contain any text"):
        await client.complete([{"role": "user", "content": "hi"}])
