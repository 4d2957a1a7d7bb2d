from __future__ import annotations

import json
from types import SimpleNamespace

import anthropic
import httpx
import openai
import pytest

from agent_history.config import AgentHistoryConfig
from agent_history.gems import (
    SummarizerAPIError,
    SummarizerConfig,
    SummarizerError,
    build_summarizer,
    summarizer_from_config,
)
from agent_history.gems.backends import (
    OPENAI_COMPATIBLE_BASE_URLS,
    AnthropicSummarizer,
    OllamaSummarizer,
    OpenAISummarizer,
    check_ollama_available,
)

GEMS_REPLY = json.dumps(
    {"gems": [{"type": "pattern", "title": "Retry with backoff", "summary": "s"}]}
)


def _ollama_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_ollama_posts_generate_request_and_parses_reply() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": GEMS_REPLY})

    summarizer = OllamaSummarizer(
        "llama3.2", "http://ollama:11434/", client=_ollama_client(handler)
    )
    result = summarizer.extract("transcript text", "", [])

    assert seen["url"] == "http://ollama:11434/api/generate"
    body = seen["body"]
    assert isinstance(body, dict)
    assert body["model"] == "llama3.2"
    assert body["stream"] is False
    assert body["format"] == "json"
    assert "transcript text" in body["prompt"]
    assert [gem.title for gem in result.gems] == ["Retry with backoff"]
    assert result.gems[0].client == "ollama"


def test_ollama_error_status_raises_api_error() -> None:
    client = _ollama_client(lambda request: httpx.Response(500, text="model crashed"))
    summarizer = OllamaSummarizer(client=client)

    with pytest.raises(SummarizerAPIError) as excinfo:
        summarizer.extract("text", "", [])
    assert excinfo.value.status_code == 500
    assert "model crashed" in str(excinfo.value)


def test_ollama_connection_error_raises_summarizer_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    summarizer = OllamaSummarizer(client=_ollama_client(handler))
    with pytest.raises(SummarizerError):
        summarizer.extract("text", "", [])


def test_check_ollama_available_accepts_latest_tag() -> None:
    tags = {"models": [{"name": "llama3.2:latest"}, {"name": "qwen2"}]}
    client = _ollama_client(lambda request: httpx.Response(200, json=tags))

    check_ollama_available("http://ollama:11434", "llama3.2", client=client)
    check_ollama_available("http://ollama:11434", "qwen2", client=client)
    with pytest.raises(SummarizerError, match="not found"):
        check_ollama_available("http://ollama:11434", "mistral", client=client)


def test_check_ollama_available_reports_unreachable_server() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(SummarizerError, match="not running"):
        check_ollama_available(client=_ollama_client(handler))


def _anthropic_client(reply: str, calls: list[dict]) -> SimpleNamespace:
    def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=reply)])

    return SimpleNamespace(messages=SimpleNamespace(create=create))


def test_anthropic_uses_messages_api() -> None:
    calls: list[dict] = []
    summarizer = AnthropicSummarizer("claude-test", client=_anthropic_client(GEMS_REPLY, calls))

    result = summarizer.extract("transcript", "", [])

    assert calls[0]["model"] == "claude-test"
    assert calls[0]["messages"][0]["role"] == "user"
    assert result.gems[0].client == "anthropic"
    assert result.gems[0].model == "claude-test"


def test_anthropic_status_error_maps_to_api_error() -> None:
    response = httpx.Response(529, request=httpx.Request("POST", "https://api.anthropic.com"))

    def create(**kwargs):
        raise anthropic.APIStatusError("overloaded", response=response, body=None)

    client = SimpleNamespace(messages=SimpleNamespace(create=create))
    summarizer = AnthropicSummarizer(client=client)
    with pytest.raises(SummarizerAPIError) as excinfo:
        summarizer.extract("text", "", [])
    assert excinfo.value.status_code == 529


def test_anthropic_empty_reply_is_an_error() -> None:
    summarizer = AnthropicSummarizer(client=_anthropic_client("", []))
    with pytest.raises(SummarizerError):
        summarizer.extract("text", "", [])


def test_anthropic_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(SummarizerError, match="API key"):
        AnthropicSummarizer()


def _openai_client(reply: str | None, calls: list[dict]) -> SimpleNamespace:
    def create(**kwargs):
        calls.append(kwargs)
        if reply is None:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_openai_compatible_backend_names_itself_after_provider() -> None:
    calls: list[dict] = []
    summarizer = OpenAISummarizer(
        "llama-3.1-70b", provider="groq", client=_openai_client(GEMS_REPLY, calls)
    )

    result = summarizer.extract("transcript", "", [])

    assert summarizer.name == "groq"
    assert calls[0]["model"] == "llama-3.1-70b"
    assert calls[0]["temperature"] == 0.1
    assert result.gems[0].client == "groq"


def test_openai_no_choices_is_an_error() -> None:
    summarizer = OpenAISummarizer(client=_openai_client(None, []))
    with pytest.raises(SummarizerError, match="no choices"):
        summarizer.extract("text", "", [])


def test_openai_status_error_maps_to_api_error() -> None:
    response = httpx.Response(429, request=httpx.Request("POST", "https://api.openai.com/v1"))

    def create(**kwargs):
        raise openai.APIStatusError("rate limited", response=response, body=None)

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    with pytest.raises(SummarizerAPIError) as excinfo:
        OpenAISummarizer(client=client).extract("text", "", [])
    assert excinfo.value.status_code == 429


def test_openai_key_falls_back_to_llm_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("LLM_API_KEY", "sk-test-fallback")
    summarizer = OpenAISummarizer(
        provider="together", base_url=OPENAI_COMPATIBLE_BASE_URLS["together"]
    )
    assert summarizer.name == "together"


def test_build_summarizer_selects_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    ollama = build_summarizer(SummarizerConfig(provider="ollama"))
    assert isinstance(ollama, OllamaSummarizer)
    assert ollama.model == "llama3.2"

    router = build_summarizer(SummarizerConfig(provider="OpenRouter", model="m"))
    assert isinstance(router, OpenAISummarizer)
    assert router.name == "openrouter"

    with pytest.raises(SummarizerError, match="unknown summarizer provider"):
        build_summarizer(SummarizerConfig(provider="carrier-pigeon"))


def test_summarizer_from_config_disabled_cases(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    assert summarizer_from_config(AgentHistoryConfig()) is None
    assert (
        summarizer_from_config(
            AgentHistoryConfig(summarizer_provider="ollama", extraction_enabled=False)
        )
        is None
    )
    assert summarizer_from_config(AgentHistoryConfig(summarizer_provider="anthropic")) is None

    built = summarizer_from_config(
        AgentHistoryConfig(summarizer_provider="anthropic", summarizer_api_key="sk-ant-test")
    )
    assert isinstance(built, AnthropicSummarizer)
