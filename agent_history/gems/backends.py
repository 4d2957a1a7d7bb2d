from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Any

import anthropic
import httpx
import openai

from .prompt import build_extraction_prompt, parse_extraction_response
from .summarizer import (
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_OLLAMA_HOST,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OPENAI_MODEL,
    SummarizerAPIError,
    SummarizerError,
)
from .types import ExtractionResult, Gem

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_S = 120.0
MAX_RESPONSE_TOKENS = 4096

OPENAI_COMPATIBLE_BASE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "together": "https://api.together.xyz/v1",
    "groq": "https://api.groq.com/openai/v1",
    "openrouter": "https://openrouter.ai/api/v1",
}


class OllamaSummarizer:
    name = "ollama"

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        host: str = DEFAULT_OLLAMA_HOST,
        *,
        client: httpx.Client | None = None,
    ):
        self.model = model
        self.host = host.rstrip("/")
        self._client = client or httpx.Client(timeout=REQUEST_TIMEOUT_S)

    def extract(
        self, session_text: str, diff: str, existing_gems: Sequence[Gem]
    ) -> ExtractionResult:
        prompt = build_extraction_prompt(session_text, diff, existing_gems)
        payload = {"model": self.model, "prompt": prompt, "stream": False, "format": "json"}
        logger.debug(
            "Ollama extraction request", extra={"model": self.model, "chars": len(prompt)}
        )
        try:
            response = self._client.post(f"{self.host}/api/generate", json=payload)
        except httpx.HTTPError as exc:
            raise SummarizerError(f"failed to call Ollama API: {exc}") from exc
        if response.status_code != 200:
            raise SummarizerAPIError(response.status_code, response.text)
        try:
            body = response.json()
        except ValueError as exc:
            raise SummarizerError("failed to parse Ollama response") from exc
        return parse_extraction_response(
            str(body.get("response") or ""), client=self.name, model=self.model
        )


def check_ollama_available(
    host: str = DEFAULT_OLLAMA_HOST,
    model: str = DEFAULT_OLLAMA_MODEL,
    *,
    client: httpx.Client | None = None,
) -> None:
    """Raise SummarizerError unless the server is up and has ``model`` pulled."""

    host = (host or DEFAULT_OLLAMA_HOST).rstrip("/")
    http = client or httpx.Client(timeout=5.0)
    try:
        response = http.get(f"{host}/api/tags")
    except httpx.HTTPError as exc:
        raise SummarizerError(f"Ollama is not running at {host}: {exc}") from exc
    if response.status_code != 200:
        raise SummarizerAPIError(response.status_code, "Ollama returned an error status")
    try:
        models = response.json().get("models") or []
    except ValueError as exc:
        raise SummarizerError("failed to parse models") from exc
    available = [str(item.get("name")) for item in models if isinstance(item, dict)]
    if model in available or f"{model}:latest" in available:
        return
    raise SummarizerError(f"model {model!r} not found. Available models: {available}")


class AnthropicSummarizer:
    name = "anthropic"

    def __init__(
        self,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        api_key: str | None = None,
        *,
        client: Any | None = None,
    ):
        self.model = model
        if client is None:
            api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
            if not api_key:
                raise SummarizerError("Anthropic API key is required")
            client = anthropic.Anthropic(api_key=api_key, timeout=REQUEST_TIMEOUT_S)
        self.client = client

    def extract(
        self, session_text: str, diff: str, existing_gems: Sequence[Gem]
    ) -> ExtractionResult:
        prompt = build_extraction_prompt(session_text, diff, existing_gems)
        logger.debug(
            "Anthropic extraction request", extra={"model": self.model, "chars": len(prompt)}
        )
        try:
            resp = self.client.messages.create(
                model=self.model,
                max_tokens=MAX_RESPONSE_TOKENS,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as exc:
            raise SummarizerAPIError(exc.status_code, exc.message) from exc
        except anthropic.APIError as exc:
            raise SummarizerError(f"failed to call Anthropic API: {exc}") from exc
        text = "".join(
            getattr(block, "text", "") for block in resp.content if block.type == "text"
        )
        if not text:
            raise SummarizerError("empty response from Anthropic")
        return parse_extraction_response(text, client=self.name, model=self.model)


class OpenAISummarizer:
    def __init__(
        self,
        model: str = DEFAULT_OPENAI_MODEL,
        api_key: str | None = None,
        *,
        base_url: str = OPENAI_COMPATIBLE_BASE_URLS["openai"],
        provider: str = "openai",
        client: Any | None = None,
    ):
        self.name = provider
        self.model = model
        if client is None:
            api_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("LLM_API_KEY")
            if not api_key:
                raise SummarizerError(
                    "API key required (set summarizer_api_key, OPENAI_API_KEY, or LLM_API_KEY)"
                )
            client = openai.OpenAI(api_key=api_key, base_url=base_url, timeout=REQUEST_TIMEOUT_S)
        self.client = client

    def extract(
        self, session_text: str, diff: str, existing_gems: Sequence[Gem]
    ) -> ExtractionResult:
        prompt = build_extraction_prompt(session_text, diff, existing_gems)
        logger.debug(
            "OpenAI-compatible extraction request",
            extra={"provider": self.name, "model": self.model, "chars": len(prompt)},
        )
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=MAX_RESPONSE_TOKENS,
                temperature=0.1,
            )
        except openai.APIStatusError as exc:
            raise SummarizerAPIError(exc.status_code, exc.message) from exc
        except openai.APIError as exc:
            raise SummarizerError(f"failed to call {self.name} API: {exc}") from exc
        if not resp.choices:
            raise SummarizerError(f"no choices in {self.name} response")
        text = resp.choices[0].message.content or ""
        return parse_extraction_response(text, client=self.name, model=self.model)
