from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from http_analytics.config import AIProviderConfig


logger = structlog.get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class GenerationError(RuntimeError):
    """The text-generation service failed or returned an unusable body."""


class TextGenerator(Protocol):
    async def generate(self, prompt: str, *, max_tokens: int = 1000) -> str: ...

    async def aclose(self) -> None: ...


class _HttpGenerator:
    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout_seconds: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key or ""
        self.timeout_seconds = float(timeout_seconds)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()

    def _redact(self, text: str) -> str:
        if self.api_key:
            return text.replace(self.api_key, "<redacted>")
        return text

    async def _post_json(self, url: str, *, headers: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self.client.post(url, headers=headers, json=payload, timeout=self.timeout_seconds)
        except httpx.HTTPError as e:
            raise GenerationError(self._redact(f"{type(e).__name__}: {e}")) from e

        if resp.status_code != 200:
            raise GenerationError(f"HTTP {resp.status_code}: {self._redact(resp.text[:500])}")

        try:
            data = resp.json()
        except ValueError as e:
            raise GenerationError("Response body is not JSON") from e
        if not isinstance(data, dict):
            raise GenerationError("Unexpected response (not a JSON object)")
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class AnthropicGenerator(_HttpGenerator):
    """Messages API client."""

    async def generate(self, prompt: str, *, max_tokens: int = 1000) -> str:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": int(max_tokens),
            "messages": [{"role": "user", "content": prompt}],
        }
        data = await self._post_json(f"{self.base_url}/v1/messages", headers=headers, payload=payload)

        content = data.get("content")
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "text":
                    return str(block.get("text") or "")
        # A reply without a text block is treated as empty, not as a failure.
        return ""


class OpenAICompatibleGenerator(_HttpGenerator):
    """Chat completions client for OpenAI, Groq, Ollama and Hugging Face."""

    async def generate(self, prompt: str, *, max_tokens: int = 1000) -> str:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        payload = {
            "model": self.model,
            "max_tokens": int(max_tokens),
            "messages": [{"role": "user", "content": prompt}],
        }
        data = await self._post_json(f"{self.base_url}/chat/completions", headers=headers, payload=payload)

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise GenerationError("Response has no choices")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise GenerationError("Response choice has no message")
        return str(message.get("content") or "")


class GeminiGenerator(_HttpGenerator):
    """Google Generative Language ``generateContent`` client."""

    async def generate(self, prompt: str, *, max_tokens: int = 1000) -> str:
        headers = {"x-goog-api-key": self.api_key, "content-type": "application/json"}
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": int(max_tokens)},
        }
        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent"
        data = await self._post_json(url, headers=headers, payload=payload)

        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise GenerationError("Response has no candidates")
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return ""
        return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))


class CohereGenerator(_HttpGenerator):
    """Cohere v2 chat client."""

    async def generate(self, prompt: str, *, max_tokens: int = 1000) -> str:
        headers = {"authorization": f"Bearer {self.api_key}", "content-type": "application/json"}
        payload = {
            "model": self.model,
            "max_tokens": int(max_tokens),
            "messages": [{"role": "user", "content": prompt}],
        }
        data = await self._post_json(f"{self.base_url}/v2/chat", headers=headers, payload=payload)

        message = data.get("message")
        if not isinstance(message, dict):
            raise GenerationError("Response has no message")
        content = message.get("content")
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "text":
                    return str(block.get("text") or "")
        return ""


_GENERATORS: dict[str, type[_HttpGenerator]] = {
    "gemini": GeminiGenerator,
    "anthropic": AnthropicGenerator,
    "cohere": CohereGenerator,
}


def build_generator(config: AIProviderConfig, *, client: httpx.AsyncClient | None = None) -> TextGenerator | None:
    """Create the generator for the configured provider, or None when disabled.

    An unknown provider name falls back to Gemini. OpenAI, Groq, Ollama and
    Hugging Face all speak the OpenAI chat completions dialect.
    """
    provider = config.resolved_provider()
    if provider != (config.provider or "").strip().lower():
        logger.warning("Unknown AI provider, falling back", requested=config.provider, provider=provider)

    if not config.is_enabled():
        logger.warning("AI provider disabled", provider=provider, reason="missing api key")
        return None

    kwargs: dict[str, Any] = {
        "base_url": config.resolved_base_url(),
        "model": config.resolved_model(),
        "api_key": config.api_key,
        "timeout_seconds": config.timeout_seconds,
        "client": client,
    }
    generator: TextGenerator = _GENERATORS.get(provider, OpenAICompatibleGenerator)(**kwargs)

    logger.info("AI provider configured", provider=provider, model=kwargs["model"])
    return generator
