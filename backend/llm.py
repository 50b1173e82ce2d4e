"""
Model gateways: send role-tagged messages to a provider, get one reply string.

Every gateway raises ProviderError (tagged with its provider name) on failure,
so the caller can decide whether to try the next provider.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Sequence

import anthropic
import httpx

import config
from errors import ProviderError
from models import Message

logger = logging.getLogger(__name__)

PLACEHOLDER_KEYS = {"", "your-api-key-here"}


class ModelGateway(Protocol):
    name: str

    async def complete(self, messages: Sequence[Message]) -> str:
        ...


def _split_system(messages: Sequence[Message]) -> tuple[str, list[Message]]:
    system = "\n\n".join(m.content for m in messages if m.role == "system")
    return system, [m for m in messages if m.role != "system"]


class AnthropicGateway:
    name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = config.ANTHROPIC_MODEL,
        max_tokens: int = config.MAX_TOKENS,
        temperature: float = config.TEMPERATURE,
        timeout_s: float = config.PROVIDER_TIMEOUT_S,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        # The SDK retries twice by default; one attempt per provider, then fail over
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout_s, max_retries=0)

    async def complete(self, messages: Sequence[Message]) -> str:
        system, chat = _split_system(messages)
        # The Messages API wants the conversation to open with a user turn
        while chat and chat[0].role != "user":
            chat = chat[1:]
        if not chat:
            raise ProviderError(self.name, "No user message to send")

        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": m.role, "content": m.content} for m in chat],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise ProviderError(self.name, str(e)) from e

        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        if not text:
            raise ProviderError(self.name, "No response from AI")
        logger.debug("Anthropic response: %s", text)
        return text


class OpenAIGateway:
    """OpenAI-compatible /chat/completions endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = config.OPENAI_MODEL,
        base_url: str = config.OPENAI_BASE_URL,
        max_tokens: int = config.MAX_TOKENS,
        temperature: float = config.TEMPERATURE,
        timeout_s: float = config.PROVIDER_TIMEOUT_S,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_s = timeout_s
        self.client = client

    async def complete(self, messages: Sequence[Message]) -> str:
        url = f"{self.base_url.rstrip('/')}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        data = await _post_json(self.name, self.client, url, payload, headers, self.timeout_s)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, f"Unexpected response shape: {e}") from e
        if not content:
            raise ProviderError(self.name, "No response from AI")
        return content


class GeminiGateway:
    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = config.GEMINI_MODEL,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        max_tokens: int = config.MAX_TOKENS,
        temperature: float = config.TEMPERATURE,
        timeout_s: float = config.PROVIDER_TIMEOUT_S,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_s = timeout_s
        self.client = client

    async def complete(self, messages: Sequence[Message]) -> str:
        system, chat = _split_system(messages)
        url = f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent"
        payload = {
            "contents": [
                {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
                for m in chat
            ],
            "generationConfig": {"temperature": self.temperature, "maxOutputTokens": self.max_tokens},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}

        headers = {"x-goog-api-key": self.api_key or ""}
        data = await _post_json(self.name, self.client, url, payload, headers, self.timeout_s)
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, f"Unexpected response shape: {e}") from e
        text = "".join(part.get("text", "") for part in parts)
        if not text:
            raise ProviderError(self.name, "No response from Gemini")
        return text


async def _post_json(provider: str, client: Optional[httpx.AsyncClient], url: str, payload: dict,
                     headers: dict, timeout_s: float) -> dict:
    try:
        if client is not None:
            response = await client.post(url, json=payload, headers=headers, timeout=timeout_s)
        else:
            async with httpx.AsyncClient() as owned:
                response = await owned.post(url, json=payload, headers=headers, timeout=timeout_s)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPError as e:
        raise ProviderError(provider, str(e)) from e
    except ValueError as e:
        raise ProviderError(provider, f"Invalid JSON in response: {e}") from e


def _has_key(key: Optional[str]) -> bool:
    return key is not None and key.strip() not in PLACEHOLDER_KEYS


def build_gateways(providers: Sequence[str] = config.PROVIDERS) -> list[ModelGateway]:
    """Gateways for the configured providers that have an API key, in order."""
    factories = {
        "anthropic": (config.ANTHROPIC_API_KEY, AnthropicGateway),
        "openai": (config.OPENAI_API_KEY, OpenAIGateway),
        "gemini": (config.GEMINI_API_KEY, GeminiGateway),
    }
    gateways = []
    for name in providers:
        if name not in factories:
            logger.warning("Unknown provider %r in PROVIDERS", name)
            continue
        api_key, factory = factories[name]
        if _has_key(api_key):
            gateways.append(factory(api_key))
        else:
            logger.info("Skipping provider %s: no API key configured", name)
    return gateways


class FallbackGateway:
    """
    Asks each gateway in turn; the first reply wins. Re-raises the last failure.

    Each gateway gets at most ``timeout_s``; a gateway that does not answer in
    time counts as a failure tagged with that gateway's name.
    """

    name = "fallback"

    def __init__(self, gateways: Sequence[ModelGateway], timeout_s: float = config.PROVIDER_TIMEOUT_S):
        self.gateways = list(gateways)
        self.timeout_s = timeout_s

    @property
    def total_timeout_s(self) -> float:
        """Upper bound for one complete() call across every gateway."""
        return self.timeout_s * max(len(self.gateways), 1)

    async def complete(self, messages: Sequence[Message]) -> str:
        if not self.gateways:
            raise ProviderError("none", "API key not configured")
        last_error: Optional[ProviderError] = None
        for gateway in self.gateways:
            try:
                return await asyncio.wait_for(gateway.complete(messages), timeout=self.timeout_s)
            except asyncio.TimeoutError:
                last_error = ProviderError(gateway.name, f"No reply within {self.timeout_s:g}s")
            except ProviderError as e:
                last_error = e
            logger.warning("Provider %s failed: %s", last_error.provider, last_error.detail)
        raise last_error
