"""LLM client abstraction supporting multiple providers with failover."""

import json
import logging
from typing import AsyncGenerator, Any, Dict, List, Optional, Sequence

import httpx

from .config import Settings, get_settings
from .errors import ConfigurationError, ProviderError
from .prompts import SYSTEM_RESEARCH_ASSISTANT
from .utils import log_structured


class LLMClient:
    """Abstract base for LLM clients."""

    name = "base"
    model: Optional[str] = None

    def chat(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 800
    ) -> AsyncGenerator[str, None]:
        """Stream chat completion responses."""
        raise NotImplementedError

    async def complete(self, prompt: str, max_tokens: int = 800, temperature: float = 0.7) -> str:
        """Run a single-prompt completion and return the full text."""

        messages = [
            {"role": "system", "content": SYSTEM_RESEARCH_ASSISTANT},
            {"role": "user", "content": prompt}
        ]

        response_chunks = []
        async for chunk in self.chat(messages, temperature=temperature, max_tokens=max_tokens):
            response_chunks.append(chunk)

        return "".join(response_chunks)


def _provider_error(provider: str, error: httpx.HTTPStatusError) -> ProviderError:
    status = error.response.status_code
    if status == 401:
        message = f"{provider} API key is invalid or expired"
    elif status == 429:
        message = f"{provider} API rate limit exceeded or insufficient credits"
    else:
        message = f"{provider} API error: {status}"
    return ProviderError(message)


class OpenAICompatibleClient(LLMClient):
    """OpenAI-compatible chat completions client (OpenAI, vLLM, etc.)."""

    name = "openai_compatible"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not base_url:
            raise ConfigurationError(f"{self.name}: base URL is required")

        self.base_url = base_url.rstrip('/')
        self.api_key = api_key or "dummy-key"  # Some endpoints don't need real keys
        self.model = model
        self.timeout = timeout
        self.transport = transport

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 800
    ) -> AsyncGenerator[str, None]:
        """Stream responses from an OpenAI-compatible API."""

        payload = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": True
        }

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream"
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/v1/chat/completions",
                    json=payload,
                    headers=headers
                ) as response:
                    response.raise_for_status()

                    async for line in response.aiter_lines():
                        if not line.startswith("data: "):
                            continue

                        data = line[6:]  # Remove "data: " prefix
                        if data.strip() == "[DONE]":
                            break

                        try:
                            chunk = json.loads(data)
                        except json.JSONDecodeError:
                            continue  # Skip malformed JSON

                        if not isinstance(chunk, dict) or not chunk.get("choices"):
                            continue

                        # Some servers send "delta": null on role/finish chunks
                        choice = chunk["choices"][0] or {}
                        content = (choice.get("delta") or {}).get("content") or ""
                        if content:
                            yield content

            except httpx.HTTPStatusError as e:
                log_structured(f"{self.name}_api_error", {
                    "status_code": e.response.status_code,
                    "error": str(e)
                }, level=logging.WARNING)
                raise _provider_error(self.name, e) from e
            except httpx.HTTPError as e:
                log_structured(f"{self.name}_client_error", {"error": str(e)}, level=logging.WARNING)
                raise ProviderError(f"{self.name} request failed: {e}") from e
            except (AttributeError, TypeError) as e:
                raise ProviderError(f"{self.name} sent an unexpected stream chunk: {e}") from e


class OpenAIClient(OpenAICompatibleClient):
    name = "openai"


class MistralClient(OpenAICompatibleClient):
    """Mistral API client (OpenAI-compatible wire format)."""

    name = "mistral"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not api_key:
            raise ConfigurationError("MISTRAL_API_KEY environment variable is required")
        super().__init__(base_url or "https://api.mistral.ai", api_key, model, timeout, transport)


class AnthropicClient(LLMClient):
    """Anthropic Messages API client."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY environment variable is required")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.transport = transport
        self.base_url = "https://api.anthropic.com"

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 800
    ) -> AsyncGenerator[str, None]:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        payload: Dict[str, Any] = {
            "model": model or self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [m for m in messages if m["role"] != "system"],
        }
        if system:
            payload["system"] = system

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(f"{self.base_url}/v1/messages", json=payload, headers=headers)
                response.raise_for_status()
                text = "".join(
                    block.get("text") or ""
                    for block in response.json().get("content") or []
                    if block.get("type") == "text"
                )
            except httpx.HTTPStatusError as e:
                log_structured("anthropic_api_error", {
                    "status_code": e.response.status_code,
                    "error": str(e)
                }, level=logging.WARNING)
                raise _provider_error(self.name, e) from e
            except httpx.HTTPError as e:
                raise ProviderError(f"anthropic request failed: {e}") from e
            except (ValueError, AttributeError, TypeError) as e:
                # Non-JSON bodies (gateway pages) or an unexpected payload shape
                raise ProviderError(f"anthropic returned an unreadable response: {e}") from e

        if text:
            yield text


class GeminiClient(LLMClient):
    """Google Gemini generateContent client with model-name fallback."""

    name = "gemini"
    fallback_models = ("gemini-1.5-flash", "gemini-1.5-pro", "gemini-pro")

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not api_key:
            raise ConfigurationError("GEMINI_API_KEY environment variable is required")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.transport = transport
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 800
    ) -> AsyncGenerator[str, None]:
        prompt = "\n\n".join(m["content"] for m in messages)
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": max_tokens, "temperature": temperature},
        }

        candidates = [model or self.model] + [m for m in self.fallback_models if m != (model or self.model)]
        last_error: Optional[httpx.HTTPStatusError] = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for model_name in candidates:
                try:
                    response = await client.post(
                        f"{self.base_url}/models/{model_name}:generateContent",
                        params={"key": self.api_key},
                        json=payload,
                    )
                    response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    last_error = e
                    if e.response.status_code == 404:
                        log_structured("gemini_model_unavailable", {"model": model_name}, level=logging.WARNING)
                        continue
                    raise _provider_error(self.name, e) from e
                except httpx.HTTPError as e:
                    raise ProviderError(f"gemini request failed: {e}") from e

                try:
                    candidate = (response.json().get("candidates") or [{}])[0]
                    parts = (candidate.get("content") or {}).get("parts") or []
                    text = "".join(part.get("text") or "" for part in parts)
                except (ValueError, AttributeError, TypeError) as e:
                    raise ProviderError(f"gemini returned an unreadable response: {e}") from e

                if text:
                    yield text
                return

        raise ProviderError(f"gemini: all model variants failed ({last_error})")


class FallbackLLMClient(LLMClient):
    """Tries an ordered list of providers until one succeeds."""

    name = "fallback"

    def __init__(self, providers: Sequence[LLMClient]):
        if not providers:
            raise ConfigurationError("No AI provider configured")
        self.providers = list(providers)
        self.model = self.providers[0].model

    async def complete(self, prompt: str, max_tokens: int = 800, temperature: float = 0.7) -> str:
        errors = []
        for provider in self.providers:
            try:
                return await provider.complete(prompt, max_tokens=max_tokens, temperature=temperature)
            except Exception as e:
                errors.append(f"{provider.name}: {e}")
                log_structured("llm_provider_failed", {
                    "provider": provider.name,
                    "error_type": type(e).__name__,
                    "error": str(e),
                    "remaining": len(self.providers) - len(errors)
                }, level=logging.WARNING)

        raise ProviderError("All AI providers failed: " + "; ".join(errors))

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 800
    ) -> AsyncGenerator[str, None]:
        errors = []
        for provider in self.providers:
            chunks = []
            try:
                async for chunk in provider.chat(messages, temperature=temperature, max_tokens=max_tokens):
                    chunks.append(chunk)
            except Exception as e:
                errors.append(f"{provider.name}: {e}")
                continue
            for chunk in chunks:
                yield chunk
            return

        raise ProviderError("All AI providers failed: " + "; ".join(errors))


def get_llm_client(settings: Optional[Settings] = None) -> LLMClient:
    """Build the provider chain from configured API keys."""

    settings = settings or get_settings()
    providers: List[LLMClient] = []

    if settings.openai_api_key:
        providers.append(OpenAIClient(settings.openai_base_url, settings.openai_api_key, settings.openai_model))
    if settings.anthropic_api_key:
        providers.append(AnthropicClient(settings.anthropic_api_key, settings.anthropic_model))
    if settings.gemini_api_key:
        providers.append(GeminiClient(settings.gemini_api_key, settings.gemini_model))
    if settings.mistral_api_key:
        providers.append(MistralClient(settings.mistral_api_key, settings.mistral_model, settings.mistral_base_url))
    if settings.vllm_base_url:
        providers.append(OpenAICompatibleClient(settings.vllm_base_url, settings.vllm_api_key, settings.vllm_model))

    if not providers:
        raise ConfigurationError(
            "At least one AI provider must be configured "
            "(OPENAI_API_KEY, ANTHROPIC_API_KEY, GEMINI_API_KEY, MISTRAL_API_KEY or VLLM_BASE_URL)"
        )

    log_structured("llm_providers_configured", {"providers": [p.name for p in providers]})

    if len(providers) == 1:
        return providers[0]
    return FallbackLLMClient(providers)


async def check_llm_connectivity(client: LLMClient) -> Dict[str, Any]:
    """Test LLM client connectivity."""

    try:
        response_text = await client.complete(
            "Respond with exactly 'TEST_OK' if you can process this message.",
            max_tokens=10
        )

        return {
            "status": "healthy",
            "provider": client.name,
            "model": client.model,
            "test_response": response_text[:50]
        }

    except ProviderError as e:
        return {
            "status": "unhealthy",
            "provider": client.name,
            "error": str(e)
        }
