"""
LLM collaborator adapters.

The pipeline only needs one call shape:

    text = await llm.complete(prompt, json_mode=False, image=None)

Which provider answers (a cloud API key or a local HTTP endpoint) is chosen
by configuration through ``create_llm_client``; the pipeline never looks.
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from scholar_harvest.core.exceptions import (
    APIError,
    ConfigurationError,
    NetworkFailure,
    ParseError,
    RateLimited,
    is_retryable_error,
)
from scholar_harvest.infrastructure.sources.base_client import BaseAPIClient

if TYPE_CHECKING:
    from scholar_harvest.core.config import HarvestSettings

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

MAX_ATTEMPTS = 3


class LLMClient(Protocol):
    """Text completion, optionally JSON-constrained, optionally with one image."""

    async def complete(
        self,
        prompt: str,
        *,
        json_mode: bool = False,
        image: bytes | None = None,
        image_mime_type: str = "image/png",
    ) -> str: ...

    async def close(self) -> None: ...


class _HTTPLLMClient(BaseAPIClient):
    """Shared POST + retry plumbing for the HTTP-based adapters."""

    async def _post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(MAX_ATTEMPTS),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(is_retryable_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._post_once(url, payload)
        raise NetworkFailure(f"{self._service_name}: retry loop exited without a response")

    async def _post_once(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        full_url = self._build_url(url)
        await self._rate_limit()
        try:
            response = await self._client.post(full_url, json=payload)
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"{self._service_name}: request timed out", url=full_url) from e
        except httpx.RequestError as e:
            raise NetworkFailure(f"{self._service_name}: request failed: {e}", url=full_url) from e

        if response.status_code == 429:
            raise RateLimited(f"{self._service_name}: rate limited")
        if response.status_code >= 500:
            raise APIError(f"{self._service_name}: HTTP {response.status_code}", retryable=True)
        if not response.is_success:
            raise APIError(f"{self._service_name}: HTTP {response.status_code}", retryable=False)
        try:
            return response.json()
        except ValueError as e:
            raise ParseError("response is not JSON", source=self._service_name) from e


class GeminiClient(_HTTPLLMClient):
    """Google Generative Language REST API (``models/{model}:generateContent``)."""

    _service_name = "Gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        *,
        base_url: str = GEMINI_API_BASE,
        timeout: float = 60.0,
        **kwargs: Any,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Gemini API key is required")
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
            **kwargs,
        )
        self._model = model

    async def complete(
        self,
        prompt: str,
        *,
        json_mode: bool = False,
        image: bytes | None = None,
        image_mime_type: str = "image/png",
    ) -> str:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        if image is not None:
            parts.append(
                {
                    "inline_data": {
                        "mime_type": image_mime_type,
                        "data": base64.b64encode(image).decode("ascii"),
                    }
                }
            )
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"temperature": 0.2},
        }
        if json_mode:
            payload["generationConfig"]["responseMimeType"] = "application/json"

        data = await self._post_json(f"/models/{self._model}:generateContent", payload)
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        content_parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in content_parts).strip()


class OllamaClient(_HTTPLLMClient):
    """Local Ollama server (``POST /api/generate``)."""

    _service_name = "Ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1",
        *,
        timeout: float = 60.0,
        **kwargs: Any,
    ) -> None:
        if not base_url:
            raise ConfigurationError("Ollama base URL is required")
        super().__init__(base_url=base_url, timeout=timeout, **kwargs)
        self._model = model

    async def complete(
        self,
        prompt: str,
        *,
        json_mode: bool = False,
        image: bytes | None = None,
        image_mime_type: str = "image/png",
    ) -> str:
        payload: dict[str, Any] = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.2},
        }
        if json_mode:
            payload["format"] = "json"
        if image is not None:
            payload["images"] = [base64.b64encode(image).decode("ascii")]

        data = await self._post_json("/api/generate", payload)
        return (data.get("response") or "").strip()


def create_llm_client(settings: HarvestSettings) -> LLMClient | None:
    """
    Build the configured LLM adapter.

    Returns None when ``llm_provider`` is ``none``; the pipeline then skips
    every LLM-assisted step.

    Raises:
        ConfigurationError: the selected provider lacks a key or endpoint.
    """
    provider = settings.llm_provider
    if provider == "none":
        return None
    if provider == "gemini":
        if not settings.gemini_api_key:
            raise ConfigurationError("llm_provider is 'gemini' but gemini_api_key is not set")
        return GeminiClient(settings.gemini_api_key, settings.gemini_model, timeout=settings.llm_timeout)
    if provider == "ollama":
        if not settings.ollama_base_url:
            raise ConfigurationError("llm_provider is 'ollama' but ollama_base_url is not set")
        return OllamaClient(settings.ollama_base_url, settings.ollama_model, timeout=settings.llm_timeout)
    raise ConfigurationError(f"Unknown llm_provider: {provider!r}")
