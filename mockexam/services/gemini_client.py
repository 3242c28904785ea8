# mockexam/services/gemini_client.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from mockexam.core.config import settings
from mockexam.core.errors import ProviderError, ProviderRateLimited

logger = logging.getLogger(__name__)


class GeminiClient:
    """
    Thin client for the Generative Language ``generateContent`` endpoint.

    One call per ``generate``; retries and fallback belong to the caller.
    The credential travels as the ``key`` query parameter.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.generation_config: Dict[str, Any] = {
            "temperature": settings.GEMINI_TEMPERATURE if temperature is None else temperature,
            "topP": settings.GEMINI_TOP_P if top_p is None else top_p,
            "maxOutputTokens": max_output_tokens or settings.GEMINI_MAX_OUTPUT_TOKENS,
        }
        self._client = httpx.Client(
            timeout=timeout or settings.GEMINI_TIMEOUT_SECONDS,
            transport=transport,
        )

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/{model}:generateContent"

    def generate(self, prompt: str, *, model: str, api_key: str) -> str:
        payload: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": self.generation_config,
        }
        try:
            r = self._client.post(self.endpoint(model), params={"key": api_key}, json=payload)
        except httpx.TimeoutException as timeout_err:
            raise ProviderError(f"Gemini request timed out ({model})") from timeout_err
        except httpx.RequestError as net_err:
            raise ProviderError(f"Gemini transport error ({model}): {net_err}") from net_err

        if r.status_code == 429:
            raise ProviderRateLimited(f"Gemini rate limited ({model})")
        if r.is_error:
            raise ProviderError(f"Gemini API error ({model}): {r.status_code} - {r.text[:500]}")

        try:
            data = r.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError):
            text = None
        if not text:
            raise ProviderError(f"No response text from Gemini using model {model}")
        return text

    def close(self) -> None:
        self._client.close()
