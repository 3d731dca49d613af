"""
Gemini oracle over the Generative Language REST API.
"""
import logging
from typing import List, Optional

import httpx

from .base import (
    AVAILABILITY_TIMEOUT_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    OracleProvider,
    ProviderConfigError,
    ProviderError,
    ProviderTimeout,
)
from ..agents.schemas import LLMResponse, TokenUsage

logger = logging.getLogger("arena_trader.llm.gemini")

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topP": 0.95,
    "topK": 40,
    "maxOutputTokens": 8192,
}


class GeminiProvider(OracleProvider):
    kind = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash-exp",
        base_url: str = GEMINI_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ProviderConfigError("Gemini API key not found. Set GEMINI_API_KEY environment variable.")
        super().__init__(model, timeout)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        generation_config = dict(GENERATION_CONFIG)
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            async with self._client(timeout or self.timeout) as client:
                response = await client.post(url, json=payload, params={"key": self.api_key})
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise ProviderTimeout(f"Gemini request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Gemini request failed: {e}")
            raise ProviderError(f"Gemini request failed: {e}") from e

        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError(f"Gemini returned no candidates: {data.get('promptFeedback')}")
        parts = candidates[0].get("content", {}).get("parts", [])
        content = "".join(part.get("text", "") for part in parts)

        meta = data.get("usageMetadata", {})
        usage = TokenUsage(
            prompt_tokens=meta.get("promptTokenCount", 0),
            completion_tokens=meta.get("candidatesTokenCount", 0),
            total_tokens=meta.get("totalTokenCount", 0),
        )
        return LLMResponse(content=content, usage=usage)

    async def is_available(self) -> bool:
        try:
            async with self._client(AVAILABILITY_TIMEOUT_SECONDS) as client:
                response = await client.get(
                    f"{self.base_url}/models/{self.model}", params={"key": self.api_key}
                )
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def list_models(self) -> List[str]:
        try:
            async with self._client(AVAILABILITY_TIMEOUT_SECONDS) as client:
                response = await client.get(f"{self.base_url}/models", params={"key": self.api_key})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Error listing Gemini models: {e}")
            return []
        return [m.get("name", "").removeprefix("models/") for m in data.get("models", [])]
