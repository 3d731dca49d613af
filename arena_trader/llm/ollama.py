"""
Ollama oracle (local models) over /api/chat.
"""
import logging
from typing import List, Optional

import httpx

from .base import (
    AVAILABILITY_TIMEOUT_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    OracleProvider,
    ProviderError,
    ProviderTimeout,
)
from ..agents.schemas import LLMResponse, TokenUsage

logger = logging.getLogger("arena_trader.llm.ollama")


class OllamaProvider(OracleProvider):
    kind = "ollama"

    def __init__(
        self,
        model: str = "llama3.1:70b",
        base_url: str = "http://localhost:11434",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model, timeout)
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self._transport)

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": 0.7, "top_p": 0.95, "top_k": 40},
        }
        if json_mode:
            payload["format"] = "json"

        try:
            async with self._client(timeout or self.timeout) as client:
                response = await client.post("/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise ProviderTimeout(f"Ollama request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Error generating with Ollama: {e}")
            raise ProviderError(f"Ollama request failed: {e}") from e

        content = data.get("message", {}).get("content")
        if content is None:
            raise ProviderError("Ollama response missing message content")

        prompt_tokens = data.get("prompt_eval_count", 0) or 0
        completion_tokens = data.get("eval_count", 0) or 0
        return LLMResponse(
            content=content,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )

    async def is_available(self) -> bool:
        """Check if the Ollama server is running."""
        try:
            async with self._client(AVAILABILITY_TIMEOUT_SECONDS) as client:
                response = await client.get("/api/tags")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def list_models(self) -> List[str]:
        try:
            async with self._client(AVAILABILITY_TIMEOUT_SECONDS) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Error listing Ollama models: {e}")
            return []
        return [m["name"] for m in data.get("models", []) if "name" in m]
