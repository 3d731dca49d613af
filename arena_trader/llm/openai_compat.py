"""
OpenAI-compatible oracles: OpenAI itself and LM Studio's local server.
"""
import logging
from typing import List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from .base import (
    AVAILABILITY_TIMEOUT_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    OracleProvider,
    ProviderConfigError,
    ProviderError,
    ProviderTimeout,
)
from ..agents.schemas import LLMResponse, TokenUsage

logger = logging.getLogger("arena_trader.llm.openai_compat")

LMSTUDIO_PLACEHOLDER_KEY = "lm-studio"


class OpenAIProvider(OracleProvider):
    """Chat-completions oracle over the openai SDK."""

    kind = "openai"
    temperature = 0.7
    max_tokens = 2048

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ProviderConfigError("OpenAI API key not found. Set OPENAI_API_KEY environment variable.")
        super().__init__(model, timeout)
        self.base_url = base_url
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    async def _complete(self, messages: list, timeout: float, json_mode: bool):
        kwargs = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": timeout,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return await self.client.chat.completions.create(**kwargs)

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

        try:
            response = await self._request(messages, timeout or self.timeout, json_mode)
        except openai.APITimeoutError as e:
            raise ProviderTimeout(f"{self.kind} request timed out: {e}") from e
        except openai.APIError as e:
            logger.error(f"Error generating with {self.kind}: {e}")
            raise ProviderError(f"{self.kind} request failed: {e}") from e

        if not response.choices:
            raise ProviderError(f"{self.kind} returned no choices")
        content = response.choices[0].message.content or ""

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )
        return LLMResponse(content=content, usage=usage)

    async def _request(self, messages: list, timeout: float, json_mode: bool):
        return await self._complete(messages, timeout, json_mode)

    async def is_available(self) -> bool:
        try:
            await self.client.models.list(timeout=AVAILABILITY_TIMEOUT_SECONDS)
            return True
        except openai.APIError:
            return False

    async def list_models(self) -> List[str]:
        try:
            page = await self.client.models.list(timeout=AVAILABILITY_TIMEOUT_SECONDS)
        except openai.APIError as e:
            logger.error(f"Error listing {self.kind} models: {e}")
            return []
        return [m.id for m in page.data]


class LMStudioProvider(OpenAIProvider):
    """
    LM Studio local server.

    Not every loaded model accepts response_format; when the server rejects
    the request, it is retried once without it and the tolerant parser
    handles whatever comes back.
    """

    kind = "lmstudio"
    max_tokens = 2000

    def __init__(
        self,
        model: str = "local-model",
        base_url: str = "http://localhost:1234/v1",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            api_key=LMSTUDIO_PLACEHOLDER_KEY,
            model=model,
            base_url=base_url,
            timeout=timeout,
            http_client=http_client,
        )

    async def _request(self, messages: list, timeout: float, json_mode: bool):
        if not json_mode:
            return await self._complete(messages, timeout, json_mode=False)
        try:
            return await self._complete(messages, timeout, json_mode=True)
        except openai.APIStatusError as e:
            logger.info(f"LM Studio rejected response_format ({e.status_code}), retrying without it")
            return await self._complete(messages, timeout, json_mode=False)
