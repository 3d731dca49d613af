"""
Oracle adapters, one per backend, selected by ProviderKind.
"""
from typing import Optional

from .base import (
    OracleProvider,
    ProviderError,
    ProviderTimeout,
    ProviderConfigError,
    DecisionParseError,
    DEFAULT_TIMEOUT_SECONDS,
)
from .gemini import GeminiProvider
from .ollama import OllamaProvider
from .openai_compat import OpenAIProvider, LMStudioProvider
from ..agents.schemas import ModelConfig, ProviderKind
from ..config import ProviderSettings


def create_provider(
    model_config: ModelConfig,
    settings: Optional[ProviderSettings] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> OracleProvider:
    """
    Build the adapter for one strategy.

    Raises:
        ProviderConfigError: unknown provider kind or missing credentials
    """
    settings = settings or ProviderSettings()
    kind = ProviderKind(model_config.provider)

    if kind == ProviderKind.GEMINI:
        return GeminiProvider(
            api_key=settings.gemini_api_key,
            model=model_config.basemodel,
            base_url=settings.gemini_base_url,
            timeout=timeout,
        )
    if kind == ProviderKind.OLLAMA:
        return OllamaProvider(
            model=model_config.basemodel,
            base_url=settings.ollama_base_url,
            timeout=timeout,
        )
    if kind == ProviderKind.LMSTUDIO:
        return LMStudioProvider(
            model=model_config.basemodel,
            base_url=settings.lmstudio_base_url,
            timeout=timeout,
        )
    if kind == ProviderKind.OPENAI:
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            model=model_config.basemodel,
            timeout=timeout,
        )
    raise ProviderConfigError(f"Unsupported provider: {model_config.provider}")


__all__ = [
    "OracleProvider",
    "ProviderError",
    "ProviderTimeout",
    "ProviderConfigError",
    "DecisionParseError",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "LMStudioProvider",
    "create_provider",
]
