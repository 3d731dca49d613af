"""
Oracle adapter capability shared by every decision backend.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from ..agents.schemas import AgentInput, LLMResponse, ModelConfig, TradingDecision

logger = logging.getLogger("arena_trader.llm.base")

DEFAULT_TIMEOUT_SECONDS = 120.0
AVAILABILITY_TIMEOUT_SECONDS = 5.0


class ProviderError(Exception):
    """Oracle call failed: network error, non-2xx response or bad payload."""
    pass


class ProviderTimeout(ProviderError):
    """Oracle call exceeded its timeout."""
    pass


class ProviderConfigError(ProviderError):
    """Adapter cannot be constructed (missing key, unknown provider)."""
    pass


class DecisionParseError(ProviderError):
    """Oracle answered but no strategy produced a decision envelope."""
    pass


class OracleProvider(ABC):
    """
    One decision-generation backend.

    Subclasses implement generate(); generate_decision() renders the
    protocol message, calls generate() in JSON mode and parses the reply.
    """

    kind: str = "base"

    def __init__(self, model: str, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.model = model
        self.timeout = timeout

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Plain text generation. Raises ProviderError on failure."""
        pass

    async def generate_decision(
        self,
        system_prompt: str,
        agent_input: AgentInput,
        timeout: Optional[float] = None,
    ) -> TradingDecision:
        """
        Ask the oracle for a TradingDecision.

        Raises:
            ProviderError: transport failure, timeout or unparseable output
        """
        from ..agents.decision import create_agent_input_message, parse_decision_text

        response = await self.generate(
            create_agent_input_message(agent_input),
            system_prompt=system_prompt,
            json_mode=True,
            timeout=timeout,
        )
        logger.debug(
            f"{self.kind}:{self.model} tokens={response.usage.total_tokens} chars={len(response.content)}"
        )
        return parse_decision_text(response.content)

    async def is_available(self) -> bool:
        return True

    async def list_models(self) -> List[str]:
        return [self.model]

    @classmethod
    def describe(cls, model_config: ModelConfig) -> str:
        return f"{model_config.provider.value}:{model_config.basemodel} ({model_config.signature})"
