"""
MultiProviderManager - fan one day's input out to every enabled oracle.

A failure on one adapter never blocks or fails the others; partial results
are a valid outcome.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from . import create_provider
from .base import DEFAULT_TIMEOUT_SECONDS, OracleProvider
from ..agents.schemas import AgentInput, ModelConfig, TradingDecision
from ..config import ProviderSettings

logger = logging.getLogger("arena_trader.llm.manager")


class MultiProviderManager:
    """One OracleProvider per enabled strategy signature."""

    def __init__(
        self,
        models: List[ModelConfig],
        settings: Optional[ProviderSettings] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        providers: Optional[Dict[str, OracleProvider]] = None,
    ):
        self.timeout = timeout
        self.providers: Dict[str, OracleProvider] = dict(providers or {})

        for model in models:
            if not model.enabled or model.signature in self.providers:
                continue
            try:
                self.providers[model.signature] = create_provider(model, settings, timeout=timeout)
                logger.info(f"Initialized {OracleProvider.describe(model)}")
            except Exception as e:
                logger.error(f"Failed to initialize {model.name}: {e}")

    def get_provider(self, signature: str) -> Optional[OracleProvider]:
        return self.providers.get(signature)

    def get_all_providers(self) -> Dict[str, OracleProvider]:
        return dict(self.providers)

    async def check_availability(self) -> Dict[str, bool]:
        """Probe every adapter concurrently; a probe that raises counts as unavailable."""
        signatures = list(self.providers)
        results = await asyncio.gather(
            *(self.providers[s].is_available() for s in signatures),
            return_exceptions=True,
        )

        availability = {}
        for signature, result in zip(signatures, results):
            if isinstance(result, BaseException):
                logger.warning(f"Availability check failed for {signature}: {result}")
                availability[signature] = False
            else:
                availability[signature] = bool(result)
        return availability

    async def _generate_one(
        self,
        signature: str,
        provider: OracleProvider,
        system_prompt: str,
        agent_input: AgentInput,
        timeout: float,
    ) -> TradingDecision:
        logger.info(f"Generating decision for {signature}...")
        decision = await asyncio.wait_for(
            provider.generate_decision(system_prompt, agent_input, timeout=timeout),
            timeout=timeout,
        )
        logger.info(f"{signature} completed with {len(decision.orders)} orders")
        return decision

    async def generate_all_decisions(
        self,
        system_prompt: str,
        agent_input: AgentInput,
        timeout: Optional[float] = None,
    ) -> Dict[str, TradingDecision]:
        """
        Ask every adapter for a decision concurrently.

        Returns:
            signature -> decision for the adapters that succeeded
        """
        timeout = timeout or self.timeout
        signatures = list(self.providers)
        results = await asyncio.gather(
            *(
                self._generate_one(s, self.providers[s], system_prompt, agent_input, timeout)
                for s in signatures
            ),
            return_exceptions=True,
        )

        decisions: Dict[str, TradingDecision] = {}
        for signature, result in zip(signatures, results):
            if isinstance(result, asyncio.TimeoutError):
                logger.error(f"{signature} failed: timed out after {timeout}s")
            elif isinstance(result, Exception):
                logger.error(f"{signature} failed: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                decisions[signature] = result
        return decisions
