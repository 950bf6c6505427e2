"""
Mock Generation Service

Simulates a language model for development. Replies are canned, latency is
random, and a configurable share of calls fails so the fallback path gets
exercised locally.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
import random

from app.core.exceptions import GenerationServiceError
from app.services.generation.base import BaseGenerationService

logger = logging.getLogger(__name__)


class MockGenerationService(BaseGenerationService):
    """Mock generation service for development."""

    REPLIES = [
        "Claro! Já te explico 😊 Dá uma olhadinha no nosso cardápio, está tudo lá!",
        "Boa pergunta! Vou verificar e já te oriento certinho. Se precisar de mais alguma coisa, é só me chamar 👍",
        "Fico feliz em te ajudar! Nosso cardápio digital tem todos os preços e opções 🍕",
    ]

    def __init__(
        self,
        failure_rate: float = 0.10,
        min_latency: float = 0.2,
        max_latency: float = 0.8,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency

        logger.info(f"MockGenerationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate model latency."""
        await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def generate(self, prompt: str) -> str:
        """Return a canned reply, or fail at the configured rate."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning("Mock generation failed (simulated)")
            raise GenerationServiceError("Simulated generation failure")

        return random.choice(self.REPLIES)

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
