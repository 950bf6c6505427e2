"""
Text Generation Service Abstract Base Class

Defines the interface the responder uses to ask a language model for a
customer reply. Both MockGenerationService and GeminiGenerationService
implement it.

Contract:
    - generate() returns non-empty reply text
    - Every failure (network, quota, blocked or empty response) is raised as
      GenerationServiceError so the caller can fall back to canned text

Author: Khalil Bannouri
Version: 4.0.0
"""

from abc import ABC, abstractmethod


class BaseGenerationService(ABC):
    """Abstract base class for text generation services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g. "mock", "gemini")."""
        pass

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Generate a reply for a fully built prompt.

        Args:
            prompt: Persona, restaurant context and customer message

        Returns:
            str: Reply text, sent to the customer verbatim

        Raises:
            GenerationServiceError: If no usable reply could be produced
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
