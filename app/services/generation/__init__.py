"""
Generation Service Factory

Returns Mock or Gemini generation service based on ENV_MODE.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.generation.base import BaseGenerationService
from app.services.generation.mock import MockGenerationService
from app.services.generation.gemini import GeminiGenerationService

logger = logging.getLogger(__name__)


@lru_cache()
def get_generation_service() -> BaseGenerationService:
    """Get the configured generation service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Generation Service: Using MockGenerationService (development mode)")
        return MockGenerationService(failure_rate=settings.mock_generation_failure_rate)
    else:
        logger.info(f"Generation Service: Using GeminiGenerationService ({settings.env_mode.value} mode)")
        return GeminiGenerationService()


def reset_generation_service() -> None:
    """Clear the cached service instance."""
    get_generation_service.cache_clear()


__all__ = [
    "get_generation_service",
    "reset_generation_service",
    "BaseGenerationService",
    "MockGenerationService",
    "GeminiGenerationService",
]
