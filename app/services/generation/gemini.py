"""
Google Gemini Generation Service

Production implementation using the Gemini API through the google-genai SDK.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - GEMINI_API_KEY must be set in environment
    - The Generative Language API must be enabled for the key's project

Run `python scripts/list_models.py` to see which models the key can use.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from typing import Optional

from google import genai
from google.genai import errors

from app.core.config import get_settings
from app.core.exceptions import GenerationServiceError
from app.services.generation.base import BaseGenerationService

logger = logging.getLogger(__name__)


class GeminiGenerationService(BaseGenerationService):
    """
    Production Gemini generation service.

    Example:
        >>> service = GeminiGenerationService()
        >>> text = await service.generate("Você é um atendente...")
    """

    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None):
        """
        Initialize the Gemini client with the configured API key.

        Raises:
            ValueError: If GEMINI_API_KEY is not configured
        """
        settings = get_settings()

        if client is None and not settings.gemini_api_key:
            raise ValueError(
                "GEMINI_API_KEY is required for production mode. "
                "Set it in your .env file or environment variables."
            )

        self._client = client or genai.Client(api_key=settings.gemini_api_key.strip())
        self.model = model or settings.gemini_model

        logger.info(f"✨ GeminiGenerationService initialized (model={self.model})")

    @property
    def provider_name(self) -> str:
        return "gemini"

    async def generate(self, prompt: str) -> str:
        """Generate a reply with Gemini."""
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
            )
        except errors.APIError as e:
            if e.code == 404:
                logger.error(
                    f"Gemini model '{self.model}' not found. "
                    f"Run scripts/list_models.py to check the models available to this key."
                )
            raise GenerationServiceError(f"Gemini error {e.code}: {e.message}") from e

        text = response.text
        if not text or not text.strip():
            raise GenerationServiceError("Gemini returned an empty response")

        return text.strip()

    async def health_check(self) -> bool:
        try:
            await self._client.aio.models.get(model=self.model)
            return True
        except errors.APIError as e:
            logger.error(f"Gemini health check failed: {e}")
            return False
