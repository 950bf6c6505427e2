"""
WhatsApp Backend Factory

Provides a single entry point for obtaining a WhatsApp automation backend.
Automatically selects Mock or Bridge based on ENV_MODE configuration.

Usage:
    from app.services.whatsapp import get_whatsapp_backend

    backend = get_whatsapp_backend()
    handle = backend.create_handle("A", emit)
    await handle.initialize()

Environment Switching:
    - ENV_MODE=development → MockWhatsAppBackend (simulated login)
    - ENV_MODE=staging → BridgeWhatsAppBackend
    - ENV_MODE=production → BridgeWhatsAppBackend

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.whatsapp.base import (
    AutomationHandle,
    BaseWhatsAppBackend,
    ChatInfo,
    ChatMessage,
    SessionEvent,
)
from app.services.whatsapp.mock import MockAutomationHandle, MockWhatsAppBackend
from app.services.whatsapp.bridge import BridgeWhatsAppBackend

logger = logging.getLogger(__name__)


@lru_cache()
def get_whatsapp_backend() -> BaseWhatsAppBackend:
    """
    Get the configured WhatsApp backend instance.

    The instance is cached so every session shares one backend (and one HTTP
    connection pool in bridge mode).

    Returns:
        BaseWhatsAppBackend: Configured backend instance
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("WhatsApp Backend: Using MockWhatsAppBackend (development mode)")
        return MockWhatsAppBackend(
            qr_delay=settings.mock_qr_delay_seconds,
            qr_rotations=settings.mock_qr_rotations,
            scan_delay=settings.mock_scan_delay_seconds,
        )
    else:
        logger.info(
            f"WhatsApp Backend: Using BridgeWhatsAppBackend "
            f"({settings.env_mode.value} mode)"
        )
        return BridgeWhatsAppBackend()


def reset_whatsapp_backend() -> None:
    """Clear the cached backend instance."""
    get_whatsapp_backend.cache_clear()
    logger.debug("WhatsApp backend cache cleared")


__all__ = [
    "get_whatsapp_backend",
    "reset_whatsapp_backend",
    "AutomationHandle",
    "BaseWhatsAppBackend",
    "ChatInfo",
    "ChatMessage",
    "SessionEvent",
    "MockAutomationHandle",
    "MockWhatsAppBackend",
    "BridgeWhatsAppBackend",
]
