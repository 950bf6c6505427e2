"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports two modes:
    - DEVELOPMENT: Uses the mock WhatsApp backend and mock text generation
      (no browser, no API keys needed)
    - PRODUCTION/STAGING: Drives the whatsapp-web.js bridge and Google Gemini

The ENV_MODE variable controls which backends are instantiated throughout
the application, enabling seamless switching between local testing and
production deployment.

Usage:
    from app.core.config import get_settings

    settings = get_settings()
    if settings.is_development:
        # Mock WhatsApp sessions
    else:
        # Real bridge sessions

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
import sys
from enum import Enum
from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with mock backends
        PRODUCTION: Live environment with the WhatsApp bridge and Gemini
        STAGING: Pre-production testing with the real bridge
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Sensitive values (API keys, bridge token) should NEVER be committed to
    version control.

    Attributes:
        env_mode: Current environment (development/production/staging)
        debug: Enable verbose logging and error details

        # WhatsApp Bridge
        whatsapp_bridge_url: Base URL of the whatsapp-web.js sidecar
        whatsapp_bridge_token: Shared secret for bridge calls and webhooks
        public_base_url: URL the bridge uses to reach our webhook

        # Text Generation
        gemini_api_key: Google Gemini API key
        gemini_model: Model used for customer replies
        generation_timeout_seconds: Upper bound on a single generation call

        # Attendance
        typing_delay_seconds: Simulated typing pause before a bot reply
        autostart_tenants: Tenants whose sessions start on boot
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Restaurant WhatsApp Attendance",
        description="Application display name"
    )
    app_version: str = Field(
        default="4.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=3001,
        description="API server port"
    )
    public_base_url: str = Field(
        default="http://localhost:3001",
        description="Public base URL of this service (used for bridge webhooks)"
    )

    # ==========================================================================
    # WHATSAPP BRIDGE
    # ==========================================================================

    whatsapp_bridge_url: str = Field(
        default="http://localhost:3100",
        description="Base URL of the whatsapp-web.js bridge sidecar"
    )
    whatsapp_bridge_token: Optional[str] = Field(
        default=None,
        description="Shared secret sent to the bridge and expected on webhooks"
    )
    bridge_timeout_seconds: float = Field(
        default=30.0,
        description="HTTP timeout for bridge calls"
    )

    # ==========================================================================
    # GOOGLE GEMINI
    # ==========================================================================

    gemini_api_key: Optional[str] = Field(
        default=None,
        description="Google Gemini API key"
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used for customer replies"
    )
    generation_timeout_seconds: float = Field(
        default=10.0,
        description="Seconds before a generation call falls back to canned text"
    )

    # ==========================================================================
    # ATTENDANCE
    # ==========================================================================

    typing_delay_seconds: float = Field(
        default=2.0,
        description="Pause between the typing indicator and the bot reply"
    )
    default_restaurant_name: str = Field(
        default="Jataí Food",
        description="Name used when a tenant config has no display name"
    )
    autostart_tenants: str = Field(
        default="",
        description="Comma-separated tenant ids started on application boot"
    )
    chat_message_limit: int = Field(
        default=50,
        description="Default number of messages returned per chat"
    )

    # ==========================================================================
    # MOCK BACKENDS (development only)
    # ==========================================================================

    mock_qr_delay_seconds: float = Field(
        default=1.0,
        description="Delay before the mock session issues its first QR code"
    )
    mock_qr_rotations: int = Field(
        default=1,
        description="How many times the mock QR code is refreshed before scan"
    )
    mock_scan_delay_seconds: float = Field(
        default=5.0,
        description="Seconds each mock QR code stays on screen"
    )
    mock_generation_failure_rate: float = Field(
        default=0.10,
        description="Probability that the mock generation service fails"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def use_real_services(self) -> bool:
        """Check if real external services should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    @property
    def autostart_tenants_list(self) -> list[str]:
        """Get autostart tenants as a list."""
        return [t.strip() for t in self.autostart_tenants.split(",") if t.strip()]

    @property
    def webhook_base_url(self) -> str:
        """Base URL the bridge posts session events to."""
        return f"{self.public_base_url.rstrip('/')}/webhooks/whatsapp"

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.use_real_services:
            if not self.gemini_api_key:
                missing.append("GEMINI_API_KEY")
            if not self.whatsapp_bridge_token:
                missing.append("WHATSAPP_BRIDGE_TOKEN")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are loaded only once,
    keeping configuration consistent across the application lifecycle.

    Returns:
        Settings: Configured application settings
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured root logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)

    return logging.getLogger("app")
