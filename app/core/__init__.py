"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from app.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from app.core.exceptions import (
    AttendanceError,
    GenerationServiceError,
    SessionInitError,
    SessionNotReadyError,
    TeardownError,
    TransportError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "AttendanceError",
    "GenerationServiceError",
    "SessionInitError",
    "SessionNotReadyError",
    "TeardownError",
    "TransportError",
]
