"""
Attendance Error Taxonomy

Errors raised by the WhatsApp backends and the text generation services.
None of them reach end users: the session controller turns lifecycle errors
into a DISCONNECTED status, and the responder turns generation and transport
errors into fallback replies or log lines.
"""

from typing import Optional


class AttendanceError(Exception):
    """Base class for all attendance errors."""

    def __init__(self, message: str, tenant_id: Optional[str] = None):
        super().__init__(message)
        self.tenant_id = tenant_id


class SessionInitError(AttendanceError):
    """The automation backend could not start a session."""


class SessionNotReadyError(AttendanceError):
    """An operation needs a READY session and the tenant has none."""


class TeardownError(AttendanceError):
    """Destroying an automation handle failed."""


class TransportError(AttendanceError):
    """A message or typing indicator could not be delivered."""


class GenerationServiceError(AttendanceError):
    """The text generation service failed or returned an unusable response."""
