"""
WhatsApp Attendance Module

Wires the session controller, the chat state tracker, the tenant config
store and the responder into one object owned by the application.

Usage:
    from app.services.attendance import build_attendance

    attendance = build_attendance()
    await attendance.sessions.start("A")
    ...
    await attendance.shutdown()

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.config import get_settings
from app.services.attendance.chat_state import ChatEscalation, ChatStateTracker
from app.services.attendance.config_store import TenantConfigStore
from app.services.attendance.dispatcher import SessionDispatcher
from app.services.attendance.responder import (
    ESCALATION_NOTICE,
    MessageResponder,
    build_fallback,
    build_prompt,
    is_greeting,
    is_help_request,
    normalize_text,
)
from app.services.attendance.sessions import Session, SessionController, SessionSnapshot
from app.services.generation import BaseGenerationService, get_generation_service
from app.services.whatsapp import BaseWhatsAppBackend, ChatMessage, get_whatsapp_backend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatOverview:
    """Chat list row: live chat metadata joined with escalation state."""
    chat_id: str
    name: str
    number: str
    unread_count: int
    last_message: str
    timestamp: int
    help_requested: bool
    help_requested_at: Optional[datetime] = None


class Attendance:
    """Application-owned attendance runtime."""

    def __init__(
        self,
        sessions: SessionController,
        tracker: ChatStateTracker,
        configs: TenantConfigStore,
        responder: MessageResponder,
    ):
        self.sessions = sessions
        self.tracker = tracker
        self.configs = configs
        self.responder = responder

    async def list_chats(self, tenant_id: str) -> list[ChatOverview]:
        """
        Chats of a READY session with their help-request flag.

        Raises:
            SessionNotReadyError: If the session is not READY
            TransportError: If the backend could not list chats
        """
        handle = self.sessions.handle_for(tenant_id)
        chats = await handle.get_chats()

        overview = []
        for chat in chats:
            escalation = self.tracker.get(tenant_id, chat.chat_id)
            overview.append(ChatOverview(
                chat_id=chat.chat_id,
                name=chat.name or chat.number,
                number=chat.number,
                unread_count=chat.unread_count,
                last_message=chat.last_message,
                timestamp=chat.timestamp,
                help_requested=escalation is not None,
                help_requested_at=escalation.requested_at if escalation else None,
            ))
        return overview

    async def list_messages(self, tenant_id: str, chat_id: str, limit: int) -> list[ChatMessage]:
        """Recent messages of a chat, passed straight through from the handle."""
        handle = self.sessions.handle_for(tenant_id)
        return await handle.fetch_messages(chat_id, limit=limit)

    def escalations(self, tenant_id: str) -> list[ChatEscalation]:
        return self.tracker.records(tenant_id)

    async def shutdown(self) -> None:
        await self.sessions.shutdown()
        await self.sessions.backend.close()
        self.tracker.clear()
        self.configs.clear()
        logger.info("Attendance runtime shut down")


def build_attendance(
    backend: Optional[BaseWhatsAppBackend] = None,
    generator: Optional[BaseGenerationService] = None,
    typing_delay: Optional[float] = None,
    generation_timeout: Optional[float] = None,
) -> Attendance:
    """
    Build the attendance runtime.

    Backends default to the ENV_MODE-selected factories; timings default to
    the configured settings.
    """
    settings = get_settings()

    tracker = ChatStateTracker()
    configs = TenantConfigStore()
    responder = MessageResponder(
        tracker,
        configs,
        generator or get_generation_service(),
        typing_delay=settings.typing_delay_seconds if typing_delay is None else typing_delay,
        generation_timeout=(
            settings.generation_timeout_seconds if generation_timeout is None else generation_timeout
        ),
        default_name=settings.default_restaurant_name,
    )
    sessions = SessionController(backend or get_whatsapp_backend(), responder.handle_event)

    return Attendance(sessions, tracker, configs, responder)


__all__ = [
    "Attendance",
    "ChatOverview",
    "build_attendance",
    "ChatEscalation",
    "ChatStateTracker",
    "TenantConfigStore",
    "SessionDispatcher",
    "MessageResponder",
    "ESCALATION_NOTICE",
    "build_fallback",
    "build_prompt",
    "is_greeting",
    "is_help_request",
    "normalize_text",
    "Session",
    "SessionController",
    "SessionSnapshot",
]
