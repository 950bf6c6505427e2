"""
Chat State Tracker

Remembers which chats asked for a human attendant. While a chat is
escalated the bot stays silent in it; the escalation ends when the
restaurant's own account writes something in that chat.

Purely in-memory and synchronous: no I/O, nothing survives a restart.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatEscalation:
    """A chat waiting for a human attendant."""
    tenant_id: str
    chat_id: str
    requested_at: datetime


class ChatStateTracker:
    """
    Escalation records keyed by tenant, then chat.

    Existence of a record is the only thing that silences the responder
    for a chat.
    """

    def __init__(self):
        self._escalations: dict[str, dict[str, ChatEscalation]] = {}

    def request_help(self, tenant_id: str, chat_id: str) -> bool:
        """
        Flag a chat as waiting for a human.

        The first request wins: asking again keeps the original timestamp.

        Returns:
            bool: True if a new escalation was created
        """
        chats = self._escalations.setdefault(tenant_id, {})
        if chat_id in chats:
            return False

        chats[chat_id] = ChatEscalation(
            tenant_id=tenant_id,
            chat_id=chat_id,
            requested_at=datetime.now(timezone.utc),
        )
        logger.info(f"🆘 Help requested in chat {chat_id} (tenant {tenant_id})")
        return True

    def is_escalated(self, tenant_id: str, chat_id: str) -> bool:
        return chat_id in self._escalations.get(tenant_id, {})

    def get(self, tenant_id: str, chat_id: str) -> Optional[ChatEscalation]:
        return self._escalations.get(tenant_id, {}).get(chat_id)

    def resolve(self, tenant_id: str, chat_id: str) -> bool:
        """
        Drop a chat's escalation, if any.

        Returns:
            bool: True if an escalation was removed
        """
        chats = self._escalations.get(tenant_id)
        if not chats or chat_id not in chats:
            return False

        del chats[chat_id]
        if not chats:
            del self._escalations[tenant_id]

        logger.info(f"✅ Help request answered in chat {chat_id} (tenant {tenant_id})")
        return True

    def records(self, tenant_id: str) -> list[ChatEscalation]:
        """Escalations of a tenant, oldest request first."""
        chats = self._escalations.get(tenant_id, {})
        return sorted(chats.values(), key=lambda e: e.requested_at)

    def list(self, tenant_id: str) -> list[str]:
        """Escalated chat ids of a tenant, oldest request first."""
        return [e.chat_id for e in self.records(tenant_id)]

    def clear(self) -> None:
        self._escalations.clear()
