"""
Mock WhatsApp Backend

Simulates a WhatsApp Web login without a browser. Used in development mode
(ENV_MODE=development) to:
    - Exercise the full QR -> authenticated -> ready lifecycle locally
    - Feed simulated customer messages through the responder
    - Demo the operator dashboard without a phone

Behavior:
    - Issues a QR code after `qr_delay` seconds, refreshes it `qr_rotations`
      times (one every `scan_delay` seconds), then "scans" it
    - Keeps a per-chat message history in memory
    - Echoes every sent message back as MessageSentByOperator, like the real
      WhatsApp client reports the account's own messages
    - Sends after destroy() raise TransportError

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
import time
import uuid
from typing import Optional

from app.core.exceptions import TransportError
from app.services.whatsapp.base import (
    AutomationHandle,
    Authenticated,
    BaseWhatsAppBackend,
    ChatInfo,
    ChatMessage,
    EventSink,
    MessageReceived,
    MessageSentByOperator,
    QrIssued,
    Ready,
)

logger = logging.getLogger(__name__)


class MockAutomationHandle(AutomationHandle):
    """In-memory stand-in for one WhatsApp Web login."""

    def __init__(
        self,
        tenant_id: str,
        emit: EventSink,
        qr_delay: float,
        qr_rotations: int,
        scan_delay: float,
    ):
        super().__init__(tenant_id, emit)
        self.qr_delay = qr_delay
        self.qr_rotations = qr_rotations
        self.scan_delay = scan_delay

        self._history: dict[str, list[ChatMessage]] = {}
        self._unread: dict[str, int] = {}
        self._login_task: Optional[asyncio.Task] = None
        self._destroyed = False

    def _generate_qr(self) -> str:
        """Generate a payload shaped like a WhatsApp Web pairing code."""
        return f"2@mock{uuid.uuid4().hex},{uuid.uuid4().hex[:16]},{self.tenant_id}"

    async def _simulate_login(self) -> None:
        await asyncio.sleep(self.qr_delay)
        for _ in range(self.qr_rotations + 1):
            self._emit(QrIssued(qr=self._generate_qr()))
            logger.info(f"⚡ Mock QR code issued for tenant {self.tenant_id}")
            await asyncio.sleep(self.scan_delay)

        self._emit(Authenticated())
        await asyncio.sleep(0.1)
        self._emit(Ready())
        logger.info(f"Mock WhatsApp {self.tenant_id} ready")

    async def initialize(self) -> None:
        self._login_task = asyncio.create_task(self._simulate_login())

    async def destroy(self) -> None:
        self._destroyed = True
        if self._login_task and not self._login_task.done():
            self._login_task.cancel()
        logger.info(f"Mock WhatsApp {self.tenant_id} destroyed")

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise TransportError("Session was destroyed", tenant_id=self.tenant_id)

    def _append(self, message: ChatMessage) -> None:
        self._history.setdefault(message.chat_id, []).append(message)

    async def send_message(
        self,
        chat_id: str,
        body: str,
        quoted_message_id: Optional[str] = None,
    ) -> str:
        self._ensure_alive()

        message = ChatMessage(
            message_id=f"true_{chat_id}_{uuid.uuid4().hex[:20].upper()}",
            chat_id=chat_id,
            body=body,
            from_me=True,
            timestamp=int(time.time()),
        )
        self._append(message)
        self._unread[chat_id] = 0
        logger.info(f"Mock message sent to {chat_id}: {body[:50]}")

        self._emit(MessageSentByOperator(message=message))
        return message.message_id

    async def send_typing(self, chat_id: str) -> None:
        self._ensure_alive()
        logger.debug(f"Mock typing indicator in {chat_id}")

    def inject_inbound(self, chat_id: str, body: str, author: Optional[str] = None) -> ChatMessage:
        """
        Deliver a simulated customer message.

        Args:
            chat_id: Chat the customer writes from
            body: Message text
            author: Sender id (defaults to the chat id)

        Returns:
            The message as it was emitted
        """
        self._ensure_alive()

        message = ChatMessage(
            message_id=f"false_{chat_id}_{uuid.uuid4().hex[:20].upper()}",
            chat_id=chat_id,
            body=body,
            from_me=False,
            timestamp=int(time.time()),
            author=author or chat_id,
        )
        self._append(message)
        self._unread[chat_id] = self._unread.get(chat_id, 0) + 1

        self._emit(MessageReceived(message=message))
        return message

    async def get_chats(self) -> list[ChatInfo]:
        self._ensure_alive()

        chats = []
        for chat_id, messages in self._history.items():
            number = chat_id.split("@", 1)[0]
            last = messages[-1]
            chats.append(ChatInfo(
                chat_id=chat_id,
                name=number,
                number=number,
                unread_count=self._unread.get(chat_id, 0),
                last_message=last.body,
                timestamp=last.timestamp,
            ))
        return sorted(chats, key=lambda c: c.timestamp, reverse=True)

    async def fetch_messages(self, chat_id: str, limit: int = 50) -> list[ChatMessage]:
        self._ensure_alive()
        return list(self._history.get(chat_id, [])[-limit:])


class MockWhatsAppBackend(BaseWhatsAppBackend):
    """
    Mock implementation of the WhatsApp backend.

    Attributes:
        qr_delay: Seconds before the first QR code
        qr_rotations: Number of QR refreshes before the simulated scan
        scan_delay: Seconds each QR code stays valid

    Example:
        >>> backend = MockWhatsAppBackend(qr_delay=0.5, qr_rotations=0)
        >>> handle = backend.create_handle("A", events.append)
        >>> await handle.initialize()
    """

    def __init__(
        self,
        qr_delay: float = 1.0,
        qr_rotations: int = 1,
        scan_delay: float = 5.0,
    ):
        self.qr_delay = qr_delay
        self.qr_rotations = qr_rotations
        self.scan_delay = scan_delay

        logger.info(
            f"MockWhatsAppBackend initialized "
            f"(qr_delay={qr_delay}s, rotations={qr_rotations}, scan_delay={scan_delay}s)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    def create_handle(self, tenant_id: str, emit: EventSink) -> MockAutomationHandle:
        return MockAutomationHandle(
            tenant_id,
            emit,
            qr_delay=self.qr_delay,
            qr_rotations=self.qr_rotations,
            scan_delay=self.scan_delay,
        )

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
