"""
WhatsApp Backend Abstract Base Class

Defines the capability contract between the session controller and whatever
actually drives a WhatsApp Web login. Both MockWhatsAppBackend and
BridgeWhatsAppBackend implement it, so the controller and the responder are
testable without a browser or a network.

Design Pattern: Strategy Pattern
    - A backend creates one AutomationHandle per tenant session
    - The handle reports everything that happens through a single `emit`
      callback, as the events defined below
    - The controller owns the handle; nothing else talks to it directly

Author: Khalil Bannouri
Version: 4.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Union


GROUP_SUFFIX = "@g.us"
STATUS_BROADCAST = "status@broadcast"


# =============================================================================
# TRANSPORT-NEUTRAL DATA
# =============================================================================

@dataclass(frozen=True)
class ChatMessage:
    """
    A single WhatsApp message as seen by the attendance core.

    Attributes:
        message_id: Serialized WhatsApp message id
        chat_id: Serialized chat id (e.g. "5511999999999@c.us")
        body: Message text
        from_me: True when authored by the tenant's own account
        timestamp: Unix epoch seconds
        author: Sender id, when the backend knows it
    """
    message_id: str
    chat_id: str
    body: str
    from_me: bool = False
    timestamp: int = 0
    author: Optional[str] = None

    @property
    def is_group(self) -> bool:
        return self.chat_id.endswith(GROUP_SUFFIX)

    @property
    def is_status(self) -> bool:
        return self.chat_id == STATUS_BROADCAST


@dataclass(frozen=True)
class ChatInfo:
    """Chat list entry returned by a handle."""
    chat_id: str
    name: str
    number: str
    unread_count: int = 0
    last_message: str = ""
    timestamp: int = 0


# =============================================================================
# SESSION EVENTS
# =============================================================================

@dataclass(frozen=True)
class QrIssued:
    """A scannable QR code is available (fires again on every rotation)."""
    qr: str


@dataclass(frozen=True)
class Authenticated:
    """The phone accepted the login."""


@dataclass(frozen=True)
class Ready:
    """The session is fully connected and can send messages."""


@dataclass(frozen=True)
class Disconnected:
    """The connection to WhatsApp was lost."""
    reason: str = "disconnected"


@dataclass(frozen=True)
class AuthFailure:
    """The stored credentials were rejected."""
    reason: str = "auth_failure"


@dataclass(frozen=True)
class InitFailed:
    """The backend could not start the session at all."""
    reason: str


@dataclass(frozen=True)
class MessageReceived:
    """A customer sent a message to the tenant's account."""
    message: ChatMessage


@dataclass(frozen=True)
class MessageSentByOperator:
    """The tenant's own account sent a message (bot or human operator)."""
    message: ChatMessage


LifecycleEvent = Union[QrIssued, Authenticated, Ready, Disconnected, AuthFailure, InitFailed]
MessageEvent = Union[MessageReceived, MessageSentByOperator]
SessionEvent = Union[LifecycleEvent, MessageEvent]

EventSink = Callable[[SessionEvent], None]


# =============================================================================
# CAPABILITY INTERFACES
# =============================================================================

class AutomationHandle(ABC):
    """
    One live WhatsApp Web login, exclusively owned by a session.

    Every method except `initialize` may be called after `destroy`; those
    calls must raise TransportError instead of touching a dead browser.
    """

    def __init__(self, tenant_id: str, emit: EventSink):
        self.tenant_id = tenant_id
        self._emit = emit

    @abstractmethod
    async def initialize(self) -> None:
        """
        Begin authentication.

        Returns once the backend has accepted the request; QR, authentication
        and readiness are reported later through the event sink.

        Raises:
            SessionInitError: If the backend cannot start the session
        """
        pass

    @abstractmethod
    async def destroy(self) -> None:
        """
        Tear the login down.

        Raises:
            TeardownError: If the backend failed to release the session
        """
        pass

    @abstractmethod
    async def send_message(
        self,
        chat_id: str,
        body: str,
        quoted_message_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Send a text message, optionally as a reply.

        Returns:
            The sent message id, when the backend reports one

        Raises:
            TransportError: If the message could not be delivered
        """
        pass

    @abstractmethod
    async def send_typing(self, chat_id: str) -> None:
        """Show the typing indicator in a chat. Raises TransportError."""
        pass

    @abstractmethod
    async def get_chats(self) -> list[ChatInfo]:
        """List the account's chats. Raises TransportError."""
        pass

    @abstractmethod
    async def fetch_messages(self, chat_id: str, limit: int = 50) -> list[ChatMessage]:
        """Most recent messages of a chat, oldest first. Raises TransportError."""
        pass


class BaseWhatsAppBackend(ABC):
    """Abstract base class for WhatsApp automation backends."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g. "mock", "bridge")."""
        pass

    @abstractmethod
    def create_handle(self, tenant_id: str, emit: EventSink) -> AutomationHandle:
        """Build a handle for a tenant. Must not start anything yet."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check backend connectivity."""
        pass

    async def close(self) -> None:
        """Release shared resources (HTTP pools, browsers)."""
        return None


