"""
WhatsApp Bridge Webhook Payload Schemas

Pydantic models for the events the whatsapp-web.js bridge posts to
/webhooks/whatsapp/{tenant_id}. Event names follow the whatsapp-web.js
client events the bridge relays.

Bridge Webhook Events:
    - qr: a pairing code was generated or rotated
    - authenticated / ready: login progress
    - auth_failure / disconnected: the session is gone
    - message: a customer wrote to the account
    - message_create: any message created by the account itself

Example payload:
    {
        "type": "message",
        "message": {
            "id": "false_556499990000@c.us_3EB0C7",
            "chatId": "556499990000@c.us",
            "from": "556499990000@c.us",
            "body": "Bom dia",
            "fromMe": false,
            "timestamp": 1718000000
        }
    }

Author: Khalil Bannouri
Version: 4.0.0
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.services.whatsapp.base import (
    AuthFailure,
    Authenticated,
    ChatMessage,
    Disconnected,
    MessageReceived,
    MessageSentByOperator,
    QrIssued,
    Ready,
    SessionEvent,
)


class BridgeEventType(str, Enum):
    """Types of events the bridge relays."""
    QR = "qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    MESSAGE_CREATE = "message_create"


class BridgeMessage(BaseModel):
    """A WhatsApp message as serialized by the bridge."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    chat_id: Optional[str] = Field(None, alias="chatId")
    sender: str = Field(..., alias="from")
    author: Optional[str] = None
    body: str = ""
    from_me: bool = Field(False, alias="fromMe")
    timestamp: int = 0

    def to_chat_message(self) -> ChatMessage:
        # chatId is resolved by the bridge from getChat(); fall back to the sender
        return ChatMessage(
            message_id=self.id,
            chat_id=self.chat_id or self.sender,
            body=self.body,
            from_me=self.from_me,
            timestamp=self.timestamp,
            author=self.author or self.sender,
        )


class BridgeEventPayload(BaseModel):
    """Envelope of every bridge webhook call."""
    type: BridgeEventType
    qr: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[BridgeMessage] = None

    def to_event(self) -> Optional[SessionEvent]:
        """
        Convert to a session event.

        Returns:
            The event, or None when the payload is irrelevant
            (incoming echo of our own message, missing fields)
        """
        if self.type == BridgeEventType.QR:
            return QrIssued(qr=self.qr) if self.qr else None
        if self.type == BridgeEventType.AUTHENTICATED:
            return Authenticated()
        if self.type == BridgeEventType.READY:
            return Ready()
        if self.type == BridgeEventType.AUTH_FAILURE:
            return AuthFailure(reason=self.reason or "auth_failure")
        if self.type == BridgeEventType.DISCONNECTED:
            return Disconnected(reason=self.reason or "disconnected")

        if self.message is None:
            return None

        message = self.message.to_chat_message()
        if self.type == BridgeEventType.MESSAGE_CREATE:
            return MessageSentByOperator(message=message) if message.from_me else None
        if message.from_me:
            return None
        return MessageReceived(message=message)
