"""
Pydantic Schemas for Request/Response Validation

Covers:
- Session status / QR polling
- Tenant configuration pushed by the dashboard
- Chat list and message history for the attendance panel

Response fields are camelCase, matching what the dashboard poller reads.

Author: Khalil Bannouri
Version: 4.0.0
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS
# =============================================================================

class SessionStatus(str, Enum):
    """Connection lifecycle of a tenant's WhatsApp session."""
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZING = "INITIALIZING"
    QR_READY = "QR_READY"
    AUTHENTICATED = "AUTHENTICATED"
    READY = "READY"
    DISCONNECTED = "DISCONNECTED"


class CamelModel(BaseModel):
    """Base for response schemas serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# TENANT CONFIGURATION
# =============================================================================

class TenantConfig(BaseModel):
    """
    Restaurant settings the bot needs to answer customers.

    Accepts both the English field names and the ones the dashboard
    historically sends (nome, cardapioLink, horario, ...). Unknown fields
    are ignored.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: Optional[str] = Field(
        None,
        max_length=120,
        validation_alias=AliasChoices("name", "nome"),
        examples=["Jataí Food"],
    )
    menu_link: Optional[str] = Field(
        None,
        max_length=500,
        validation_alias=AliasChoices("menu_link", "menuLink", "cardapioLink"),
        examples=["https://jataifood.com/cardapio"],
    )
    hours: Optional[str] = Field(
        None,
        max_length=200,
        validation_alias=AliasChoices("hours", "horario"),
        examples=["Ter a Dom, 18h às 23h"],
    )
    address: Optional[str] = Field(
        None,
        max_length=255,
        validation_alias=AliasChoices("address", "endereco"),
    )
    contact_phone: Optional[str] = Field(
        None,
        max_length=30,
        validation_alias=AliasChoices("contact_phone", "contactPhone", "whatsapp"),
    )
    is_active: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_active", "isActive"),
    )
    welcome_message: Optional[str] = Field(
        None,
        max_length=1000,
        validation_alias=AliasChoices("welcome_message", "welcomeMessage", "mensagemBoasVindas"),
    )

    @field_validator(
        "name", "menu_link", "hours", "address", "contact_phone", "welcome_message",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ConfigUpdateResponse(BaseModel):
    """Response after replacing a tenant config."""
    success: bool = True


# =============================================================================
# SESSION SCHEMAS
# =============================================================================

class SessionActionResponse(CamelModel):
    """Response for start/stop."""
    status: SessionStatus


class SessionStatusResponse(CamelModel):
    """Polled session state."""
    status: SessionStatus
    qr: Optional[str] = None
    error: Optional[str] = None


class QrResponse(CamelModel):
    qr: str


# =============================================================================
# CHAT SCHEMAS
# =============================================================================

class ChatSummary(CamelModel):
    """One row of the attendance chat list."""
    chat_id: str
    name: str
    number: str
    unread_count: int = 0
    last_message: str = ""
    timestamp: int = 0
    help_requested: bool = False
    help_requested_at: Optional[datetime] = None


class ChatListResponse(CamelModel):
    success: bool = True
    chats: List[ChatSummary]


class MessageSummary(CamelModel):
    """One message of a chat history."""
    id: str
    from_me: bool
    body: str
    timestamp: int


class MessageListResponse(CamelModel):
    success: bool = True
    messages: List[MessageSummary]


class EscalationSummary(CamelModel):
    chat_id: str
    requested_at: datetime


class EscalationListResponse(CamelModel):
    escalations: List[EscalationSummary]


# =============================================================================
# SIMULATION SCHEMAS
# =============================================================================

class SimulatedMessageRequest(CamelModel):
    """Customer message injected into a mock session (development only)."""
    chat_id: str = Field(..., min_length=3, examples=["5564999990000@c.us"])
    body: str = Field(..., min_length=1, max_length=4096, examples=["Bom dia"])


class SimulatedMessageResponse(CamelModel):
    success: bool
    message_id: str


# =============================================================================
# SYSTEM SCHEMAS
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    whatsapp_backend: str
    generation_service: str
    active_sessions: int
    timestamp: datetime
