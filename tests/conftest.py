"""
Shared fixtures: in-memory automation handles and generation services that
record everything the attendance core does with them.
"""

import asyncio
import os
from typing import Optional

os.environ["ENV_MODE"] = "development"
os.environ["AUTOSTART_TENANTS"] = ""

import pytest
import pytest_asyncio

from app.core.exceptions import GenerationServiceError, TeardownError, TransportError
from app.schemas import TenantConfig
from app.services.attendance import (
    ChatStateTracker,
    MessageResponder,
    SessionController,
    TenantConfigStore,
)
from app.services.generation.base import BaseGenerationService
from app.services.whatsapp.base import (
    AutomationHandle,
    BaseWhatsAppBackend,
    ChatInfo,
    ChatMessage,
    EventSink,
    MessageReceived,
    SessionEvent,
)

TENANT = "A"
CUSTOMER = "5564999990000@c.us"
MENU_LINK = "https://jataifood.com/cardapio"


class FakeHandle(AutomationHandle):
    """Automation handle driven by the test through push()."""

    def __init__(
        self,
        tenant_id: str,
        emit: EventSink,
        init_error: Optional[Exception] = None,
        destroy_error: Optional[Exception] = None,
    ):
        super().__init__(tenant_id, emit)
        self.init_error = init_error
        self.destroy_error = destroy_error
        self.initialized = False
        self.destroyed = False
        self.destroy_calls = 0
        self.sent: list[tuple[str, str, Optional[str]]] = []
        self.typing: list[str] = []
        self.chats: list[ChatInfo] = []
        self.history: dict[str, list[ChatMessage]] = {}

    def push(self, event: SessionEvent) -> None:
        self._emit(event)

    async def initialize(self) -> None:
        if self.init_error is not None:
            raise self.init_error
        self.initialized = True

    async def destroy(self) -> None:
        self.destroy_calls += 1
        self.destroyed = True
        if self.destroy_error is not None:
            raise self.destroy_error

    async def send_message(self, chat_id, body, quoted_message_id=None) -> str:
        if self.destroyed:
            raise TransportError("Session was destroyed", tenant_id=self.tenant_id)
        self.sent.append((chat_id, body, quoted_message_id))
        return f"true_{chat_id}_{len(self.sent)}"

    async def send_typing(self, chat_id) -> None:
        if self.destroyed:
            raise TransportError("Session was destroyed", tenant_id=self.tenant_id)
        self.typing.append(chat_id)

    async def get_chats(self) -> list[ChatInfo]:
        if self.destroyed:
            raise TransportError("Session was destroyed", tenant_id=self.tenant_id)
        return list(self.chats)

    async def fetch_messages(self, chat_id, limit=50) -> list[ChatMessage]:
        return list(self.history.get(chat_id, [])[-limit:])


class FakeBackend(BaseWhatsAppBackend):
    """Creates FakeHandles and keeps every one of them."""

    def __init__(
        self,
        init_error: Optional[Exception] = None,
        destroy_error: Optional[Exception] = None,
    ):
        self.init_error = init_error
        self.destroy_error = destroy_error
        self.handles: list[FakeHandle] = []
        self.closed = False

    @property
    def provider_name(self) -> str:
        return "fake"

    def create_handle(self, tenant_id: str, emit: EventSink) -> FakeHandle:
        handle = FakeHandle(
            tenant_id,
            emit,
            init_error=self.init_error,
            destroy_error=self.destroy_error,
        )
        self.handles.append(handle)
        return handle

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


class FakeGenerator(BaseGenerationService):
    """Generation service with a fixed reply, error or delay."""

    def __init__(
        self,
        reply: str = "Temos pizza de calabresa por R$ 45 🍕",
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply

    async def health_check(self) -> bool:
        return True


def make_message(
    body: str,
    chat_id: str = CUSTOMER,
    from_me: bool = False,
    message_id: str = "false_5564999990000@c.us_ABC123",
) -> ChatMessage:
    return ChatMessage(
        message_id=message_id,
        chat_id=chat_id,
        body=body,
        from_me=from_me,
        timestamp=1718000000,
    )


def received(body: str, chat_id: str = CUSTOMER) -> MessageReceived:
    return MessageReceived(message=make_message(body, chat_id=chat_id))


def active_config(**overrides) -> TenantConfig:
    values = {"name": "Jataí Food", "menu_link": MENU_LINK, "is_active": True}
    values.update(overrides)
    return TenantConfig(**values)


@pytest.fixture
def tracker():
    return ChatStateTracker()


@pytest.fixture
def configs():
    store = TenantConfigStore()
    store.replace(TENANT, active_config())
    return store


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def failing_generator():
    return FakeGenerator(error=GenerationServiceError("quota exceeded"))


@pytest.fixture
def responder(tracker, configs, generator):
    return MessageResponder(tracker, configs, generator, typing_delay=0, generation_timeout=1.0)


@pytest.fixture
def handle():
    return FakeHandle(TENANT, lambda event: None)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def controller(backend, responder):
    controller = SessionController(backend, responder.handle_event)
    yield controller
    await controller.shutdown()


@pytest.fixture
def teardown_error():
    return TeardownError("browser already closed", tenant_id=TENANT)
