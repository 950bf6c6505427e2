"""
WhatsApp Session Controller

Owns one automation session per tenant and tracks its lifecycle:

    UNINITIALIZED → INITIALIZING → QR_READY → AUTHENTICATED → READY
                         any state → DISCONNECTED (until the next start)

QR_READY fires again every time WhatsApp rotates the pairing code; each
emission replaces the stored payload.

Only the session's own lifecycle events change its status or QR code
(single writer). start()/stop() create and remove records; they are
serialized per tenant so concurrent starts never build two browsers.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Awaitable, Callable, Optional

from app.core.exceptions import SessionNotReadyError, TeardownError
from app.schemas import SessionStatus
from app.services.attendance.dispatcher import SessionDispatcher
from app.services.whatsapp.base import (
    AuthFailure,
    Authenticated,
    AutomationHandle,
    BaseWhatsAppBackend,
    InitFailed,
    LifecycleEvent,
    MessageEvent,
    QrIssued,
    Ready,
    SessionEvent,
)

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, AutomationHandle, MessageEvent], Awaitable[None]]


# Allowed source states for each lifecycle target
_TRANSITIONS: dict[SessionStatus, frozenset] = {
    SessionStatus.QR_READY: frozenset({SessionStatus.INITIALIZING, SessionStatus.QR_READY}),
    SessionStatus.AUTHENTICATED: frozenset({SessionStatus.INITIALIZING, SessionStatus.QR_READY}),
    SessionStatus.READY: frozenset({
        SessionStatus.INITIALIZING,
        SessionStatus.QR_READY,
        SessionStatus.AUTHENTICATED,
    }),
    SessionStatus.DISCONNECTED: frozenset({
        SessionStatus.INITIALIZING,
        SessionStatus.QR_READY,
        SessionStatus.AUTHENTICATED,
        SessionStatus.READY,
    }),
}

# A start() on a session in one of these states is a no-op
_LIVE_STATES = frozenset({
    SessionStatus.INITIALIZING,
    SessionStatus.QR_READY,
    SessionStatus.AUTHENTICATED,
    SessionStatus.READY,
})


@dataclass
class Session:
    """Live (or most recent) connection state of one tenant."""
    tenant_id: str
    status: SessionStatus = SessionStatus.INITIALIZING
    qr: Optional[str] = None
    error: Optional[str] = None
    handle: Optional[AutomationHandle] = None
    dispatcher: Optional[SessionDispatcher] = None
    init_task: Optional[asyncio.Task] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    released: bool = False


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time view of a session for pollers."""
    status: SessionStatus
    qr: Optional[str] = None
    error: Optional[str] = None


class SessionController:
    """
    Creates, tracks and destroys per-tenant WhatsApp sessions.

    Args:
        backend: Builds automation handles
        on_message: Called for every message event, in per-chat order

    Example:
        >>> controller = SessionController(get_whatsapp_backend(), responder.handle_event)
        >>> await controller.start("A")
        <SessionStatus.INITIALIZING: 'INITIALIZING'>
        >>> controller.status("A").status
        <SessionStatus.QR_READY: 'QR_READY'>
    """

    def __init__(self, backend: BaseWhatsAppBackend, on_message: MessageHandler):
        self.backend = backend
        self._on_message = on_message
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._background: set[asyncio.Task] = set()

    @contextlib.asynccontextmanager
    async def _tenant_lock(self, tenant_id: str):
        """
        Serialize start/stop of one tenant.

        The lock is forgotten once nobody holds or waits for it and the
        tenant has no session, so unknown ids do not accumulate locks.
        """
        lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        self._lock_users[tenant_id] = self._lock_users.get(tenant_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[tenant_id] -= 1
            if not self._lock_users[tenant_id]:
                del self._lock_users[tenant_id]
                if tenant_id not in self._sessions:
                    self._locks.pop(tenant_id, None)

    @property
    def tenant_ids(self) -> list[str]:
        return list(self._sessions)

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def start(self, tenant_id: str) -> SessionStatus:
        """
        Start a tenant's session unless one is already live.

        Returns immediately; authentication continues in the background and
        is reported through status().

        Returns:
            SessionStatus: INITIALIZING for a new session, else the current status
        """
        async with self._tenant_lock(tenant_id):
            current = self._sessions.get(tenant_id)
            if current is not None and current.status in _LIVE_STATES:
                logger.debug(f"Session {tenant_id} already {current.status.value}")
                return current.status

            if current is not None:
                # DISCONNECTED: the old handle is released before a new login
                await self._teardown(current)

            session = Session(tenant_id=tenant_id)
            session.dispatcher = SessionDispatcher(
                tenant_id,
                on_lifecycle=partial(self._apply_lifecycle, session),
                on_message=partial(self._dispatch_message, session),
            )
            session.handle = self.backend.create_handle(tenant_id, session.dispatcher.emit)
            self._sessions[tenant_id] = session

            session.dispatcher.start()
            session.init_task = asyncio.create_task(self._initialize(session))

            logger.info(f"🚀 Starting WhatsApp session for {tenant_id} ({self.backend.provider_name})")
            return session.status

    async def stop(self, tenant_id: str) -> SessionStatus:
        """
        Tear a tenant's session down and forget it.

        Teardown failures are logged; the record is removed regardless.

        Returns:
            SessionStatus: Always UNINITIALIZED
        """
        async with self._tenant_lock(tenant_id):
            session = self._sessions.pop(tenant_id, None)
            if session is None:
                return SessionStatus.UNINITIALIZED

            await self._teardown(session)
            logger.info(f"WhatsApp session {tenant_id} stopped")
            return SessionStatus.UNINITIALIZED

    def status(self, tenant_id: str) -> SessionSnapshot:
        """Current status, QR (only in QR_READY) and last error. Never blocks."""
        session = self._sessions.get(tenant_id)
        if session is None:
            return SessionSnapshot(status=SessionStatus.UNINITIALIZED)

        qr = session.qr if session.status == SessionStatus.QR_READY else None
        return SessionSnapshot(status=session.status, qr=qr, error=session.error)

    def get_qr(self, tenant_id: str) -> Optional[str]:
        """Current QR payload, or None when no code is on screen."""
        return self.status(tenant_id).qr

    def publish(self, tenant_id: str, event: SessionEvent) -> bool:
        """
        Feed an externally delivered event (bridge webhook) into a session.

        Returns:
            bool: False when the tenant has no session and the event was dropped
        """
        session = self._sessions.get(tenant_id)
        if session is None or session.dispatcher is None:
            logger.warning(f"Dropping {type(event).__name__} for unknown session {tenant_id}")
            return False

        session.dispatcher.emit(event)
        return True

    def handle_for(self, tenant_id: str) -> AutomationHandle:
        """
        Handle of a READY session.

        Raises:
            SessionNotReadyError: If the tenant has no READY session
        """
        session = self._sessions.get(tenant_id)
        if session is None or session.status != SessionStatus.READY or session.handle is None:
            raise SessionNotReadyError("Client not ready", tenant_id=tenant_id)
        return session.handle

    async def wait_idle(self, tenant_id: str) -> None:
        """
        Wait until the session settles: the initialize call has returned,
        every event already delivered is handled and a handle released after
        a failed login is gone.
        """
        session = self._sessions.get(tenant_id)
        if session is None:
            return

        if session.init_task is not None:
            await asyncio.gather(session.init_task, return_exceptions=True)
        if session.dispatcher is not None:
            await session.dispatcher.join()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop every session (application exit)."""
        for tenant_id in list(self._sessions):
            await self.stop(tenant_id)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _initialize(self, session: Session) -> None:
        try:
            await session.handle.initialize()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ WhatsApp {session.tenant_id} failed to initialize: {e}")
            session.dispatcher.emit(InitFailed(reason=str(e) or type(e).__name__))

    def _apply_lifecycle(self, session: Session, event: LifecycleEvent) -> None:
        if isinstance(event, QrIssued):
            target = SessionStatus.QR_READY
        elif isinstance(event, Authenticated):
            target = SessionStatus.AUTHENTICATED
        elif isinstance(event, Ready):
            target = SessionStatus.READY
        else:
            target = SessionStatus.DISCONNECTED

        if session.status not in _TRANSITIONS[target]:
            logger.warning(
                f"Ignoring {type(event).__name__} for {session.tenant_id} "
                f"in state {session.status.value}"
            )
            return

        session.status = target
        session.qr = event.qr if isinstance(event, QrIssued) else None

        if target == SessionStatus.QR_READY:
            logger.info(f"⚡ QR code ready for {session.tenant_id}")
        elif target == SessionStatus.READY:
            session.error = None
            logger.info(f"✅ WhatsApp {session.tenant_id} ready")
        elif target == SessionStatus.DISCONNECTED:
            session.error = event.reason
            logger.warning(f"WhatsApp {session.tenant_id} disconnected: {event.reason}")
            if isinstance(event, (AuthFailure, InitFailed)):
                task = asyncio.create_task(self._release_handle(session))
                self._background.add(task)
                task.add_done_callback(self._background.discard)
        else:
            logger.info(f"WhatsApp {session.tenant_id} authenticated")

    async def _dispatch_message(self, session: Session, event: MessageEvent) -> None:
        await self._on_message(session.tenant_id, session.handle, event)

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    async def _release_handle(self, session: Session) -> None:
        """Destroy the handle once; failures are logged, never raised."""
        if session.released or session.handle is None:
            return
        session.released = True

        try:
            await session.handle.destroy()
        except TeardownError as e:
            logger.error(f"Error destroying WhatsApp client {session.tenant_id}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error destroying WhatsApp client {session.tenant_id}: {e}")

    async def _teardown(self, session: Session) -> None:
        if session.init_task is not None and not session.init_task.done():
            session.init_task.cancel()
        if session.dispatcher is not None:
            await session.dispatcher.close()
        await self._release_handle(session)
