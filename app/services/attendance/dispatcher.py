"""
Per-tenant Event Dispatcher

Every session gets one event channel. Whatever the automation handle reports
(QR codes, readiness, messages) is pushed onto it and consumed by a single
task, so lifecycle events are applied in the order they happened.

Messages are fanned out to one worker per chat: messages of the same chat
are handled strictly one after another, while a slow reply in one chat
(typing delay, model call) never holds up other chats or lifecycle events.
"""

import asyncio
import contextlib
import logging
from collections import deque
from typing import Awaitable, Callable, Optional

from app.services.whatsapp.base import (
    LifecycleEvent,
    MessageEvent,
    MessageReceived,
    MessageSentByOperator,
    SessionEvent,
)

logger = logging.getLogger(__name__)


class SessionDispatcher:
    """
    Event channel and consumer loop for one tenant session.

    Args:
        tenant_id: Owner of the channel (for logging)
        on_lifecycle: Applies a lifecycle event to the session (synchronous)
        on_message: Handles one message event (may suspend)
    """

    def __init__(
        self,
        tenant_id: str,
        on_lifecycle: Callable[[LifecycleEvent], None],
        on_message: Callable[[MessageEvent], Awaitable[None]],
    ):
        self.tenant_id = tenant_id
        self._on_lifecycle = on_lifecycle
        self._on_message = on_message

        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._chat_queues: dict[str, deque] = {}
        self._chat_workers: dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start consuming events. Must be called from a running event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"dispatcher-{self.tenant_id}")

    def emit(self, event: SessionEvent) -> None:
        """Queue an event. Events arriving after close() are dropped."""
        if self._closed:
            logger.debug(f"Dropping {type(event).__name__} for closed session {self.tenant_id}")
            return
        self._queue.put_nowait(event)

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if isinstance(event, (MessageReceived, MessageSentByOperator)):
                    self._route_message(event)
                else:
                    self._on_lifecycle(event)
            except Exception:
                logger.exception(f"Error dispatching {type(event).__name__} for {self.tenant_id}")
            finally:
                self._queue.task_done()

    def _route_message(self, event: MessageEvent) -> None:
        chat_id = event.message.chat_id
        self._chat_queues.setdefault(chat_id, deque()).append(event)

        if chat_id not in self._chat_workers:
            self._chat_workers[chat_id] = asyncio.create_task(
                self._chat_worker(chat_id),
                name=f"chat-{self.tenant_id}-{chat_id}",
            )

    async def _chat_worker(self, chat_id: str) -> None:
        pending = self._chat_queues[chat_id]
        try:
            while pending and not self._closed:
                event = pending.popleft()
                try:
                    await self._on_message(event)
                except Exception:
                    logger.exception(f"Error handling message in {chat_id} ({self.tenant_id})")
        finally:
            # Nothing can be appended between the empty check and here
            self._chat_queues.pop(chat_id, None)
            self._chat_workers.pop(chat_id, None)

    async def join(self) -> None:
        """Wait until every queued event, including chat work, is handled."""
        while True:
            await self._queue.join()
            workers = list(self._chat_workers.values())
            if not workers:
                return
            await asyncio.gather(*workers, return_exceptions=True)

    async def close(self) -> None:
        """
        Stop consuming events.

        Queued events are dropped. A message handler that is already running
        is left to finish; its sends go to a torn-down handle and fail softly.
        """
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
