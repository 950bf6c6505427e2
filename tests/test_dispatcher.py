"""Tests for the per-tenant event dispatcher."""

import asyncio

import pytest

from conftest import received
from app.services.attendance import SessionDispatcher
from app.services.whatsapp.base import Authenticated, QrIssued, Ready


def make_dispatcher(on_lifecycle=None, on_message=None):
    async def ignore(event):
        return None

    dispatcher = SessionDispatcher(
        "A",
        on_lifecycle=on_lifecycle or (lambda event: None),
        on_message=on_message or ignore,
    )
    dispatcher.start()
    return dispatcher


@pytest.mark.asyncio
async def test_lifecycle_events_applied_in_order():
    applied = []
    dispatcher = make_dispatcher(on_lifecycle=applied.append)

    dispatcher.emit(QrIssued(qr="1"))
    dispatcher.emit(QrIssued(qr="2"))
    dispatcher.emit(Authenticated())
    dispatcher.emit(Ready())
    await dispatcher.join()

    assert applied == [QrIssued(qr="1"), QrIssued(qr="2"), Authenticated(), Ready()]
    await dispatcher.close()


@pytest.mark.asyncio
async def test_chats_are_sequential_and_independent():
    gate = asyncio.Event()
    other_chat_done = asyncio.Event()
    handled = []

    async def on_message(event):
        body = event.message.body
        if body == "a1":
            await gate.wait()
        handled.append(body)
        if body == "b1":
            other_chat_done.set()

    dispatcher = make_dispatcher(on_message=on_message)
    dispatcher.emit(received("a1", chat_id="a@c.us"))
    dispatcher.emit(received("a2", chat_id="a@c.us"))
    dispatcher.emit(received("b1", chat_id="b@c.us"))

    # a1 is stuck; b1 must not wait for it, a2 must
    await asyncio.wait_for(other_chat_done.wait(), timeout=1.0)
    assert handled == ["b1"]

    gate.set()
    await dispatcher.join()
    assert handled == ["b1", "a1", "a2"]
    await dispatcher.close()


@pytest.mark.asyncio
async def test_lifecycle_not_blocked_by_slow_message():
    gate = asyncio.Event()
    applied = []

    async def on_message(event):
        await gate.wait()

    dispatcher = make_dispatcher(on_lifecycle=applied.append, on_message=on_message)
    dispatcher.emit(received("slow"))
    dispatcher.emit(Ready())

    await asyncio.sleep(0.05)
    assert applied == [Ready()]

    gate.set()
    await dispatcher.join()
    await dispatcher.close()


@pytest.mark.asyncio
async def test_handler_errors_do_not_stop_the_loop():
    applied = []

    def on_lifecycle(event):
        if isinstance(event, QrIssued):
            raise RuntimeError("boom")
        applied.append(event)

    async def on_message(event):
        raise RuntimeError("boom")

    dispatcher = make_dispatcher(on_lifecycle=on_lifecycle, on_message=on_message)
    dispatcher.emit(QrIssued(qr="1"))
    dispatcher.emit(received("Oi"))
    dispatcher.emit(Ready())
    await dispatcher.join()

    assert applied == [Ready()]
    await dispatcher.close()


@pytest.mark.asyncio
async def test_events_after_close_are_dropped():
    applied = []
    dispatcher = make_dispatcher(on_lifecycle=applied.append)

    await dispatcher.close()
    dispatcher.emit(Ready())
    await asyncio.sleep(0.01)

    assert dispatcher.closed
    assert applied == []
