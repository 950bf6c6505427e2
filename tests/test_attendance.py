"""End-to-end attendance flows on the mock WhatsApp backend."""

import asyncio

import pytest
import pytest_asyncio

from conftest import CUSTOMER, TENANT, FakeGenerator, active_config
from app.schemas import SessionStatus
from app.services.attendance import ESCALATION_NOTICE, build_attendance
from app.services.whatsapp import MockWhatsAppBackend


@pytest_asyncio.fixture
async def attendance():
    attendance = build_attendance(
        backend=MockWhatsAppBackend(qr_delay=0, qr_rotations=0, scan_delay=0),
        generator=FakeGenerator(delay=0.05),
        typing_delay=0.05,
    )
    attendance.configs.replace(TENANT, active_config())
    yield attendance
    await attendance.shutdown()


async def start_ready(attendance, tenant_id=TENANT):
    await attendance.sessions.start(tenant_id)
    for _ in range(200):
        if attendance.sessions.status(tenant_id).status == SessionStatus.READY:
            return attendance.sessions.handle_for(tenant_id)
        await asyncio.sleep(0.01)
    raise AssertionError("mock session never became READY")


async def history(attendance):
    messages = await attendance.list_messages(TENANT, CUSTOMER, limit=50)
    return [m.body for m in messages]


@pytest.mark.asyncio
async def test_help_request_during_reply_stays_escalated(attendance):
    handle = await start_ready(attendance)

    handle.inject_inbound(CUSTOMER, "Qual o horário?")
    await asyncio.sleep(0.01)
    handle.inject_inbound(CUSTOMER, "quero falar com atendente")
    await attendance.sessions.wait_idle(TENANT)

    assert attendance.tracker.is_escalated(TENANT, CUSTOMER)

    handle.inject_inbound(CUSTOMER, "E a pizza?")
    await attendance.sessions.wait_idle(TENANT)

    bodies = await history(attendance)
    assert bodies[-1] == "E a pizza?"
    assert bodies.count(ESCALATION_NOTICE) == 1
    assert attendance.tracker.is_escalated(TENANT, CUSTOMER)


@pytest.mark.asyncio
async def test_operator_reply_hands_chat_back_to_bot(attendance):
    handle = await start_ready(attendance)

    handle.inject_inbound(CUSTOMER, "atendente")
    await attendance.sessions.wait_idle(TENANT)
    assert attendance.tracker.is_escalated(TENANT, CUSTOMER)

    await handle.send_message(CUSTOMER, "Oi! Aqui é a Ana, do restaurante.")
    await attendance.sessions.wait_idle(TENANT)
    assert not attendance.tracker.is_escalated(TENANT, CUSTOMER)

    handle.inject_inbound(CUSTOMER, "Tem pizza?")
    await attendance.sessions.wait_idle(TENANT)

    bodies = await history(attendance)
    assert bodies[-1] == FakeGenerator().reply
