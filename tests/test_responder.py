"""Tests for message classification, escalation gating and fallback replies."""

import pytest

from conftest import (
    CUSTOMER,
    MENU_LINK,
    TENANT,
    FakeGenerator,
    active_config,
    make_message,
)
from app.core.exceptions import GenerationServiceError
from app.services.attendance import MessageResponder, build_fallback, build_prompt
from app.services.attendance.responder import (
    APOLOGY_TEXT,
    ESCALATION_NOTICE,
    is_greeting,
    is_help_request,
    normalize_text,
)
from app.services.whatsapp.base import MessageReceived, MessageSentByOperator


# =============================================================================
# CLASSIFICATION
# =============================================================================

@pytest.mark.parametrize("text", [
    "FALAR COM ATENDENTE",
    "falar com atendénte",
    "Ajuda!!",
    "Quero falar com um humano",
    "preciso de suporte",
    "ajudar com o pedido",
])
def test_help_request_detected(text):
    assert is_help_request(text)


@pytest.mark.parametrize("text", [
    "Bom dia",
    "Quanto custa a pizza X?",
    "",
])
def test_regular_message_is_not_help_request(text):
    assert not is_help_request(text)


def test_normalize_text_strips_accents_and_case():
    assert normalize_text("Atendénte HUMANO, Olá") == "atendente humano, ola"


@pytest.mark.parametrize("text", ["Oi", "olá", "Bom dia", "  BOA NOITE ", "start"])
def test_greetings(text):
    assert is_greeting(text)


@pytest.mark.parametrize("text", ["Oi, tudo bem?", "Bom dia! Tem pizza?", "cardápio"])
def test_not_greetings(text):
    assert not is_greeting(text)


# =============================================================================
# PROMPT & FALLBACK
# =============================================================================

def test_prompt_carries_restaurant_context():
    config = active_config(hours="18h às 23h", address="Rua das Flores, 100")

    prompt = build_prompt(config, 'Tem "promoção"?', "Padrão")

    assert '"Jataí Food"' in prompt
    assert MENU_LINK in prompt
    assert "18h às 23h" in prompt
    assert "Rua das Flores, 100" in prompt
    assert "MENSAGEM DO CLIENTE: \"Tem 'promoção'?\"" in prompt


def test_prompt_uses_defaults_for_missing_fields():
    config = active_config(name=None, menu_link=None)

    prompt = build_prompt(config, "Oi", "Padrão")

    assert '"Padrão"' in prompt
    assert "Solicite o link" in prompt
    assert "Consulte no perfil" in prompt


def test_fallback_greeting_with_welcome_message():
    config = active_config(welcome_message="Seja bem-vindo! 🍔")

    reply = build_fallback(config, "Bom dia", "Padrão")

    assert reply == f"Seja bem-vindo! 🍔\nConfira nosso cardápio: {MENU_LINK}"


def test_fallback_greeting_without_welcome_message():
    reply = build_fallback(active_config(), "Oi", "Padrão")

    assert reply == f"Olá! Bem-vindo ao Jataí Food.\nConfira nosso cardápio: {MENU_LINK}"


def test_fallback_apology_with_menu_link():
    reply = build_fallback(active_config(), "Quanto custa a pizza X?", "Padrão")

    assert reply == f"{APOLOGY_TEXT}\nMas você pode conferir nosso cardápio aqui: {MENU_LINK}"


def test_fallback_apology_without_menu_link():
    reply = build_fallback(active_config(menu_link=None), "Quanto custa a pizza X?", "Padrão")

    assert reply == APOLOGY_TEXT


# =============================================================================
# RESPONDER
# =============================================================================

@pytest.mark.asyncio
async def test_regular_message_gets_generated_reply(responder, handle, generator):
    message = make_message("Quanto custa a pizza?")

    await responder.handle_event(TENANT, handle, MessageReceived(message=message))

    assert handle.typing == [CUSTOMER]
    assert handle.sent == [(CUSTOMER, generator.reply, message.message_id)]
    assert "Quanto custa a pizza?" in generator.prompts[0]


@pytest.mark.asyncio
async def test_help_request_escalates_and_notifies(responder, handle, tracker, generator):
    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Quero um ATENDENTE")))

    assert tracker.is_escalated(TENANT, CUSTOMER)
    assert [body for _, body, _ in handle.sent] == [ESCALATION_NOTICE]
    assert generator.prompts == []


@pytest.mark.asyncio
async def test_escalated_chat_is_silent(responder, handle, tracker, generator):
    tracker.request_help(TENANT, CUSTOMER)

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("E a pizza?")))

    assert handle.sent == []
    assert handle.typing == []
    assert generator.prompts == []


@pytest.mark.asyncio
async def test_repeated_help_request_keeps_first_timestamp(responder, handle, tracker):
    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("ajuda")))
    first = tracker.get(TENANT, CUSTOMER)

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("AJUDA!!")))

    assert tracker.get(TENANT, CUSTOMER) == first
    assert [body for _, body, _ in handle.sent] == [ESCALATION_NOTICE, ESCALATION_NOTICE]


@pytest.mark.asyncio
async def test_inactive_tenant_is_ignored(responder, handle, tracker, configs, generator):
    configs.replace(TENANT, active_config(is_active=False))

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Bom dia")))
    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("atendente")))

    assert handle.sent == []
    assert not tracker.is_escalated(TENANT, CUSTOMER)
    assert generator.prompts == []


@pytest.mark.asyncio
async def test_tenant_without_config_is_ignored(responder, handle):
    await responder.handle_event("unknown", handle, MessageReceived(message=make_message("Bom dia")))

    assert handle.sent == []


@pytest.mark.asyncio
async def test_generation_failure_greeting_falls_back_to_welcome(tracker, configs, handle, failing_generator):
    responder = MessageResponder(tracker, configs, failing_generator, typing_delay=0)

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Bom dia")))

    assert handle.sent[0][1] == f"Olá! Bem-vindo ao Jataí Food.\nConfira nosso cardápio: {MENU_LINK}"


@pytest.mark.asyncio
async def test_generation_failure_question_falls_back_to_apology(tracker, configs, handle, failing_generator):
    responder = MessageResponder(tracker, configs, failing_generator, typing_delay=0)

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Quanto custa a pizza X?")))

    assert handle.sent[0][1] == f"{APOLOGY_TEXT}\nMas você pode conferir nosso cardápio aqui: {MENU_LINK}"


@pytest.mark.asyncio
async def test_generation_timeout_falls_back(tracker, configs, handle):
    slow = FakeGenerator(delay=1.0)
    responder = MessageResponder(tracker, configs, slow, typing_delay=0, generation_timeout=0.05)

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Quanto custa?")))

    assert handle.sent[0][1].startswith(APOLOGY_TEXT)


@pytest.mark.asyncio
async def test_empty_generation_falls_back(tracker, configs, handle):
    responder = MessageResponder(tracker, configs, FakeGenerator(reply="   "), typing_delay=0)

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Oi")))

    assert handle.sent[0][1].startswith("Olá! Bem-vindo ao Jataí Food.")


@pytest.mark.asyncio
async def test_unexpected_generation_error_falls_back(tracker, configs, handle):
    responder = MessageResponder(tracker, configs, FakeGenerator(error=RuntimeError("boom")), typing_delay=0)

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Quanto custa?")))

    assert len(handle.sent) == 1


@pytest.mark.asyncio
async def test_operator_reply_resolves_escalation(responder, handle, tracker, generator):
    tracker.request_help(TENANT, CUSTOMER)
    operator = make_message("Oi! Sou a Ana, como posso ajudar?", from_me=True, message_id="true_1")

    await responder.handle_event(TENANT, handle, MessageSentByOperator(message=operator))
    assert not tracker.is_escalated(TENANT, CUSTOMER)

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Quanto custa?")))
    assert handle.sent[-1][1] == generator.reply


@pytest.mark.asyncio
async def test_escalation_notice_does_not_resolve(responder, handle, tracker):
    tracker.request_help(TENANT, CUSTOMER)
    notice = make_message(ESCALATION_NOTICE, from_me=True, message_id="true_2")

    await responder.handle_event(TENANT, handle, MessageSentByOperator(message=notice))

    assert tracker.is_escalated(TENANT, CUSTOMER)


@pytest.mark.asyncio
async def test_echo_of_bot_reply_does_not_resolve(responder, handle, tracker, generator):
    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Qual o horário?")))
    tracker.request_help(TENANT, CUSTOMER)

    echo = make_message(generator.reply, from_me=True, message_id=f"true_{CUSTOMER}_1")
    await responder.handle_event(TENANT, handle, MessageSentByOperator(message=echo))
    assert tracker.is_escalated(TENANT, CUSTOMER)

    # the same id is only skipped once; a later human reply still resolves
    operator = make_message("Oi, sou a Ana!", from_me=True, message_id="true_operator_1")
    await responder.handle_event(TENANT, handle, MessageSentByOperator(message=operator))
    assert not tracker.is_escalated(TENANT, CUSTOMER)


@pytest.mark.asyncio
async def test_group_and_status_messages_are_ignored(responder, handle, tracker):
    for chat_id in ("120363000000@g.us", "status@broadcast"):
        await responder.handle_event(
            TENANT, handle, MessageReceived(message=make_message("atendente", chat_id=chat_id))
        )

    assert handle.sent == []
    assert tracker.list(TENANT) == []


@pytest.mark.asyncio
async def test_send_failure_is_absorbed(responder, handle):
    handle.destroyed = True

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Bom dia")))

    assert handle.sent == []


@pytest.mark.asyncio
async def test_generation_error_type_is_not_leaked(tracker, configs, handle):
    responder = MessageResponder(
        tracker, configs, FakeGenerator(error=GenerationServiceError("model not found")), typing_delay=0
    )

    await responder.handle_event(TENANT, handle, MessageReceived(message=make_message("Oi")))

    assert "model not found" not in handle.sent[0][1]
