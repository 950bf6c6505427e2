"""
Message Classifier & Responder

Decides what the bot does with each WhatsApp message of a tenant:

    own message      → ends a pending help request (human took over)
    inactive tenant  → silence
    help keywords    → flag the chat, tell the customer an attendant is coming
    flagged chat     → silence until a human answers
    anything else    → "typing...", model reply, canned fallback on failure

Every error on this path is absorbed here. A customer in an active,
non-escalated chat always gets an answer, even when the model is down.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
import re
import unicodedata
from collections import deque
from typing import Optional

from app.core.exceptions import GenerationServiceError, TransportError
from app.schemas import TenantConfig
from app.services.attendance.chat_state import ChatStateTracker
from app.services.attendance.config_store import TenantConfigStore
from app.services.generation.base import BaseGenerationService
from app.services.whatsapp.base import (
    AutomationHandle,
    ChatMessage,
    MessageEvent,
    MessageSentByOperator,
)

logger = logging.getLogger(__name__)


# =============================================================================
# FIXED TEXTS & PATTERNS
# =============================================================================

ESCALATION_NOTICE = "🔔 Um atendente foi notificado e falará com você em breve."

APOLOGY_TEXT = "Desculpe, não consegui processar sua pergunta agora. 😕"

# Ids of bot replies awaiting their own echo, per chat
SENT_ID_LIMIT = 32

# Substring match on normalized text: "ajudar" also matches "ajuda"
HELP_KEYWORDS = (
    "atendente",
    "humano",
    "ajuda",
    "suporte",
    "falar com alguem",
    "falar com atendente",
)

GREETING_PATTERN = re.compile(
    r"^(oi|olá|ola|bom dia|boa tarde|boa noite|iniciar|start)$",
    re.IGNORECASE,
)


def normalize_text(text: str) -> str:
    """Lowercase and strip diacritics ("Atendénte" -> "atendente")."""
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def is_help_request(text: str) -> bool:
    normalized = normalize_text(text)
    return any(keyword in normalized for keyword in HELP_KEYWORDS)


def is_greeting(text: str) -> bool:
    return bool(GREETING_PATTERN.match((text or "").strip()))


# =============================================================================
# PROMPT & FALLBACK TEXT
# =============================================================================

def build_prompt(config: TenantConfig, customer_message: str, default_name: str) -> str:
    """
    Build the persona prompt for one customer message.

    Args:
        config: Tenant snapshot for this message
        customer_message: Raw text sent by the customer
        default_name: Restaurant name used when the config has none

    Returns:
        str: Prompt sent to the generation service
    """
    name = config.name or default_name
    menu_link = config.menu_link or "Solicite o link"
    message = (customer_message or "").replace('"', "'")

    return f"""
Você é um agente virtual de atendimento ao cliente via WhatsApp do restaurante "{name}", simpático, educado, rápido e confiável.

CONTEXTO DO RESTAURANTE:
- Nome: {name}
- Cardápio Digital: {menu_link}
- Horário de Atendimento: {config.hours or "Consulte no perfil"}
- Endereço: {config.address or "Consulte no perfil"}
- Telefone de Contato: {config.contact_phone or "Este número"}

SEU PAPEL:
- Atender clientes de forma clara, amigável e profissional.
- Responder perguntas sobre produtos, pedidos, horários, preços, entregas e formas de pagamento.
- Ajudar o cliente sem usar linguagem técnica.

PERSONALIDADE:
- Simpático, paciente e acessível, um pouco divertido sem exageros.
- Use emojis com moderação 🙂🍕📦.
- Nunca discuta com o cliente nem responda de forma rude ou irônica.

REGRAS DE COMUNICAÇÃO:
- Use frases curtas e fáceis de entender.
- Sempre se coloque à disposição no final da resposta.
- Se não souber algo, diga que irá verificar e orientar corretamente.
- Para sugestões, recomende o cardápio no link: {config.menu_link or "link do cardápio"}.

O QUE EVITAR:
- Palavrões, respostas secas como "não sei" ou "não", respostas longas demais.
- Inventar informações.

MENSAGEM DO CLIENTE: "{message}"

Responda seguindo estritamente sua personalidade e diretrizes.
""".strip()


def build_fallback(config: TenantConfig, customer_message: str, default_name: str) -> str:
    """Canned reply used when the generation service is unavailable."""
    menu_link = config.menu_link

    if is_greeting(customer_message):
        welcome = config.welcome_message or f"Olá! Bem-vindo ao {config.name or default_name}."
        if menu_link:
            return f"{welcome}\nConfira nosso cardápio: {menu_link}"
        return welcome

    if menu_link:
        return f"{APOLOGY_TEXT}\nMas você pode conferir nosso cardápio aqui: {menu_link}"
    return APOLOGY_TEXT


# =============================================================================
# RESPONDER
# =============================================================================

class MessageResponder:
    """
    Handles message events for every tenant.

    Args:
        tracker: Escalation state shared with the HTTP facade
        configs: Tenant configuration snapshots
        generator: Text generation service
        typing_delay: Seconds between the typing indicator and the reply
        generation_timeout: Upper bound on one generation call
        default_name: Restaurant name used when a config has none
    """

    def __init__(
        self,
        tracker: ChatStateTracker,
        configs: TenantConfigStore,
        generator: BaseGenerationService,
        typing_delay: float = 2.0,
        generation_timeout: Optional[float] = 10.0,
        default_name: str = "Jataí Food",
    ):
        self.tracker = tracker
        self.configs = configs
        self.generator = generator
        self.typing_delay = typing_delay
        self.generation_timeout = generation_timeout
        self.default_name = default_name
        self._sent_ids: dict[tuple[str, str], deque] = {}

    async def handle_event(
        self,
        tenant_id: str,
        handle: AutomationHandle,
        event: MessageEvent,
    ) -> None:
        """Entry point wired into the session dispatcher."""
        message = event.message
        if message.is_group or message.is_status:
            return

        if isinstance(event, MessageSentByOperator) or message.from_me:
            self.handle_outbound(tenant_id, message)
        else:
            await self.handle_inbound(tenant_id, handle, message)

    def handle_outbound(self, tenant_id: str, message: ChatMessage) -> None:
        """
        A message from the tenant's own account ends a pending help request.

        Echoes of the bot's own replies (and the escalation notice) are
        not human replies and leave the escalation in place.
        """
        if self._consume_sent_id(tenant_id, message):
            return
        if (message.body or "").strip() == ESCALATION_NOTICE:
            return
        self.tracker.resolve(tenant_id, message.chat_id)

    async def handle_inbound(
        self,
        tenant_id: str,
        handle: AutomationHandle,
        message: ChatMessage,
    ) -> None:
        chat_id = message.chat_id
        logger.info(f"📨 Message from {chat_id} ({tenant_id}): \"{message.body}\"")

        config = self.configs.get(tenant_id)
        if config is None or not config.is_active:
            logger.debug(f"Tenant {tenant_id} inactive, not answering {chat_id}")
            return

        if is_help_request(message.body):
            self.tracker.request_help(tenant_id, chat_id)
            await self._send(tenant_id, handle, message, ESCALATION_NOTICE)
            return

        if self.tracker.is_escalated(tenant_id, chat_id):
            logger.info(f"🔕 Bot silenced for {chat_id} (waiting for a human attendant)")
            return

        await self._show_typing(handle, chat_id)

        try:
            reply = await self._generate(config, message.body)
            logger.info(f"✅ AI reply generated for {chat_id}")
        except asyncio.TimeoutError:
            logger.error(f"❌ Generation timed out after {self.generation_timeout}s for {chat_id}")
            reply = build_fallback(config, message.body, self.default_name)
        except GenerationServiceError as e:
            logger.error(f"❌ Error generating AI reply for {chat_id}: {e}")
            reply = build_fallback(config, message.body, self.default_name)
        except Exception as e:
            logger.exception(f"❌ Unexpected generation error for {chat_id}: {e}")
            reply = build_fallback(config, message.body, self.default_name)

        await self._send(tenant_id, handle, message, reply)

    async def _generate(self, config: TenantConfig, body: str) -> str:
        prompt = build_prompt(config, body, self.default_name)
        text = await asyncio.wait_for(self.generator.generate(prompt), timeout=self.generation_timeout)
        if not text or not text.strip():
            raise GenerationServiceError("Empty reply from generation service")
        return text

    async def _show_typing(self, handle: AutomationHandle, chat_id: str) -> None:
        try:
            await handle.send_typing(chat_id)
        except TransportError as e:
            logger.debug(f"Typing indicator failed for {chat_id}: {e}")
        if self.typing_delay > 0:
            await asyncio.sleep(self.typing_delay)

    async def _send(
        self,
        tenant_id: str,
        handle: AutomationHandle,
        message: ChatMessage,
        text: str,
    ) -> bool:
        """Reply once; delivery failures are logged and dropped."""
        try:
            sent_id = await handle.send_message(
                message.chat_id, text, quoted_message_id=message.message_id
            )
        except TransportError as e:
            logger.error(f"Failed to reply in {message.chat_id}: {e}")
            return False

        if sent_id:
            key = (tenant_id, message.chat_id)
            self._sent_ids.setdefault(key, deque(maxlen=SENT_ID_LIMIT)).append(sent_id)
        return True

    def _consume_sent_id(self, tenant_id: str, message: ChatMessage) -> bool:
        """Drop a bot reply id once its echo arrives. True if it was one."""
        key = (tenant_id, message.chat_id)
        pending = self._sent_ids.get(key)
        if not pending or message.message_id not in pending:
            return False

        pending.remove(message.message_id)
        if not pending:
            del self._sent_ids[key]
        return True
