"""
WhatsApp Bridge Backend

Production implementation that drives a whatsapp-web.js sidecar over HTTP.
Used when ENV_MODE=production or ENV_MODE=staging.

The sidecar owns the headless browser (one LocalAuth login per tenant).
This service only issues commands; lifecycle and message events come back
through POST /webhooks/whatsapp/{tenant_id}, which feeds them into the
session's event channel.

Bridge API:
    POST   /sessions/{tenant}/start                 {webhookUrl, token}
    DELETE /sessions/{tenant}
    POST   /sessions/{tenant}/messages              {chatId, body, quotedMessageId}
    POST   /sessions/{tenant}/chats/{chat}/typing
    GET    /sessions/{tenant}/chats
    GET    /sessions/{tenant}/chats/{chat}/messages?limit=N
    GET    /health

Requirements:
    - WHATSAPP_BRIDGE_URL pointing at the sidecar
    - WHATSAPP_BRIDGE_TOKEN shared with the sidecar

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from app.core.config import get_settings
from app.core.exceptions import SessionInitError, TeardownError, TransportError
from app.services.whatsapp.base import (
    AutomationHandle,
    BaseWhatsAppBackend,
    ChatInfo,
    ChatMessage,
    EventSink,
)

logger = logging.getLogger(__name__)


class BridgeAutomationHandle(AutomationHandle):
    """A tenant login living inside the bridge sidecar."""

    def __init__(
        self,
        tenant_id: str,
        emit: EventSink,
        client: httpx.AsyncClient,
        webhook_url: str,
        token: Optional[str],
    ):
        super().__init__(tenant_id, emit)
        self._client = client
        self._webhook_url = webhook_url
        self._token = token
        self._destroyed = False

    @property
    def _base(self) -> str:
        return f"/sessions/{quote(self.tenant_id, safe='')}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._destroyed:
            raise TransportError("Session was destroyed", tenant_id=self.tenant_id)
        try:
            response = await self._client.request(method, f"{self._base}{path}", **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            raise TransportError(f"Bridge request failed: {e}", tenant_id=self.tenant_id) from e

    async def initialize(self) -> None:
        payload = {
            "webhookUrl": f"{self._webhook_url}/{quote(self.tenant_id, safe='')}",
            "token": self._token,
        }
        try:
            response = await self._client.post(f"{self._base}/start", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Bridge failed to start session {self.tenant_id}: {e}")
            raise SessionInitError(str(e), tenant_id=self.tenant_id) from e

        logger.info(f"Bridge session {self.tenant_id} initializing")

    async def destroy(self) -> None:
        self._destroyed = True
        try:
            response = await self._client.delete(self._base)
            if response.status_code != 404:
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise TeardownError(str(e), tenant_id=self.tenant_id) from e

    async def send_message(
        self,
        chat_id: str,
        body: str,
        quoted_message_id: Optional[str] = None,
    ) -> Optional[str]:
        response = await self._request(
            "POST",
            "/messages",
            json={"chatId": chat_id, "body": body, "quotedMessageId": quoted_message_id},
        )
        try:
            return response.json().get("id")
        except ValueError:
            logger.debug(f"Bridge sent to {chat_id} without returning a message id")
            return None

    async def send_typing(self, chat_id: str) -> None:
        await self._request("POST", f"/chats/{quote(chat_id, safe='')}/typing")

    async def get_chats(self) -> list[ChatInfo]:
        response = await self._request("GET", "/chats")
        return [
            ChatInfo(
                chat_id=item["id"],
                name=item.get("name") or item.get("number", ""),
                number=item.get("number", ""),
                unread_count=item.get("unreadCount", 0),
                last_message=item.get("lastMessage") or "",
                timestamp=item.get("timestamp") or 0,
            )
            for item in response.json().get("chats", [])
        ]

    async def fetch_messages(self, chat_id: str, limit: int = 50) -> list[ChatMessage]:
        response = await self._request(
            "GET",
            f"/chats/{quote(chat_id, safe='')}/messages",
            params={"limit": limit},
        )
        return [
            ChatMessage(
                message_id=item["id"],
                chat_id=chat_id,
                body=item.get("body") or "",
                from_me=bool(item.get("fromMe")),
                timestamp=item.get("timestamp") or 0,
                author=item.get("author"),
            )
            for item in response.json().get("messages", [])
        ]


class BridgeWhatsAppBackend(BaseWhatsAppBackend):
    """
    Production WhatsApp backend talking to the whatsapp-web.js bridge.

    One pooled httpx.AsyncClient is shared by every tenant handle and closed
    on application shutdown.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()

        headers = {}
        if settings.whatsapp_bridge_token:
            headers["X-Bridge-Token"] = settings.whatsapp_bridge_token
        else:
            logger.warning("WHATSAPP_BRIDGE_TOKEN not configured")

        self._client = client or httpx.AsyncClient(
            base_url=settings.whatsapp_bridge_url,
            headers=headers,
            timeout=settings.bridge_timeout_seconds,
        )
        self._webhook_url = settings.webhook_base_url
        self._token = settings.whatsapp_bridge_token

        logger.info(f"BridgeWhatsAppBackend initialized ({settings.whatsapp_bridge_url})")

    @property
    def provider_name(self) -> str:
        return "bridge"

    def create_handle(self, tenant_id: str, emit: EventSink) -> BridgeAutomationHandle:
        return BridgeAutomationHandle(
            tenant_id,
            emit,
            client=self._client,
            webhook_url=self._webhook_url,
            token=self._token,
        )

    async def health_check(self) -> bool:
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Bridge health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()
