"""
FastAPI Application Entry Point

Restaurant WhatsApp Attendance - per-tenant WhatsApp Web sessions with an
AI auto-responder and human hand-off.
Supports both Mock backends (development) and the real bridge + Gemini
(production).

Endpoints:
    - POST /sessions/{tenant_id}/start|stop: Session lifecycle
    - GET /sessions/{tenant_id}/status|qr: Polled by the dashboard
    - GET /sessions/{tenant_id}/chats[/{chat_id}/messages]: Attendance panel
    - GET /sessions/{tenant_id}/escalations: Chats waiting for a human
    - POST|GET /tenants/{tenant_id}/config: Restaurant config snapshot
    - POST /webhooks/whatsapp/{tenant_id}: Bridge event ingestion
    - POST /simulation/{tenant_id}/messages: Local testing endpoint
    - GET /health: System health check

Author: Khalil Bannouri
Version: 4.0.0
"""

import hmac
import logging
from datetime import datetime
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Query, Request, Header
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings, setup_logging
from app.core.exceptions import SessionNotReadyError, TransportError
from app.schemas import (
    ChatListResponse,
    ChatSummary,
    ConfigUpdateResponse,
    ErrorResponse,
    EscalationListResponse,
    EscalationSummary,
    HealthResponse,
    MessageListResponse,
    MessageSummary,
    QrResponse,
    SessionActionResponse,
    SessionStatusResponse,
    SimulatedMessageRequest,
    SimulatedMessageResponse,
    TenantConfig,
)
from app.services.attendance import Attendance, build_attendance
from app.services.whatsapp import MockAutomationHandle
from app.services.whatsapp.bridge_schemas import BridgeEventPayload

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    attendance = build_attendance()
    app.state.attendance = attendance

    logger.info(f"✅ WhatsApp Backend: {attendance.sessions.backend.provider_name}")
    logger.info(f"✅ Generation Service: {attendance.responder.generator.provider_name}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    for tenant_id in settings.autostart_tenants_list:
        await attendance.sessions.start(tenant_id)

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await attendance.shutdown()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Per-tenant WhatsApp Web sessions with an AI auto-responder "
        "and human hand-off for restaurants."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_attendance(request: Request) -> Attendance:
    """Attendance runtime built at startup."""
    return request.app.state.attendance


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🚀 {settings.app_name} is running",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    attendance: Attendance = Depends(get_attendance),
) -> HealthResponse:
    """Verify the WhatsApp backend and the generation service are reachable."""
    backend_ok = await attendance.sessions.backend.health_check()
    generator_ok = await attendance.responder.generator.health_check()

    return HealthResponse(
        status="operational" if backend_ok and generator_ok else "degraded",
        whatsapp_backend="healthy" if backend_ok else "unhealthy",
        generation_service="healthy" if generator_ok else "unhealthy",
        active_sessions=len(attendance.sessions.tenant_ids),
        timestamp=datetime.now(),
    )


# =============================================================================
# SESSION ENDPOINTS
# =============================================================================

@app.post(
    "/sessions/{tenant_id}/start",
    response_model=SessionActionResponse,
    tags=["Sessions"],
    summary="Start WhatsApp Session",
)
async def start_session(
    tenant_id: str,
    attendance: Attendance = Depends(get_attendance),
) -> SessionActionResponse:
    """
    Start the tenant's WhatsApp Web login.

    Returns immediately with INITIALIZING; poll /status for the QR code.
    Calling it again while a session is live is a no-op.
    """
    status = await attendance.sessions.start(tenant_id)
    return SessionActionResponse(status=status)


@app.post(
    "/sessions/{tenant_id}/stop",
    response_model=SessionActionResponse,
    tags=["Sessions"],
    summary="Stop WhatsApp Session",
)
async def stop_session(
    tenant_id: str,
    attendance: Attendance = Depends(get_attendance),
) -> SessionActionResponse:
    """Destroy the tenant's session. Safe to call when none exists."""
    status = await attendance.sessions.stop(tenant_id)
    return SessionActionResponse(status=status)


@app.get(
    "/sessions/{tenant_id}/status",
    response_model=SessionStatusResponse,
    tags=["Sessions"],
)
async def session_status(
    tenant_id: str,
    attendance: Attendance = Depends(get_attendance),
) -> SessionStatusResponse:
    """Current session status (QR included while one is on screen)."""
    snapshot = attendance.sessions.status(tenant_id)
    return SessionStatusResponse(status=snapshot.status, qr=snapshot.qr, error=snapshot.error)


@app.get(
    "/sessions/{tenant_id}/qr",
    response_model=QrResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Sessions"],
)
async def session_qr(
    tenant_id: str,
    attendance: Attendance = Depends(get_attendance),
) -> QrResponse:
    """Current QR payload, 404 when the session is not waiting for a scan."""
    qr = attendance.sessions.get_qr(tenant_id)
    if qr is None:
        raise HTTPException(status_code=404, detail="QR code not available")
    return QrResponse(qr=qr)


# =============================================================================
# CHAT ENDPOINTS
# =============================================================================

@app.get(
    "/sessions/{tenant_id}/chats",
    response_model=ChatListResponse,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    tags=["Chats"],
)
async def list_chats(
    tenant_id: str,
    attendance: Attendance = Depends(get_attendance),
) -> ChatListResponse:
    """Chats of a READY session, flagged when the customer asked for a human."""
    try:
        chats = await attendance.list_chats(tenant_id)
    except SessionNotReadyError:
        raise HTTPException(status_code=404, detail="Client not ready")
    except TransportError as e:
        logger.error(f"Error fetching chats for {tenant_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return ChatListResponse(
        chats=[
            ChatSummary(
                chat_id=c.chat_id,
                name=c.name,
                number=c.number,
                unread_count=c.unread_count,
                last_message=c.last_message,
                timestamp=c.timestamp,
                help_requested=c.help_requested,
                help_requested_at=c.help_requested_at,
            )
            for c in chats
        ]
    )


@app.get(
    "/sessions/{tenant_id}/chats/{chat_id}/messages",
    response_model=MessageListResponse,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    tags=["Chats"],
)
async def list_messages(
    tenant_id: str,
    chat_id: str,
    limit: int = Query(settings.chat_message_limit, ge=1, le=200),
    attendance: Attendance = Depends(get_attendance),
) -> MessageListResponse:
    """Recent messages of a chat, read straight from the session."""
    try:
        messages = await attendance.list_messages(tenant_id, chat_id, limit)
    except SessionNotReadyError:
        raise HTTPException(status_code=404, detail="Client not ready")
    except TransportError as e:
        logger.error(f"Error fetching messages for {chat_id} ({tenant_id}): {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return MessageListResponse(
        messages=[
            MessageSummary(id=m.message_id, from_me=m.from_me, body=m.body, timestamp=m.timestamp)
            for m in messages
        ]
    )


@app.get(
    "/sessions/{tenant_id}/escalations",
    response_model=EscalationListResponse,
    tags=["Chats"],
)
async def list_escalations(
    tenant_id: str,
    attendance: Attendance = Depends(get_attendance),
) -> EscalationListResponse:
    """Chats waiting for a human attendant, oldest first."""
    return EscalationListResponse(
        escalations=[
            EscalationSummary(chat_id=e.chat_id, requested_at=e.requested_at)
            for e in attendance.escalations(tenant_id)
        ]
    )


# =============================================================================
# TENANT CONFIG ENDPOINTS
# =============================================================================

@app.post(
    "/tenants/{tenant_id}/config",
    response_model=ConfigUpdateResponse,
    tags=["Config"],
)
async def update_config(
    tenant_id: str,
    config: TenantConfig,
    attendance: Attendance = Depends(get_attendance),
) -> ConfigUpdateResponse:
    """Replace the restaurant config the bot answers with."""
    attendance.configs.replace(tenant_id, config)
    return ConfigUpdateResponse(success=True)


@app.get(
    "/tenants/{tenant_id}/config",
    response_model=TenantConfig,
    responses={404: {"model": ErrorResponse}},
    tags=["Config"],
)
async def get_config(
    tenant_id: str,
    attendance: Attendance = Depends(get_attendance),
) -> TenantConfig:
    config = attendance.configs.get(tenant_id)
    if config is None:
        raise HTTPException(status_code=404, detail=f"No config for tenant {tenant_id}")
    return config


# =============================================================================
# BRIDGE WEBHOOK ENDPOINTS
# =============================================================================

@app.post(
    "/webhooks/whatsapp/{tenant_id}",
    tags=["Bridge Webhook"],
    summary="WhatsApp Bridge Webhook Endpoint",
)
async def whatsapp_webhook(
    tenant_id: str,
    payload: BridgeEventPayload,
    attendance: Attendance = Depends(get_attendance),
    x_bridge_token: Optional[str] = Header(None, alias="x-bridge-token"),
) -> dict[str, Any]:
    """
    Receive session events from the whatsapp-web.js bridge.

    The bridge calls this URL (registered when the session starts) for
    every QR code, login step, disconnect and message of the tenant.
    """
    expected = settings.whatsapp_bridge_token
    if expected and not hmac.compare_digest(x_bridge_token or "", expected):
        raise HTTPException(status_code=401, detail="Invalid bridge token")

    logger.debug(f"Bridge webhook for {tenant_id}: {payload.type.value}")

    event = payload.to_event()
    if event is None:
        return {"status": "ignored"}

    accepted = attendance.sessions.publish(tenant_id, event)
    return {"status": "accepted" if accepted else "ignored"}


# =============================================================================
# SIMULATION ENDPOINTS
# =============================================================================

@app.post(
    "/simulation/{tenant_id}/messages",
    response_model=SimulatedMessageResponse,
    tags=["Simulation"],
    summary="Simulate Customer Message (Development)",
)
async def simulate_message(
    tenant_id: str,
    request_data: SimulatedMessageRequest,
    attendance: Attendance = Depends(get_attendance),
) -> SimulatedMessageResponse:
    """
    Inject a customer message into a mock session.

    Use scripts/simulate.py to drive whole conversations through this
    endpoint.
    """
    if not settings.is_development:
        raise HTTPException(
            status_code=403,
            detail="Simulation endpoint only available in development mode"
        )

    try:
        handle = attendance.sessions.handle_for(tenant_id)
    except SessionNotReadyError:
        raise HTTPException(status_code=404, detail="Client not ready")

    if not isinstance(handle, MockAutomationHandle):
        raise HTTPException(status_code=400, detail="Session is not a mock session")

    message = handle.inject_inbound(request_data.chat_id, request_data.body)
    return SimulatedMessageResponse(success=True, message_id=message.message_id)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.api_host, port=settings.api_port)
