from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from chat_analytics.core.database import get_db
from chat_analytics.core.errors import NotFound, StorageError, ValidationError
from chat_analytics.middleware.rate_limit import client_ip
from chat_analytics.schemas.event import ChatRequest, ChatResponse
from chat_analytics.services.ingestion import IngestionService

logger = structlog.get_logger()
router = APIRouter(tags=["chat"])


@router.post("/api/chat", response_model=ChatResponse)
async def chat(
        payload: ChatRequest,
        request: Request,
        db: AsyncSession = Depends(get_db)
):
    """
    Log one message_sent event, then proxy the message to the completion service.

    Event logging is best effort: a storage failure never changes the reply.
    """
    missing = payload.missing_identity_fields()
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    state = request.app.state
    ip = client_ip(request, state.settings.trust_proxy_headers)
    state.chat_rate_limit.check(ip, payload.anonymous_user_id)

    service = IngestionService(db, state.partner_normalizer, state.settings.tz)
    try:
        await service.record_message_sent(
            partner_code=payload.partner_code,
            anonymous_user_id=payload.anonymous_user_id,
            session_id=payload.session_id,
        )
    except StorageError as e:
        logger.error("event_logging_failed", error=str(e.__cause__ or e))

    reply = await state.completion_client.complete(payload.message)
    return ChatResponse(reply=reply)


@router.get("/p/{partner_code}", include_in_schema=False)
async def partner_landing(partner_code: str, request: Request):
    """Chat page for a shareable partner link"""
    state = request.app.state
    if not state.partner_normalizer.is_valid_for_routing(partner_code):
        raise NotFound("Unknown partner")

    return FileResponse(Path(state.settings.static_dir) / "index.html")
