from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from loguru import logger
from pydantic import ValidationError

from chatledger.core.config import Settings
from chatledger.schemas.webhook import WebhookAck, WebhookPayload
from chatledger.services.intake import IntakePipeline

router = APIRouter()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> IntakePipeline:
    return request.app.state.pipeline


@router.get("/healthz", response_model=dict)
async def healthz(request: Request) -> dict:
    state = request.app.state
    return {
        "status": "ok",
        "ai": state.ai_manager.get_provider_info(),
        "stt": state.stt_manager.get_provider_info(),
        "active_sessions": len(state.session_store),
    }


@router.get("/webhooks/whatsapp", response_class=PlainTextResponse)
async def verify_webhook(
    settings: Annotated[Settings, Depends(get_app_settings)],
    mode: Annotated[str | None, Query(alias="hub.mode")] = None,
    token: Annotated[str | None, Query(alias="hub.verify_token")] = None,
    challenge: Annotated[str, Query(alias="hub.challenge")] = "",
) -> PlainTextResponse:
    if mode in (None, "subscribe") and token is not None and token == settings.whatsapp_verify_token:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge)
    logger.warning("Webhook verification rejected", mode=mode)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification token mismatch")


@router.post("/webhooks/whatsapp", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: Annotated[IntakePipeline, Depends(get_pipeline)],
) -> WebhookAck:
    """Acknowledge at once; each message is handled after the response is sent."""
    try:
        payload = WebhookPayload.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        logger.warning("Malformed webhook payload", error=str(exc))
        return WebhookAck()

    inbound_messages = payload.iter_messages()
    if not inbound_messages:
        logger.debug("Webhook without messages ignored")
    for inbound in inbound_messages:
        background_tasks.add_task(pipeline.handle_message, inbound)
    return WebhookAck()
