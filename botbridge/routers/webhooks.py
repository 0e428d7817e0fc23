"""Webhook routes between chat channels and the bot backend.

``POST /bot/channel/{channel_name}`` receives events from a client channel
and forwards them to the bot. ``POST /bot/webhook/receiver`` receives the
bot's replies and hands them to the channel that started the conversation.
The channel name travels inside the conversation's user id (see
:mod:`botbridge.routing`), so no state is kept between the two calls.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from ..app_logging import scrub
from ..bots.messages import BotMessage
from ..bots.webhook import (
    WebhookClient,
    WebhookDeliveryError,
    WebhookDestination,
    WebhookPayloadError,
    WebhookSignatureError,
)
from ..channels import ChannelAdapter, ChannelError, InboundReply, NoOpEvent
from ..config import Settings
from ..routing import RoutingKey, RoutingKeyError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def _registry(request: Request) -> Mapping[str, ChannelAdapter]:
    return request.app.state.registry


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _webhook(request: Request) -> WebhookClient:
    return request.app.state.webhook


async def _forward_to_bot(
    webhook: WebhookClient,
    message: BotMessage,
    destination: WebhookDestination,
    timeout: float,
) -> None:
    logger.info("Forwarding message for %s to bot", message.user_id)
    await asyncio.wait_for(webhook.send(message, destination), timeout)


async def _forward_after_acknowledgement(
    webhook: WebhookClient,
    message: BotMessage,
    destination: WebhookDestination,
    timeout: float,
) -> None:
    """Background forward; the channel already has its response."""
    try:
        await _forward_to_bot(webhook, message, destination, timeout)
    except Exception:
        logger.exception("Failed to forward acknowledged message for %s", message.user_id)


@router.post("/bot/channel/{channel_name}")
async def channel_webhook(
    channel_name: str, request: Request, background_tasks: BackgroundTasks
) -> Response:
    adapter = _registry(request).get(channel_name)
    if adapter is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Channel receiver '{channel_name}' is not defined",
        )

    body = await request.body()
    try:
        payload = json.loads(body) if body else {}
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid JSON payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")

    logger.info("CLIENT MESSAGE '%s'", channel_name)
    logger.debug("Client payload: %s", json.dumps(scrub(payload), indent=2))

    settings = _settings(request)
    reply = InboundReply()
    try:
        message = await asyncio.wait_for(
            adapter.receive(payload, reply), settings.request_timeout
        )
    except NoOpEvent as exc:
        logger.info("No message for bot from '%s': %s", channel_name, exc)
        return Response(status_code=status.HTTP_200_OK)
    except ChannelError as exc:
        logger.warning("Rejected '%s' request: %s", channel_name, exc)
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except asyncio.TimeoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=f"Channel '{channel_name}' timed out",
        ) from exc

    try:
        message.user_id = RoutingKey(channel_name, message.user_id).encode()
    except RoutingKeyError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    webhook = _webhook(request)
    destination = settings.bot_destination
    if reply.acknowledged:
        background_tasks.add_task(
            _forward_after_acknowledgement,
            webhook,
            message,
            destination,
            settings.request_timeout,
        )
        return JSONResponse(content=reply.body)

    try:
        await _forward_to_bot(webhook, message, destination, settings.request_timeout)
    except WebhookDeliveryError as exc:
        logger.error("Bot delivery failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except asyncio.TimeoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="Bot webhook timed out"
        ) from exc
    return Response(status_code=status.HTTP_200_OK)


@router.post("/bot/webhook/receiver")
async def bot_receiver(request: Request) -> Response:
    settings = _settings(request)
    try:
        message = await _webhook(request).receive(request, settings.webhook_secret)
    except WebhookSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except WebhookPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        key = RoutingKey.decode(message.user_id)
    except RoutingKeyError:
        key = None
    adapter = _registry(request).get(key.channel) if key else None
    if key is None or adapter is None:
        channel_name = key.channel if key else message.user_id
        return PlainTextResponse(
            f"Channel responder '{channel_name}' is not defined",
            status_code=status.HTTP_404_NOT_FOUND,
        )

    message.user_id = key.native_id
    logger.info("BOT MESSAGE '%s'", key.channel)
    logger.debug("Bot payload: %s", json.dumps(message.to_dict(), indent=2))

    try:
        await asyncio.wait_for(adapter.respond(message), settings.request_timeout)
    except asyncio.TimeoutError:
        logger.error("Channel '%s' timed out delivering bot reply", key.channel)
        return PlainTextResponse(
            f"Channel '{key.channel}' timed out",
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        )
    except Exception as exc:
        logger.exception("Channel '%s' failed to deliver bot reply", key.channel)
        return PlainTextResponse(str(exc), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response(status_code=status.HTTP_200_OK)
