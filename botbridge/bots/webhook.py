"""Client for the bot backend's signed webhook protocol.

Messages to the bot are POSTed as compact JSON with an ``X-Hub-Signature``
header holding ``sha256=<hex digest>`` of the raw body, keyed with the
channel secret. Replies from the bot carry the same header and are verified
before they reach the router.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass

import httpx
from fastapi import Request

from .messages import BotMessage

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature"


class WebhookError(Exception):
    """Base class for bot webhook failures."""


class WebhookDeliveryError(WebhookError):
    """Raised when a message cannot be delivered to the bot."""


class WebhookSignatureError(WebhookError):
    """Raised when a bot reply carries an invalid signature."""


class WebhookPayloadError(WebhookError):
    """Raised when a bot reply body is not a valid message envelope."""


@dataclass(frozen=True)
class WebhookDestination:
    """Bot webhook URL and the secret used to sign requests to it."""

    url: str
    secret: str


def build_signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Validate ``signature`` for ``body``.

    Verification is skipped when no secret is configured.
    """

    if not secret:
        logger.warning("BOT_WEBHOOK_SECRET not configured, skipping verification")
        return True
    if not signature:
        return False
    return hmac.compare_digest(build_signature(body, secret), signature)


class WebhookClient:
    """Send messages to the bot and unwrap the bot's replies."""

    def __init__(
        self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    async def send(self, message: BotMessage, destination: WebhookDestination) -> None:
        if not destination.url:
            raise WebhookDeliveryError("BOT_WEBHOOK_URL not configured")

        body = json.dumps(message.to_dict(), separators=(",", ":")).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if destination.secret:
            headers[SIGNATURE_HEADER] = build_signature(body, destination.secret)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(destination.url, content=body, headers=headers)
            except httpx.HTTPError as exc:
                raise WebhookDeliveryError(f"Bot webhook unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise WebhookDeliveryError(
                f"Bot webhook error ({response.status_code}): {response.text}"
            )
        logger.debug("Delivered message for %s to bot", message.user_id)

    async def receive(self, request: Request, secret: str) -> BotMessage:
        body = await request.body()
        if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), secret):
            raise WebhookSignatureError("Invalid bot webhook signature")
        try:
            data = json.loads(body) if body else {}
        except json.JSONDecodeError as exc:
            raise WebhookPayloadError(f"Invalid JSON payload: {exc}") from exc
        if not isinstance(data, dict):
            raise WebhookPayloadError("Bot message must be a JSON object")
        try:
            return BotMessage.from_dict(data)
        except ValueError as exc:
            raise WebhookPayloadError(str(exc)) from exc
