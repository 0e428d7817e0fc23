"""Bot backend message model and webhook client."""

from .messages import (
    ActionType,
    BotMessage,
    BotProfile,
    PayloadType,
    postback_message,
    text_message,
)
from .webhook import (
    WebhookClient,
    WebhookDeliveryError,
    WebhookDestination,
    WebhookError,
    WebhookPayloadError,
    WebhookSignatureError,
)

__all__ = [
    "ActionType",
    "BotMessage",
    "BotProfile",
    "PayloadType",
    "WebhookClient",
    "WebhookDeliveryError",
    "WebhookDestination",
    "WebhookError",
    "WebhookPayloadError",
    "WebhookSignatureError",
    "postback_message",
    "text_message",
]
