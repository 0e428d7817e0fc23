"""Canonical bot message model shared by every channel adapter."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PayloadType(str, Enum):
    TEXT = "text"
    POSTBACK = "postback"
    CARD = "card"
    ATTACHMENT = "attachment"
    LOCATION = "location"


class ActionType(str, Enum):
    POSTBACK = "postback"
    URL = "url"
    CALL = "call"


@dataclass
class BotProfile:
    """Sender details attached to messages forwarded to the bot."""

    platform_context: str
    user_id: str
    first_name: str
    last_name: str
    email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "platformContext": self.platform_context,
            "userId": self.user_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }
        if self.email is not None:
            data["email"] = self.email
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BotProfile:
        return cls(
            platform_context=str(data.get("platformContext", "")),
            user_id=str(data.get("userId", "")),
            first_name=str(data.get("firstName", "")),
            last_name=str(data.get("lastName", "")),
            email=data.get("email"),
        )


@dataclass
class BotMessage:
    """A message on the bot webhook, in either direction.

    ``user_id`` is the conversation identifier. It is opaque to the bot and
    comes back unchanged on every reply, which is what lets the router find
    the originating channel again.
    """

    user_id: str
    message_payload: dict[str, Any]
    profile: BotProfile | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def payload_type(self) -> str | None:
        return self.message_payload.get("type")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extras)
        data["userId"] = self.user_id
        data["messagePayload"] = self.message_payload
        if self.profile is not None:
            data["profile"] = self.profile.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BotMessage:
        """Parse the webhook envelope, keeping unknown keys in ``extras``."""

        user_id = data.get("userId")
        payload = data.get("messagePayload")
        if not isinstance(user_id, str) or not user_id:
            raise ValueError("Bot message is missing 'userId'")
        if not isinstance(payload, Mapping):
            raise ValueError("Bot message is missing 'messagePayload'")
        profile = data.get("profile")
        extras = {
            k: v
            for k, v in data.items()
            if k not in {"userId", "messagePayload", "profile"}
        }
        return cls(
            user_id=user_id,
            message_payload=dict(payload),
            profile=BotProfile.from_dict(profile) if isinstance(profile, Mapping) else None,
            extras=extras,
        )


def text_message(text: str) -> dict[str, Any]:
    return {"type": PayloadType.TEXT.value, "text": text}


def postback_message(postback: Any) -> dict[str, Any]:
    return {"type": PayloadType.POSTBACK.value, "postback": postback}
