"""Base abstractions for chat channel adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from ..bots.messages import BotMessage


class ChannelError(Exception):
    """Request-level failure raised by an adapter, mapped to an HTTP status."""

    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class InvalidTokenError(ChannelError):
    status_code = 403


class NoOpEvent(Exception):
    """Signals an event that must not produce any bot traffic.

    This is not an error: the router answers the platform with a bare
    success response and forwards nothing.
    """

    def __init__(self, event_type: str | None = None) -> None:
        super().__init__(f"Event {event_type!r} produces no bot message")
        self.event_type = event_type


class InboundReply:
    """Handle on the inbound HTTP response for synchronous acknowledgements.

    Adapters call :meth:`acknowledge` when the platform expects a body on the
    webhook response itself. The router writes it before the message is
    forwarded to the bot.
    """

    def __init__(self) -> None:
        self.body: dict[str, Any] | None = None

    @property
    def acknowledged(self) -> bool:
        return self.body is not None

    def acknowledge(self, body: dict[str, Any]) -> None:
        if self.acknowledged:
            raise RuntimeError("Inbound request already acknowledged")
        self.body = body


class ChannelAdapter(ABC):
    """Abstract base class encapsulating channel-specific behaviour."""

    #: Lowercase channel identifier used in routes and configuration.
    channel_name: str

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Any) -> ChannelAdapter:
        """Build the adapter from application settings."""

    @abstractmethod
    async def receive(
        self, payload: Mapping[str, Any], reply: InboundReply
    ) -> BotMessage:
        """Validate a webhook payload and convert it into a bot message.

        Raises :class:`ChannelError` for invalid requests and
        :class:`NoOpEvent` for events that should not reach the bot.
        """

    @abstractmethod
    async def respond(self, message: BotMessage) -> None:
        """Deliver a bot reply to the channel, returning once it is accepted."""

    def _to_bot_payload(self, event: Mapping[str, Any]) -> BotMessage:
        raise NotImplementedError

    def _to_channel_payload(self, message: BotMessage) -> dict[str, Any]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} channel={self.channel_name}>"
