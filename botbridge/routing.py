"""Routing keys that tie a bot conversation back to its channel."""

from __future__ import annotations

from dataclasses import dataclass

SEPARATOR = "|"


class RoutingKeyError(ValueError):
    """Raised when a routing key cannot be encoded or decoded unambiguously."""


@dataclass(frozen=True)
class RoutingKey:
    """Channel name plus the platform-native conversation identifier.

    The encoded form ``"<channel>|<native_id>"`` is what the bot sees as the
    conversation's user id. Neither component may contain the separator.
    """

    channel: str
    native_id: str

    def encode(self) -> str:
        if not self.channel:
            raise RoutingKeyError("Channel name must not be empty")
        if SEPARATOR in self.channel:
            raise RoutingKeyError(
                f"Channel name {self.channel!r} contains reserved separator {SEPARATOR!r}"
            )
        if SEPARATOR in self.native_id:
            raise RoutingKeyError(
                f"Identifier {self.native_id!r} contains reserved separator {SEPARATOR!r}"
            )
        return f"{self.channel}{SEPARATOR}{self.native_id}"

    @classmethod
    def decode(cls, value: str) -> RoutingKey:
        channel, sep, native_id = value.partition(SEPARATOR)
        if not sep or not channel:
            raise RoutingKeyError(f"{value!r} is not a routing key")
        return cls(channel=channel, native_id=native_id)
