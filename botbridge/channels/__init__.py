"""Channel adapter registry for multi-channel messaging support."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

from .base import ChannelAdapter, ChannelError, InboundReply, InvalidTokenError, NoOpEvent
from .hangouts import HangoutsChatChannel

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

#: Every adapter the bridge ships with, keyed by channel name.
CHANNEL_TYPES: Mapping[str, type[ChannelAdapter]] = MappingProxyType(
    {HangoutsChatChannel.channel_name: HangoutsChatChannel}
)


def get_adapter_class(name: str) -> type[ChannelAdapter]:
    """Retrieve an adapter class for ``name`` or raise ``KeyError``."""
    normalized = name.lower()
    if normalized not in CHANNEL_TYPES:
        raise KeyError(f"Channel '{name}' is not supported")
    return CHANNEL_TYPES[normalized]


def build_registry(settings: Settings) -> Mapping[str, ChannelAdapter]:
    """Instantiate the enabled channels once, as a read-only mapping."""

    adapters: dict[str, ChannelAdapter] = {}
    for name in settings.enabled_channels:
        try:
            adapter_cls = get_adapter_class(name)
        except KeyError as exc:
            raise ValueError(str(exc.args[0])) from exc
        adapters[adapter_cls.channel_name] = adapter_cls.from_settings(settings)
        logger.info("Registered channel: %s", adapter_cls.channel_name)
    return MappingProxyType(adapters)


__all__ = [
    "CHANNEL_TYPES",
    "ChannelAdapter",
    "ChannelError",
    "InboundReply",
    "InvalidTokenError",
    "NoOpEvent",
    "build_registry",
    "get_adapter_class",
]
