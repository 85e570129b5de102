"""
Channel Base
============

A Channel delivers one formatted message. Throttling, coalescing and
retries belong to the dispatcher, not to channels.
"""

import asyncio
import logging
from typing import Any, Dict, Type

from ..config import ChannelSpec
from ..errors import ChannelSendError, ConfigError

logger = logging.getLogger(__name__)


class Channel:
    """Base class for notification channels."""

    kind: str = None

    def __init__(self, channel_id: str):
        self.id = channel_id

    async def send(self, title: str, body: str):
        """
        Deliver one message.

        Raises:
            ChannelSendError: delivery failed (the dispatcher retries)
        """
        raise NotImplementedError

    @classmethod
    def from_spec(cls, spec: ChannelSpec) -> "Channel":
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


class BlockingChannel(Channel):
    """Channel backed by a blocking client library; sends run in a worker thread."""

    async def send(self, title: str, body: str):
        await asyncio.to_thread(self._send_blocking, title, body)

    def _send_blocking(self, title: str, body: str):
        raise NotImplementedError


# Registry of channel variants: kind -> class
CHANNEL_TYPES: Dict[str, Type[Channel]] = {}


def register_channel(cls: Type[Channel]) -> Type[Channel]:
    CHANNEL_TYPES[cls.kind] = cls
    return cls


def build_channel(spec: ChannelSpec, dry_run: bool = False) -> Channel:
    """
    Construct a channel from its configuration.

    With dry_run every channel becomes a console channel so nothing leaves
    the process.

    Raises:
        ConfigError: unknown kind or missing credentials
    """
    # Imported here so every variant module has registered itself
    from . import console, mail, server_chan, telegram  # noqa: F401

    if dry_run:
        return CHANNEL_TYPES["console"].from_spec(spec)

    cls = CHANNEL_TYPES.get(spec.kind)
    if cls is None:
        valid = ", ".join(sorted(CHANNEL_TYPES))
        raise ConfigError(f"Channel {spec.id}: unknown kind {spec.kind!r} (valid: {valid})")
    return cls.from_spec(spec)


def option(spec: ChannelSpec, key: str, fallback: Any = None, required: bool = True) -> Any:
    """Read a channel option, falling back to the environment-derived value."""
    value = spec.options.get(key)
    if value in (None, ""):
        value = fallback
    if required and value in (None, ""):
        raise ConfigError(f"Channel {spec.id}: '{key}' is required for kind {spec.kind}")
    return value


__all__ = [
    "Channel",
    "BlockingChannel",
    "ChannelSendError",
    "CHANNEL_TYPES",
    "register_channel",
    "build_channel",
    "option",
]
