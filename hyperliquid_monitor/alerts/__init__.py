"""
Alerts Package
==============

Notification channels and message formatting.

Components:
- base.py: Channel base class, channel registry, build_channel()
- telegram.py: Telegram Bot API
- server_chan.py: ServerChan (WeChat push)
- mail.py: SMTP email
- console.py: dry-run output
- formatting.py: single and coalesced message layout
"""

from .base import Channel, BlockingChannel, CHANNEL_TYPES, build_channel
from .console import ConsoleChannel
from .mail import EmailChannel
from .server_chan import ServerChanChannel
from .telegram import TelegramChannel
from .formatting import format_event, format_batch

__all__ = [
    "Channel",
    "BlockingChannel",
    "CHANNEL_TYPES",
    "build_channel",
    "ConsoleChannel",
    "EmailChannel",
    "ServerChanChannel",
    "TelegramChannel",
    "format_event",
    "format_batch",
]
