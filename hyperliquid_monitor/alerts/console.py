"""
Console Alerts
==============

Prints notifications instead of sending them (dry runs, local testing).
"""

import logging

from ..config import ChannelSpec
from .base import Channel, register_channel

logger = logging.getLogger(__name__)


@register_channel
class ConsoleChannel(Channel):
    """Dry-run channel: logs and prints every message."""

    kind = "console"

    @classmethod
    def from_spec(cls, spec: ChannelSpec) -> "ConsoleChannel":
        return cls(spec.id)

    async def send(self, title: str, body: str):
        logger.info(f"[DRY RUN] {self.id}: {title}")
        print(f"\n{'='*60}")
        print(f"[DRY RUN] {self.id}: {title}")
        print("=" * 60)
        if body:
            print(body)
        print("=" * 60 + "\n")
