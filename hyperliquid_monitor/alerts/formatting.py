"""
Message Formatting
==================

Turns one or more ChangeEvents into a (title, body) pair for a channel.

Several events pending on a throttled channel are coalesced into one
message, listed in detection order.
"""

from typing import List, Sequence, Tuple

import pytz

from ..config import config
from ..models import ChangeEvent


def format_time(event: ChangeEvent, timezone_name: str = None) -> str:
    tz = pytz.timezone(timezone_name or config.display_timezone)
    return event.detected_at.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S %Z")


def format_event(event: ChangeEvent, timezone_name: str = None) -> Tuple[str, str]:
    """Title and body for a single event."""
    body = f"{event.description}\n\nDetected: {format_time(event, timezone_name)}"
    return event.title, body


def format_batch(events: Sequence[ChangeEvent], timezone_name: str = None) -> Tuple[str, str]:
    """
    Title and body for a coalesced batch.

    A batch of one is formatted exactly like a single event. Larger batches
    are ordered by detection time (stable for equal timestamps).
    """
    if not events:
        raise ValueError("Cannot format an empty batch")
    if len(events) == 1:
        return format_event(events[0], timezone_name)

    ordered = sorted(events, key=lambda e: e.detected_at)
    sections: List[str] = []
    for index, event in enumerate(ordered, 1):
        sections.append(
            f"{index}. [{format_time(event, timezone_name)}] {event.title}\n"
            f"{event.description}"
        )

    title = f"{len(ordered)} changes"
    return title, "\n\n".join(sections)
