"""
Target Models
=============

A Target is one monitored source with its own polling schedule.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class TargetKind(Enum):
    """Closed set of collector variants."""
    API = "api"
    STATIC_PAGE = "static_page"
    POSITION_FEED = "position_feed"


@dataclass(frozen=True)
class Target:
    """
    One monitored source.

    Immutable after creation. Reloading configuration replaces targets
    rather than editing them.
    """
    id: str
    kind: TargetKind
    locator: str                     # URL, or wallet address for position feeds
    interval: float                  # Seconds between polls
    selector: Optional[str] = None   # JSONPath (api) or CSS selector (static_page)
    notes: str = ""
    dexes: Tuple[str, ...] = field(default=("",))  # "" = main Hyperliquid

    def __post_init__(self):
        if self.interval <= 0:
            raise ValueError(f"Target {self.id}: interval must be > 0")

    @property
    def label(self) -> str:
        """Display name used in notifications."""
        return self.notes or self.locator
