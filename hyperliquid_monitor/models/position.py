"""
Position Models
===============

Dataclasses for position-feed observations from Hyperliquid.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class PositionState:
    """A single open position within a position-feed observation."""
    address: str
    asset: str         # "BTC", or "xyz:TSLA" for sub-exchange assets
    side: str          # "long" or "short"
    size: float        # Absolute size, always > 0
    entry_price: float

    @property
    def key(self) -> Tuple[str, str]:
        """Identity of this position within one observation."""
        return (self.address, self.asset)

    def describe(self) -> str:
        return f"{self.asset} {self.side} {self.size:g} @ {format_price(self.entry_price)}"


class DeltaKind(Enum):
    """How a position changed between two polls."""
    OPENED = "opened"
    CLOSED = "closed"
    SIZE_CHANGED = "size_changed"
    SIDE_FLIPPED = "side_flipped"


@dataclass(frozen=True)
class PositionDelta:
    """One difference between two PositionState sets."""
    key: Tuple[str, str]
    kind: DeltaKind
    before: Optional[PositionState]
    after: Optional[PositionState]

    def describe(self) -> str:
        """Human readable one-liner for notifications."""
        asset = self.key[1]
        if self.kind == DeltaKind.OPENED:
            return f"OPENED {self.after.describe()}"
        if self.kind == DeltaKind.CLOSED:
            return f"CLOSED {self.before.describe()}"
        if self.kind == DeltaKind.SIDE_FLIPPED:
            return (
                f"FLIPPED {asset} {self.before.side} {self.before.size:g} -> "
                f"{self.after.side} {self.after.size:g}"
            )
        return (
            f"SIZE {asset} {self.after.side} "
            f"{self.before.size:g} -> {self.after.size:g}"
        )


def format_price(p: float) -> str:
    if p >= 1000:
        return f"${p:,.0f}"
    elif p >= 1:
        return f"${p:.2f}"
    else:
        return f"${p:.6f}"
