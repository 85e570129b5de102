"""
Position Feed Collector

Fetches the open positions of one wallet across the configured dexes.
"""

import logging
from typing import FrozenSet, Iterable

import aiohttp

from ..api.hyperliquid import HyperliquidClient
from ..errors import MalformedDataError
from ..models import PositionState, Target, TargetKind
from .base import Collector, register_collector

logger = logging.getLogger(__name__)


@register_collector
class PositionFeedCollector(Collector):
    """Collector for `position_feed` targets."""

    kind = TargetKind.POSITION_FEED

    def __init__(self, url: str = None):
        self.url = url

    async def fetch(
        self,
        target: Target,
        session: aiohttp.ClientSession,
    ) -> FrozenSet[PositionState]:
        client = HyperliquidClient(url=self.url, session=session)

        positions = []
        for dex in target.dexes:
            dex_positions = await client.get_positions(target.locator, dex)
            logger.debug(
                f"{target.id}: {len(dex_positions)} positions on '{dex or 'main'}'"
            )
            positions.extend(dex_positions)

        return build_observation(positions, target.id)


def build_observation(
    positions: Iterable[PositionState],
    target_id: str = None,
) -> FrozenSet[PositionState]:
    """
    Turn a list of positions into an observation set.

    Raises:
        MalformedDataError: if two positions share an (address, asset) key
    """
    positions = list(positions)
    seen = set()
    for position in positions:
        if position.key in seen:
            raise MalformedDataError(
                f"Duplicate position for {position.address} {position.asset}", target_id
            )
        seen.add(position.key)
    return frozenset(positions)
