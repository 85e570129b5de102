"""
Hyperliquid API Client

Single responsibility: communicate with Hyperliquid REST API.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..config import config
from ..errors import CollectorNetworkError, MalformedDataError
from ..models import PositionState

logger = logging.getLogger(__name__)


class HyperliquidClient:
    """
    Async client for Hyperliquid API.

    Handles:
    - Fetching open positions for a single address
    - Rate limiting and retries

    Failures raise CollectorError subclasses; a missing response is never
    reported as "no positions".
    """

    def __init__(
        self,
        url: str = None,
        session: aiohttp.ClientSession = None,
        max_concurrent: int = 5,
    ):
        self.url = url or config.hyperliquid_url
        self.max_concurrent = max_concurrent
        self._session = session
        self._owns_session = session is None
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        """Create session and semaphore if needed."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def _request(self, payload: dict, retries: int = None) -> Any:
        """
        Make a request to the Hyperliquid API with retry logic.

        Args:
            payload: JSON payload to send
            retries: Number of retries (default from config)

        Returns:
            Decoded JSON response

        Raises:
            CollectorNetworkError: transport failure or error status
            MalformedDataError: response body is not JSON
        """
        await self._ensure_session()
        retries = retries if retries is not None else config.max_retries
        last_error = "no attempts made"

        for attempt in range(retries + 1):
            try:
                async with self._semaphore:
                    async with self._session.post(
                        self.url,
                        json=payload,
                        headers={"Content-Type": "application/json"},
                    ) as response:
                        if response.status == 429:
                            # Rate limited - back off
                            backoff = config.rate_limit_backoff_sec * (2 ** attempt)
                            logger.warning(f"Rate limited, backing off {backoff}s")
                            last_error = "rate limited (429)"
                            await asyncio.sleep(backoff)
                            continue

                        if response.status != 200:
                            body = await response.text()
                            raise CollectorNetworkError(
                                f"Hyperliquid API error {response.status}: {body[:200]}"
                            )

                        try:
                            return await response.json(content_type=None)
                        except ValueError as e:
                            raise MalformedDataError(f"Hyperliquid returned invalid JSON: {e}")

            except aiohttp.ClientError as e:
                logger.debug(f"Request error (attempt {attempt + 1}): {e}")
                last_error = str(e)
                if attempt < retries:
                    await asyncio.sleep(config.rate_limit_backoff_sec)
                continue

        raise CollectorNetworkError(f"Hyperliquid request failed: {last_error}")

    # -------------------------------------------------------------------------
    # Public Methods
    # -------------------------------------------------------------------------

    async def get_positions(self, address: str, dex: str = "") -> List[PositionState]:
        """
        Get all open positions for a single address on an exchange.

        Args:
            address: Wallet address (0x...)
            dex: Exchange identifier ("" for main, "xyz" for TradeXYZ)

        Returns:
            List of PositionState objects
        """
        payload = {"type": "clearinghouseState", "user": address}
        if dex:
            payload["dex"] = dex

        response = await self._request(payload)
        return parse_positions(response, address, dex)


# -----------------------------------------------------------------------------
# Response Parsing
# -----------------------------------------------------------------------------

def parse_positions(response: Dict[str, Any], address: str, dex: str = "") -> List[PositionState]:
    """
    Parse a clearinghouseState response into PositionState objects.

    Raises:
        MalformedDataError: if the response shape or a numeric field is invalid
    """
    if not isinstance(response, dict):
        raise MalformedDataError(f"clearinghouseState for {address} is not an object")

    asset_positions = response.get("assetPositions")
    if not isinstance(asset_positions, list):
        raise MalformedDataError(f"clearinghouseState for {address} has no assetPositions")

    positions = []
    for item in asset_positions:
        pos_data = item.get("position") if isinstance(item, dict) else None
        if not pos_data:
            continue

        try:
            coin = pos_data["coin"]
            size = float(pos_data.get("szi", 0))
            if size == 0:
                continue

            side = "long" if size > 0 else "short"
            entry_price = float(pos_data.get("entryPx") or 0)
        except (ValueError, TypeError, KeyError) as e:
            raise MalformedDataError(f"Invalid position entry for {address}: {e}")

        # Sub-exchange coins may already carry the dex prefix
        asset = coin
        if dex and not coin.startswith(f"{dex}:"):
            asset = f"{dex}:{coin}"

        positions.append(PositionState(
            address=address,
            asset=asset,
            side=side,
            size=abs(size),
            entry_price=entry_price,
        ))

    return positions
