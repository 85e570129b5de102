"""
Collector Base

Collectors fetch one raw observation for one target. They are read-only:
the only thing shared between them is the aiohttp session.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Type

import aiohttp

from ..config import config
from ..errors import (
    CollectorError,
    CollectorNetworkError,
    CollectorTimeoutError,
    MalformedDataError,
)
from ..models import Target, TargetKind

logger = logging.getLogger(__name__)


class Collector:
    """Base class for the collector variants."""

    kind: TargetKind = None

    async def fetch(self, target: Target, session: aiohttp.ClientSession) -> Any:
        raise NotImplementedError

    async def _get(
        self,
        session: aiohttp.ClientSession,
        target: Target,
        as_json: bool = False,
    ) -> Any:
        """
        HTTP GET the target locator.

        Returns:
            Decoded JSON if as_json, else response text

        Raises:
            CollectorNetworkError, CollectorTimeoutError, MalformedDataError
        """
        logger.debug(f"GET {target.locator} for {target.id}")
        try:
            async with session.get(target.locator) as response:
                if response.status >= 400:
                    raise CollectorNetworkError(
                        f"HTTP {response.status} from {target.locator}", target.id
                    )
                if as_json:
                    try:
                        return await response.json(content_type=None)
                    except ValueError as e:
                        raise MalformedDataError(
                            f"Invalid JSON from {target.locator}: {e}", target.id
                        )
                try:
                    return await response.text()
                except UnicodeDecodeError as e:
                    raise MalformedDataError(
                        f"Undecodable response from {target.locator}: {e}", target.id
                    )
        except asyncio.TimeoutError:
            raise CollectorTimeoutError(f"Timed out fetching {target.locator}", target.id)
        except aiohttp.ClientError as e:
            raise CollectorNetworkError(
                f"Request to {target.locator} failed: {e}", target.id
            )


class CollectorSet:
    """
    The closed set of collector variants, keyed by target kind.

    Owns the aiohttp session used by every collector.
    """

    def __init__(
        self,
        collectors: Dict[TargetKind, Collector] = None,
        session: aiohttp.ClientSession = None,
        timeout_sec: float = None,
    ):
        self._collectors = collectors if collectors is not None else build_default_collectors()
        self._session = session
        self._owns_session = session is None
        self.timeout_sec = timeout_sec or config.fetch_timeout_sec

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_sec),
                headers={"User-Agent": config.user_agent},
            )
            self._owns_session = True
        return self._session

    async def fetch(self, target: Target) -> Any:
        """
        Fetch one observation for a target.

        Raises:
            CollectorError: any transport, selector or parsing failure
        """
        collector = self._collectors.get(target.kind)
        if collector is None:
            raise CollectorError(f"No collector for kind {target.kind.value}", target.id)

        session = await self._ensure_session()
        return await collector.fetch(target, session)

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None


# Registry of collector variants, filled in by build_default_collectors()
COLLECTOR_TYPES: Dict[TargetKind, Type[Collector]] = {}


def register_collector(cls: Type[Collector]) -> Type[Collector]:
    COLLECTOR_TYPES[cls.kind] = cls
    return cls


def build_default_collectors() -> Dict[TargetKind, Collector]:
    # Imported here so every variant module has registered itself
    from . import api, static_page, position_feed  # noqa: F401

    return {kind: cls() for kind, cls in COLLECTOR_TYPES.items()}


def describe_error(error: Optional[BaseException]) -> Optional[str]:
    """Short error string for status views."""
    if error is None:
        return None
    return f"{type(error).__name__}: {error}"
