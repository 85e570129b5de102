"""
Collectors Package
==================

One collector variant per target kind.

Components:
- base.py: Collector base class, CollectorSet (shared session + dispatch by kind)
- api.py: ApiCollector (JSON + JSONPath)
- static_page.py: StaticPageCollector (HTML + CSS selector)
- position_feed.py: PositionFeedCollector (Hyperliquid clearinghouseState)
"""

from .base import Collector, CollectorSet, build_default_collectors
from .api import ApiCollector, extract_json
from .static_page import StaticPageCollector, extract_html
from .position_feed import PositionFeedCollector, build_observation

__all__ = [
    "Collector",
    "CollectorSet",
    "build_default_collectors",
    "ApiCollector",
    "extract_json",
    "StaticPageCollector",
    "extract_html",
    "PositionFeedCollector",
    "build_observation",
]
