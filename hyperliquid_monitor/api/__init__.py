"""
API Package
===========

External API clients.

Components:
- hyperliquid.py: HyperliquidClient, clearinghouseState parsing
"""

from .hyperliquid import HyperliquidClient, parse_positions

__all__ = [
    "HyperliquidClient",
    "parse_positions",
]
