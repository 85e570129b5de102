"""
Hyperliquid Monitor
===================

Polls web pages, JSON APIs and Hyperliquid wallet positions, detects
changes and sends throttled notifications.
"""

__version__ = "0.1.0"
