"""
Static Page Collector

GETs an HTML page and extracts the monitored fragment with a CSS selector.
"""

import logging
from typing import Optional

import aiohttp
from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from ..errors import MalformedDataError, SelectorNotFoundError
from ..models import Target, TargetKind
from .base import Collector, register_collector

logger = logging.getLogger(__name__)

# Selectors that mean "the whole page"
WHOLE_PAGE_SELECTORS = {"", "*", "body"}


@register_collector
class StaticPageCollector(Collector):
    """Collector for `static_page` targets."""

    kind = TargetKind.STATIC_PAGE

    async def fetch(self, target: Target, session: aiohttp.ClientSession) -> str:
        html = await self._get(session, target)
        return extract_html(html, target.selector, target.id)


def extract_html(html: str, selector: Optional[str], target_id: str = None) -> str:
    """
    Extract content from an HTML document.

    Whole-page selectors return the visible page text. Any other selector
    returns the inner HTML of every matching element, newline-joined.

    Raises:
        MalformedDataError: the CSS selector is invalid
        SelectorNotFoundError: no element matched
    """
    soup = BeautifulSoup(html, "html.parser")
    selector = (selector or "").strip()

    if selector in WHOLE_PAGE_SELECTORS:
        text = soup.get_text("\n", strip=True)
        logger.debug(f"Using entire page content: {len(text)} chars")
        return text

    try:
        elements = soup.select(selector)
    except SelectorSyntaxError as e:
        raise MalformedDataError(f"Invalid CSS selector {selector!r}: {e}", target_id)

    if not elements:
        raise SelectorNotFoundError(f"No elements match {selector!r}", target_id)

    content = "\n".join(element.decode_contents().strip() for element in elements)
    logger.debug(f"Content retrieved: {len(content)} chars from {len(elements)} element(s)")
    return content
