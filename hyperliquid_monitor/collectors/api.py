"""
Structured API Collector

GETs a JSON document and extracts the monitored value with JSONPath.
"""

import logging
from typing import Any, Optional

import aiohttp
from jsonpath_ng import parse as parse_jsonpath
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError

from ..errors import MalformedDataError, SelectorNotFoundError
from ..models import Target, TargetKind
from .base import Collector, register_collector

logger = logging.getLogger(__name__)


@register_collector
class ApiCollector(Collector):
    """Collector for `api` targets."""

    kind = TargetKind.API

    async def fetch(self, target: Target, session: aiohttp.ClientSession) -> Any:
        document = await self._get(session, target, as_json=True)
        return extract_json(document, target.selector, target.id)


def extract_json(document: Any, selector: Optional[str], target_id: str = None) -> Any:
    """
    Apply a JSONPath selector to a decoded document.

    No selector (or "$") returns the whole document. A single match returns
    that value, several matches return a list of them in document order.

    Raises:
        MalformedDataError: the selector is not valid JSONPath
        SelectorNotFoundError: the selector matched nothing
    """
    selector = (selector or "").strip()
    if not selector or selector == "$":
        return document

    try:
        expression = parse_jsonpath(selector)
    except (JsonPathLexerError, JsonPathParserError) as e:
        raise MalformedDataError(f"Invalid JSONPath {selector!r}: {e}", target_id)

    matches = [match.value for match in expression.find(document)]
    if not matches:
        raise SelectorNotFoundError(f"JSONPath {selector!r} matched nothing", target_id)

    logger.debug(f"JSONPath {selector!r} matched {len(matches)} value(s)")
    if len(matches) == 1:
        return matches[0]
    return matches
