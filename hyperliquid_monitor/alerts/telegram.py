"""
Telegram Alerts
===============

Telegram Bot API channel.

Messages are sent as HTML; title and body are escaped so observed values
containing markup can't break formatting.
"""

import html
import logging

import requests

from ..config import ChannelSpec, config
from ..errors import ChannelSendError
from .base import BlockingChannel, option, register_channel

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"
TRUNCATION_MARKER = "\n... (truncated)"


@register_channel
class TelegramChannel(BlockingChannel):
    """
    Telegram alert sender.

    Never logs the request URL or exception details, which would expose
    the bot token.
    """

    kind = "telegram"

    def __init__(
        self,
        channel_id: str,
        bot_token: str,
        chat_id: str,
        max_message_length: int = None,
        request_timeout: float = 10,
    ):
        super().__init__(channel_id)
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.max_message_length = max_message_length or config.max_message_length
        self.request_timeout = request_timeout

    @classmethod
    def from_spec(cls, spec: ChannelSpec) -> "TelegramChannel":
        return cls(
            channel_id=spec.id,
            bot_token=option(spec, "bot_token", config.telegram_bot_token),
            chat_id=str(option(spec, "chat_id", config.telegram_chat_id)),
        )

    def _truncate_message(self, text: str, limit: int = None) -> str:
        """Truncate raw text to ``limit`` visible characters (default: Telegram's limit)."""
        limit = self.max_message_length if limit is None else limit
        if len(text) > limit:
            return text[:max(limit - len(TRUNCATION_MARKER), 0)] + TRUNCATION_MARKER
        return text

    def format_message(self, title: str, body: str) -> str:
        # Telegram counts the limit after entity parsing, so cut before escaping
        # to keep every entity and the <b> tag whole.
        title = self._truncate_message(title)
        text = f"<b>{html.escape(title)}</b>"
        budget = self.max_message_length - len(title) - 1
        if body and (len(body) <= budget or budget > len(TRUNCATION_MARKER)):
            text += f"\n{html.escape(self._truncate_message(body, budget))}"
        return text

    def _send_blocking(self, title: str, body: str):
        url = f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": self.format_message(title, body),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        try:
            response = requests.post(url, json=payload, timeout=self.request_timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise ChannelSendError("Telegram request timed out", self.id)
        except requests.exceptions.HTTPError as e:
            # Log status code without exposing token in URL
            status_code = e.response.status_code if e.response is not None else "unknown"
            if status_code == 429:
                logger.warning("Telegram rate limit hit (429) - backing off")
            raise ChannelSendError(f"Telegram HTTP error: {status_code}", self.id)
        except requests.exceptions.ConnectionError:
            raise ChannelSendError("Telegram connection error - network issue", self.id)
        except requests.exceptions.RequestException:
            raise ChannelSendError("Telegram request failed", self.id)

        try:
            result = response.json()
        except ValueError:
            raise ChannelSendError("Telegram returned a non-JSON response", self.id)
        if not result.get("ok", False):
            raise ChannelSendError(
                f"Telegram rejected message: {result.get('description', 'unknown error')}",
                self.id,
            )

        message_id = result.get("result", {}).get("message_id")
        logger.info(f"Telegram alert sent successfully (message_id: {message_id})")
