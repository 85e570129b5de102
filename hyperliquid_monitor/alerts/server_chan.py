"""
ServerChan Alerts
=================

Push notifications to WeChat through ServerChan (Turbo and sctp keys).
"""

import logging
import re

import requests

from ..config import ChannelSpec, config
from ..errors import ChannelSendError, ConfigError
from .base import BlockingChannel, option, register_channel

logger = logging.getLogger(__name__)

SCTP_KEY_PATTERN = re.compile(r"sctp(\d+)t")


def server_chan_url(key: str) -> str:
    """
    Resolve the send endpoint for a ServerChan key.

    sctp keys route to a per-user push host, everything else to the
    classic Turbo endpoint.
    """
    if key.startswith("sctp"):
        match = SCTP_KEY_PATTERN.match(key)
        if not match:
            raise ConfigError("ServerChan key format is incorrect")
        return f"https://{match.group(1)}.push.ft07.com/send/{key}.send"
    return f"https://sctapi.ftqq.com/{key}.send"


@register_channel
class ServerChanChannel(BlockingChannel):
    """ServerChan notification channel."""

    kind = "server_chan"

    def __init__(self, channel_id: str, key: str, request_timeout: float = 10):
        super().__init__(channel_id)
        self.url = server_chan_url(key)
        self.request_timeout = request_timeout

    @classmethod
    def from_spec(cls, spec: ChannelSpec) -> "ServerChanChannel":
        return cls(channel_id=spec.id, key=option(spec, "key", config.server_chan_key))

    def _send_blocking(self, title: str, body: str):
        # ServerChan titles are limited to 32 characters
        payload = {"text": title[:32], "desp": body or title}

        try:
            response = requests.post(self.url, data=payload, timeout=self.request_timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout:
            raise ChannelSendError("ServerChan request timed out", self.id)
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            raise ChannelSendError(f"ServerChan HTTP error: {status_code}", self.id)
        except requests.exceptions.RequestException:
            raise ChannelSendError("ServerChan request failed", self.id)
        except ValueError:
            raise ChannelSendError("ServerChan returned a non-JSON response", self.id)

        code = data.get("code", -1)
        if code != 0:
            message = data.get("message", "Unknown error")
            raise ChannelSendError(f"ServerChan rejected message: {message}", self.id)

        logger.debug("ServerChan notification sent successfully")
