"""
Email Alerts
============

SMTP delivery with STARTTLS.
"""

import logging
import smtplib
from email.mime.text import MIMEText

from ..config import ChannelSpec, config
from ..errors import ChannelSendError, ConfigError
from .base import BlockingChannel, option, register_channel

logger = logging.getLogger(__name__)


@register_channel
class EmailChannel(BlockingChannel):
    """Plain-text email channel."""

    kind = "email"

    def __init__(
        self,
        channel_id: str,
        host: str,
        port: int,
        sender: str,
        recipient: str,
        username: str = None,
        password: str = None,
        use_tls: bool = True,
        request_timeout: float = 15,
    ):
        super().__init__(channel_id)
        self.host = host
        self.port = port
        self.sender = sender
        self.recipient = recipient
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.request_timeout = request_timeout

    @classmethod
    def from_spec(cls, spec: ChannelSpec) -> "EmailChannel":
        env = config.smtp_settings
        port = option(spec, "port", env["port"])
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ConfigError(f"Channel {spec.id}: SMTP port must be a number, got {port!r}")

        return cls(
            channel_id=spec.id,
            host=option(spec, "host", env["host"]),
            port=port,
            sender=option(spec, "sender", env["sender"]),
            recipient=option(spec, "recipient", env["recipient"]),
            username=option(spec, "username", env["username"], required=False),
            password=option(spec, "password", env["password"], required=False),
            use_tls=bool(spec.options.get("use_tls", True)),
        )

    def build_message(self, title: str, body: str) -> MIMEText:
        msg = MIMEText(body or title, "plain", "utf-8")
        msg["Subject"] = title
        msg["From"] = self.sender
        msg["To"] = self.recipient
        return msg

    def _send_blocking(self, title: str, body: str):
        msg = self.build_message(title, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.request_timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.sender, [self.recipient], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelSendError(f"SMTP delivery failed: {e}", self.id)

        logger.info(f"Email sent to {self.recipient}")
