"""
Configuration for Hyperliquid Monitor

Engine defaults live in the Config dataclass. Targets and channels are read
from a JSON file by load_monitor_config() and validated before any
scheduling begins.
"""

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .models import Target, TargetKind

# Load .env file from project root
_project_root = Path(__file__).parent.parent
_env_path = _project_root / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


# =============================================================================
# Engine Configuration
# =============================================================================

@dataclass
class Config:
    """All engine settings."""

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------
    # Upper bound on a single Collector.fetch (seconds)
    fetch_timeout_sec: float = 30.0

    # Consecutive failures before a target is reported degraded
    degraded_threshold: int = 3

    # -------------------------------------------------------------------------
    # Notification Delivery
    # -------------------------------------------------------------------------
    # Upper bound on a single Channel.send (seconds)
    send_timeout_sec: float = 15.0

    # Delivery attempts per coalesced message before it is dropped
    max_send_attempts: int = 4

    # Retry backoff: base * 2 ** attempt
    retry_base_delay_sec: float = 2.0

    # Pending events per channel before the oldest is dropped
    channel_queue_size: int = 256

    # Telegram rejects messages above 4096 characters
    max_message_length: int = 4000

    # Timestamps in notifications
    display_timezone: str = "America/New_York"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    hyperliquid_url: str = "https://api.hyperliquid.xyz/info"

    # Rate limiting backoff (seconds)
    rate_limit_backoff_sec: float = 2.0
    max_retries: int = 3

    user_agent: str = "hyperliquid-monitor/0.1"

    # -------------------------------------------------------------------------
    # Channel Credentials (from environment)
    # -------------------------------------------------------------------------
    @property
    def telegram_bot_token(self) -> Optional[str]:
        return os.environ.get("TELEGRAM_BOT_TOKEN")

    @property
    def telegram_chat_id(self) -> Optional[str]:
        return os.environ.get("TELEGRAM_CHAT_ID")

    @property
    def server_chan_key(self) -> Optional[str]:
        return os.environ.get("SERVER_CHAN_KEY")

    @property
    def smtp_settings(self) -> Dict[str, Optional[str]]:
        return {
            "host": os.environ.get("SMTP_HOST"),
            "port": os.environ.get("SMTP_PORT", "587"),
            "username": os.environ.get("SMTP_USERNAME"),
            "password": os.environ.get("SMTP_PASSWORD"),
            "sender": os.environ.get("SMTP_FROM"),
            "recipient": os.environ.get("SMTP_TO"),
        }


# Global config instance
config = Config()


# =============================================================================
# Target / Channel Configuration
# =============================================================================

@dataclass
class ChannelSpec:
    """A configured notification channel, before construction."""
    id: str
    kind: str
    min_interval: float  # Seconds
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MonitorConfig:
    """Everything the engine is initialized with."""
    targets: List[Target] = field(default_factory=list)
    channels: List[ChannelSpec] = field(default_factory=list)


def _require_int(value: Any, name: str, minimum: int) -> int:
    # bool is an int subclass; "true" is never a valid interval
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def parse_target(raw: Dict[str, Any], index: int) -> Target:
    """Validate one target entry."""
    where = f"targets[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where} must be an object")

    kind_name = raw.get("kind")
    try:
        kind = TargetKind(kind_name)
    except ValueError:
        valid = ", ".join(k.value for k in TargetKind)
        raise ConfigError(f"{where}.kind must be one of {valid}, got {kind_name!r}")

    locator = raw.get("locator")
    if not isinstance(locator, str) or not locator.strip():
        raise ConfigError(f"{where}.locator is required")
    locator = locator.strip()

    if kind == TargetKind.POSITION_FEED and not ADDRESS_PATTERN.match(locator):
        raise ConfigError(f"{where}.locator is not a valid wallet address: {locator}")
    if kind != TargetKind.POSITION_FEED and not locator.startswith(("http://", "https://")):
        raise ConfigError(f"{where}.locator must be an http(s) URL: {locator}")

    selector = raw.get("selector")
    if selector is not None and not isinstance(selector, str):
        raise ConfigError(f"{where}.selector must be a string")

    interval = _require_int(raw.get("interval_seconds"), f"{where}.interval_seconds", 1)

    dexes = raw.get("dexes", [""])
    if (
        not isinstance(dexes, list)
        or not dexes
        or not all(isinstance(d, str) for d in dexes)
    ):
        raise ConfigError(f"{where}.dexes must be a non-empty list of strings")

    notes = raw.get("notes") or ""
    if not isinstance(notes, str):
        raise ConfigError(f"{where}.notes must be a string")

    target_id = raw.get("id") or f"{kind.value}:{locator}"

    return Target(
        id=str(target_id),
        kind=kind,
        locator=locator,
        selector=selector,
        interval=float(interval),
        notes=notes,
        dexes=tuple(dexes),
    )


def parse_channel(raw: Dict[str, Any], index: int) -> ChannelSpec:
    """Validate one channel entry. Unknown keys become channel options."""
    where = f"channels[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where} must be an object")

    channel_id = raw.get("id")
    if not isinstance(channel_id, str) or not channel_id.strip():
        raise ConfigError(f"{where}.id is required")

    kind = raw.get("kind")
    if not isinstance(kind, str) or not kind.strip():
        raise ConfigError(f"{where}.kind is required")

    minutes = _require_int(
        raw.get("min_interval_minutes", 0), f"{where}.min_interval_minutes", 0
    )

    options = {
        k: v for k, v in raw.items()
        if k not in ("id", "kind", "min_interval_minutes")
    }

    return ChannelSpec(
        id=channel_id.strip(),
        kind=kind.strip().lower(),
        min_interval=minutes * 60.0,
        options=options,
    )


def parse_monitor_config(data: Dict[str, Any]) -> MonitorConfig:
    """
    Build a MonitorConfig from decoded JSON.

    Raises:
        ConfigError: on any malformed target or channel definition
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be an object")

    raw_targets = data.get("targets", [])
    raw_channels = data.get("channels", [])
    if not isinstance(raw_targets, list):
        raise ConfigError("targets must be a list")
    if not isinstance(raw_channels, list):
        raise ConfigError("channels must be a list")

    targets = [parse_target(t, i) for i, t in enumerate(raw_targets)]
    channels = [parse_channel(c, i) for i, c in enumerate(raw_channels)]

    seen = set()
    for target in targets:
        if target.id in seen:
            raise ConfigError(f"Duplicate target id: {target.id}")
        seen.add(target.id)

    seen = set()
    for channel in channels:
        if channel.id in seen:
            raise ConfigError(f"Duplicate channel id: {channel.id}")
        seen.add(channel.id)

    return MonitorConfig(targets=targets, channels=channels)


def load_monitor_config(path) -> MonitorConfig:
    """Read and validate a JSON configuration file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}")

    return parse_monitor_config(data)
