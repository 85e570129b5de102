"""
Error Types
===========

Typed failures raised across the monitor.

- CollectorError family: a single poll failed (recovered by the scheduler)
- ConflictError: two writers raced on one snapshot
- ChannelSendError: a notification delivery attempt failed
- ConfigError: invalid target/channel definitions (fatal at startup)
"""


class MonitorError(Exception):
    """Base class for all monitor errors."""


# =============================================================================
# Collector Errors
# =============================================================================

class CollectorError(MonitorError):
    """A collector could not produce an observation."""

    def __init__(self, message: str, target_id: str = None):
        super().__init__(message)
        self.target_id = target_id


class CollectorNetworkError(CollectorError):
    """Transport failure or non-success HTTP status."""


class CollectorTimeoutError(CollectorError):
    """Fetch did not complete within the fetch timeout."""


class SelectorNotFoundError(CollectorError):
    """Selector matched nothing in the fetched document."""


class MalformedDataError(CollectorError):
    """Response could not be parsed into an observation."""


# =============================================================================
# Engine Errors
# =============================================================================

class ConflictError(MonitorError):
    """Snapshot version moved past the version the writer expected."""

    def __init__(self, target_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Snapshot conflict for {target_id}: expected version "
            f"{expected_version}, found {actual_version}"
        )
        self.target_id = target_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ChannelSendError(MonitorError):
    """A channel failed to deliver a message."""

    def __init__(self, message: str, channel_id: str = None):
        super().__init__(message)
        self.channel_id = channel_id


class ConfigError(MonitorError):
    """Invalid configuration. Only raised before scheduling begins."""
