"""
Monitor Service Orchestrator
============================

Wires the engine together and owns its lifecycle.

Startup:
1. Build every configured channel (missing credentials fail here, before
   any target is scheduled)
2. Start the dispatcher workers and announce the monitored targets directly
   to each channel (outside the throttle)
3. Start one polling loop per target

Shutdown (SIGINT/SIGTERM or stop()):
1. Stop the scheduler (in-flight fetches complete, no new polls)
2. Stop the dispatcher (pending events are flushed)
3. Close the shared HTTP session
"""

import asyncio
import logging
import signal
from typing import List, Optional

from ..alerts.base import Channel, build_channel
from ..alerts.formatting import format_event
from ..collectors.base import CollectorSet
from ..config import MonitorConfig, config
from ..models import ChangeEvent, TargetStatus
from .detector import ChangeDetector
from .dispatcher import NotificationDispatcher
from .scheduler import Scheduler
from .store import SnapshotStore, utc_now

logger = logging.getLogger(__name__)


class MonitorService:
    """
    Continuous change monitoring for every configured target.

    Typical use:
        service = MonitorService(load_monitor_config("monitor.json"))
        asyncio.run(service.run())
    """

    def __init__(
        self,
        monitor_config: MonitorConfig,
        dry_run: bool = False,
        degraded_threshold: int = None,
        collectors: CollectorSet = None,
        channels: List[Channel] = None,
    ):
        """
        Initialize the monitor service.

        Args:
            monitor_config: Validated targets and channel definitions
            dry_run: If True, print notifications instead of sending them
            degraded_threshold: Consecutive failures before a target is degraded
            collectors: Collector set override (tests)
            channels: Pre-built channels, skipping build_channel (tests)

        Raises:
            ConfigError: a channel cannot be constructed
        """
        self.monitor_config = monitor_config
        self.dry_run = dry_run

        if channels is None:
            channels = [build_channel(spec, dry_run=dry_run) for spec in monitor_config.channels]
        self.channels = channels

        self.collectors = collectors or CollectorSet()
        self.store = SnapshotStore()
        self.detector = ChangeDetector()
        self.dispatcher = NotificationDispatcher()

        intervals = {spec.id: spec.min_interval for spec in monitor_config.channels}
        for channel in self.channels:
            self.dispatcher.add_channel(channel, intervals.get(channel.id, 0.0))

        self.scheduler = Scheduler(
            collectors=self.collectors,
            detector=self.detector,
            store=self.store,
            dispatcher=self.dispatcher,
            degraded_threshold=degraded_threshold or config.degraded_threshold,
        )

        self._stop_event: Optional[asyncio.Event] = None
        self.running = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self):
        """Start dispatcher and scheduler without blocking."""
        targets = self.monitor_config.targets
        self._stop_event = asyncio.Event()
        self.running = True

        logger.info("=" * 60)
        logger.info("HYPERLIQUID MONITOR STARTING")
        logger.info("=" * 60)
        logger.info(f"Targets: {len(targets)}")
        logger.info(f"Channels: {', '.join(self.dispatcher.channel_ids) or 'none'}")
        logger.info(f"Dry run: {self.dry_run}")

        self.dispatcher.start()
        # Sent outside the dispatcher so the first change or holdings baseline
        # is not held back by a channel's throttle window
        await self._broadcast(*format_event(self._startup_event()))
        await self.scheduler.start(targets)

    async def run(self):
        """Main entry point: run until a shutdown signal or stop()."""
        await self.start()
        self._install_signal_handlers()
        try:
            await self._stop_event.wait()
        finally:
            await self.shutdown()

    def stop(self):
        """Request a graceful shutdown. Safe to call from a signal handler."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def shutdown(self):
        if not self.running:
            return
        self.running = False
        logger.info("Shutting down...")
        await self.scheduler.stop()
        await self.dispatcher.stop()
        await self.collectors.close()
        logger.info("HYPERLIQUID MONITOR STOPPED")

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown, sig)
            except NotImplementedError:
                # Windows event loops
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(self.stop))

    def _handle_shutdown(self, signum):
        logger.info(f"Shutdown signal received ({signal.Signals(signum).name}), stopping monitor...")
        self.stop()

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def _startup_event(self) -> ChangeEvent:
        targets = self.monitor_config.targets
        lines = [
            f"- [{t.kind.value}] {t.label} (every {t.interval:g}s)"
            for t in targets
        ]
        return ChangeEvent(
            target_id="*",
            previous_value=None,
            new_value=None,
            detected_at=utc_now(),
            title=f"Started monitoring {len(targets)} target(s)",
            description="\n".join(lines) or "No targets configured",
        )

    async def test_channels(self) -> bool:
        """
        Send a test message through every channel once, bypassing throttling.

        Returns:
            True if every channel accepted the message
        """
        return await self._broadcast("Test notification", "Hyperliquid monitor channel test")

    async def _broadcast(self, title: str, body: str) -> bool:
        """Send once to every channel, bypassing throttling and retries."""
        ok = True
        for channel in self.channels:
            try:
                await asyncio.wait_for(channel.send(title, body), timeout=config.send_timeout_sec)
                logger.info(f"Channel {channel.id}: sent '{title}'")
            except Exception as e:
                logger.error(f"Channel {channel.id}: '{title}' failed: {e}")
                ok = False
        return ok

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def statuses(self) -> List[TargetStatus]:
        return self.scheduler.statuses()

    def log_status(self):
        for status in self.statuses():
            flag = " DEGRADED" if status.degraded else ""
            logger.info(
                f"{status.id}: {status.state.value}{flag}, "
                f"failures={status.consecutive_failures}, "
                f"last success={status.last_success_at}"
            )
