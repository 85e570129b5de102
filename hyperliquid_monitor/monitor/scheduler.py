"""
Scheduler
=========

One independent polling loop per target:

    idle -> polling -> idle | backoff -> polling -> ... -> stopped

A failing or slow target never delays another target's schedule. After
`degraded_threshold` consecutive failures the target is flagged degraded
(an operational warning, not a change notification) and polling simply
continues at the configured interval.

Live configuration edits arrive as commands (AddTarget, RemoveTarget,
UpdateChannel) consumed by a single command task, so each target keeps
exactly one writer.
"""

import asyncio
import concurrent.futures
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from ..collectors.base import describe_error
from ..config import config
from ..errors import CollectorError, CollectorTimeoutError, ConflictError
from ..models import ChangeEvent, LoopState, Target, TargetStatus
from .detector import ChangeDetector
from .dispatcher import NotificationDispatcher
from .store import SnapshotStore, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Commands
# =============================================================================

@dataclass(frozen=True)
class AddTarget:
    """Start polling a target (replaces a running target with the same id)."""
    target: Target


@dataclass(frozen=True)
class RemoveTarget:
    """Stop polling a target and forget its snapshot."""
    target_id: str


@dataclass(frozen=True)
class UpdateChannel:
    """Change a channel's minimum interval between deliveries."""
    channel_id: str
    min_interval: float  # Seconds


Command = Union[AddTarget, RemoveTarget, UpdateChannel]


# =============================================================================
# Per-target loop
# =============================================================================

class TargetRunner:
    """Polling loop and status for a single target."""

    def __init__(
        self,
        target: Target,
        collectors,
        detector: ChangeDetector,
        store: SnapshotStore,
        on_event: Callable[[ChangeEvent], None],
        fetch_timeout: float = None,
        degraded_threshold: int = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.target = target
        self.collectors = collectors
        self.detector = detector
        self.store = store
        self.on_event = on_event
        self.fetch_timeout = fetch_timeout or config.fetch_timeout_sec
        self.degraded_threshold = degraded_threshold or config.degraded_threshold
        self._clock = clock
        self._stop = asyncio.Event()

        # Status
        self.state = LoopState.IDLE
        self.last_poll_at: Optional[datetime] = None
        self.last_success_at: Optional[datetime] = None
        self.consecutive_failures = 0
        self.degraded = False
        self.last_error: Optional[str] = None

    def status(self) -> TargetStatus:
        return TargetStatus(
            id=self.target.id,
            last_poll_at=self.last_poll_at,
            last_success_at=self.last_success_at,
            consecutive_failures=self.consecutive_failures,
            degraded=self.degraded,
            state=self.state,
            last_error=self.last_error,
        )

    def stop(self):
        self._stop.set()

    async def run(self):
        """Poll until stopped. An in-flight poll always completes first."""
        logger.info(
            f"Monitoring {self.target.id} ({self.target.kind.value}) "
            f"every {self.target.interval:g}s"
        )
        while not self._stop.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                # Bugs in detection must not kill the loop
                logger.exception(f"Unexpected error polling {self.target.id}")
                self._record_failure(e)

            if self._stop.is_set():
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.target.interval)
            except asyncio.TimeoutError:
                pass

        self.state = LoopState.STOPPED
        logger.info(f"Stopped monitoring {self.target.id}")

    async def poll_once(self) -> Optional[ChangeEvent]:
        """
        Run one poll cycle: fetch, compare, store, forward.

        Returns:
            The ChangeEvent forwarded this cycle, if any
        """
        target = self.target
        self.state = LoopState.POLLING
        self.last_poll_at = self._clock()

        snapshot = self.store.get(target.id)
        expected_version = snapshot.version if snapshot else 0

        try:
            observation = await asyncio.wait_for(
                self.collectors.fetch(target), timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError:
            self._record_failure(CollectorTimeoutError(
                f"Fetch exceeded {self.fetch_timeout:g}s", target.id
            ))
            return None
        except CollectorError as e:
            self._record_failure(e)
            return None

        event = self.detector.compare(target, observation, snapshot)

        try:
            self.store.compare_and_set(target.id, expected_version, observation)
        except ConflictError as e:
            # Only possible with two writers for one target
            logger.error(f"Operational error: {e}; discarding poll result")
            self.state = LoopState.IDLE
            return None

        self._record_success()
        if event is not None:
            self.on_event(event)
        return event

    def _record_success(self):
        if self.degraded:
            logger.warning(
                f"Target {self.target.id} recovered after "
                f"{self.consecutive_failures} consecutive failures"
            )
        self.consecutive_failures = 0
        self.degraded = False
        self.last_error = None
        self.last_success_at = self._clock()
        self.state = LoopState.IDLE

    def _record_failure(self, error: BaseException):
        self.consecutive_failures += 1
        self.last_error = describe_error(error)
        self.state = LoopState.BACKOFF
        logger.warning(
            f"Poll failed for {self.target.id} "
            f"({self.consecutive_failures} consecutive): {error}"
        )

        if not self.degraded and self.consecutive_failures >= self.degraded_threshold:
            self.degraded = True
            logger.warning(
                f"Target {self.target.id} DEGRADED after "
                f"{self.consecutive_failures} consecutive failures; still polling"
            )


# =============================================================================
# Scheduler
# =============================================================================

class Scheduler:
    """
    Owns one TargetRunner task per target plus the command consumer.

    Status queries (status/statuses) are safe to call at any time.
    """

    def __init__(
        self,
        collectors,
        detector: ChangeDetector = None,
        store: SnapshotStore = None,
        dispatcher: NotificationDispatcher = None,
        fetch_timeout: float = None,
        degraded_threshold: int = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.collectors = collectors
        self.detector = detector or ChangeDetector(clock=clock)
        self.store = store or SnapshotStore(clock=clock)
        self.dispatcher = dispatcher
        self.fetch_timeout = fetch_timeout
        self.degraded_threshold = degraded_threshold
        self._clock = clock

        self._runners: Dict[str, TargetRunner] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._commands: Optional[asyncio.Queue] = None
        self._command_task: Optional[asyncio.Task] = None
        self._event_listeners: List[Callable[[ChangeEvent], None]] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, targets: List[Target] = ()):
        """Start the command consumer and one loop per initial target."""
        self._loop = asyncio.get_running_loop()
        self._commands = asyncio.Queue()
        self._command_task = asyncio.create_task(self._command_loop(), name="scheduler:commands")
        for target in targets:
            await self._add_target(target)
        logger.info(f"Scheduler started with {len(self._runners)} target(s)")

    async def stop(self):
        """Stop every target loop, letting in-flight fetches finish."""
        if self._command_task is not None:
            self._command_task.cancel()
            await asyncio.gather(self._command_task, return_exceptions=True)
            self._command_task = None
        self._reject_pending_commands()

        for runner in self._runners.values():
            runner.stop()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")

    def _reject_pending_commands(self):
        # Fail futures of commands that never ran
        if self._commands is None:
            return
        while not self._commands.empty():
            command, future = self._commands.get_nowait()
            if not future.done():
                logger.warning(f"Scheduler stopped before applying {command}")
                future.set_exception(RuntimeError("Scheduler stopped"))
        self._commands = None

    def add_listener(self, listener: Callable[[ChangeEvent], None]):
        """Observe every forwarded ChangeEvent (in addition to the dispatcher)."""
        self._event_listeners.append(listener)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def submit(self, command: Command) -> "asyncio.Future":
        """
        Queue a command for the command consumer.

        Returns:
            Future resolved once the command is applied
        """
        if self._commands is None:
            raise RuntimeError("Scheduler not running")
        future = asyncio.get_running_loop().create_future()
        self._commands.put_nowait((command, future))
        return future

    async def execute(self, command: Command) -> Any:
        return await self.submit(command)

    def submit_threadsafe(self, command: Command) -> concurrent.futures.Future:
        """Submit a command from outside the event loop thread (CLI/UI callers)."""
        if self._loop is None:
            raise RuntimeError("Scheduler not running")
        return asyncio.run_coroutine_threadsafe(self.execute(command), self._loop)

    async def _command_loop(self):
        while True:
            command, future = await self._commands.get()
            try:
                result = await self._apply(command)
            except asyncio.CancelledError:
                if not future.done():
                    future.cancel()
                raise
            except Exception as e:
                logger.error(f"Command {command} failed: {e}")
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)

    async def _apply(self, command: Command) -> Any:
        if isinstance(command, AddTarget):
            return await self._add_target(command.target)
        if isinstance(command, RemoveTarget):
            return await self._remove_target(command.target_id)
        if isinstance(command, UpdateChannel):
            if self.dispatcher is None:
                raise KeyError(f"Unknown channel: {command.channel_id}")
            self.dispatcher.update_channel(command.channel_id, command.min_interval)
            return None
        raise TypeError(f"Unknown command: {command!r}")

    async def _add_target(self, target: Target) -> TargetRunner:
        if target.id in self._runners:
            logger.info(f"Replacing target {target.id}")
            await self._remove_target(target.id)

        runner = TargetRunner(
            target=target,
            collectors=self.collectors,
            detector=self.detector,
            store=self.store,
            on_event=self._forward,
            fetch_timeout=self.fetch_timeout,
            degraded_threshold=self.degraded_threshold,
            clock=self._clock,
        )
        self._runners[target.id] = runner
        self._tasks[target.id] = asyncio.create_task(runner.run(), name=f"target:{target.id}")
        return runner

    async def _remove_target(self, target_id: str) -> bool:
        runner = self._runners.pop(target_id, None)
        if runner is None:
            logger.warning(f"Remove requested for unknown target {target_id}")
            return False

        runner.stop()
        task = self._tasks.pop(target_id, None)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        self.store.remove(target_id)
        logger.info(f"Removed target {target_id}")
        return True

    def _forward(self, event: ChangeEvent):
        if self.dispatcher is not None:
            self.dispatcher.enqueue(event)
        for listener in self._event_listeners:
            listener(event)

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def status(self, target_id: str) -> Optional[TargetStatus]:
        runner = self._runners.get(target_id)
        return runner.status() if runner else None

    def statuses(self) -> List[TargetStatus]:
        return [runner.status() for runner in list(self._runners.values())]

    @property
    def target_ids(self) -> List[str]:
        return list(self._runners)
