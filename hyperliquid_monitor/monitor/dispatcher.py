"""
Notification Dispatcher
=======================

Fans ChangeEvents out to every channel with per-channel throttling.

Each channel has one worker task that owns its queue and throttle state:
- Events are processed strictly FIFO
- Events arriving before the channel's next send slot are coalesced into
  one message instead of being dropped
- Failed sends are retried with exponential backoff, then dropped with a
  warning (best effort, at most once)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from ..alerts.base import Channel
from ..alerts.formatting import format_batch
from ..config import config
from ..errors import ChannelSendError
from ..models import ChangeEvent

logger = logging.getLogger(__name__)


@dataclass
class ChannelState:
    """Throttle state for one channel. Mutated only by its worker."""
    channel_id: str
    min_interval: float                   # Seconds between deliveries
    last_sent_at: Optional[float] = None  # Clock reading of last successful send

    def next_send_at(self) -> float:
        if self.last_sent_at is None:
            return float("-inf")
        return self.last_sent_at + self.min_interval

    def seconds_until_eligible(self, now: float) -> float:
        return max(0.0, self.next_send_at() - now)


@dataclass(frozen=True)
class _SetInterval:
    min_interval: float


_STOP = object()


class ChannelWorker:
    """
    Consumer task for a single channel.

    Delivery statistics (sent/failed/dropped) are kept for status views.
    """

    def __init__(
        self,
        channel: Channel,
        min_interval: float,
        max_queue_size: int = None,
        send_timeout: float = None,
        max_attempts: int = None,
        retry_base_delay: float = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        timezone_name: str = None,
    ):
        self.channel = channel
        self.state = ChannelState(channel_id=channel.id, min_interval=min_interval)
        self.max_queue_size = max_queue_size or config.channel_queue_size
        self.send_timeout = send_timeout or config.send_timeout_sec
        self.max_attempts = max_attempts or config.max_send_attempts
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else config.retry_base_delay_sec
        )
        self.timezone_name = timezone_name
        self._clock = clock
        self._sleep = sleep

        # Unbounded asyncio queue; the size limit is enforced in offer() so
        # control items (stop, interval changes) are never rejected
        self._queue: asyncio.Queue = asyncio.Queue()
        self._pending_events = 0
        # Events held for the next send slot; they count toward max_queue_size
        self._batch: List[ChangeEvent] = []

        self.deliveries_sent = 0
        self.deliveries_failed = 0
        self.events_dropped = 0

    @property
    def id(self) -> str:
        return self.channel.id

    # -------------------------------------------------------------------------
    # Producer side
    # -------------------------------------------------------------------------

    def offer(self, event: ChangeEvent):
        """Queue an event without blocking; drops the oldest event when full."""
        if self._pending_events + len(self._batch) >= self.max_queue_size:
            # Batched events are older than anything still queued
            dropped = self._batch.pop(0) if self._batch else self._drop_oldest_event()
            if dropped is not None:
                self.events_dropped += 1
                logger.warning(
                    f"Channel {self.id} queue full, dropped oldest event for {dropped.target_id}"
                )
        self._queue.put_nowait(event)
        self._pending_events += 1

    def _drop_oldest_event(self) -> Optional[ChangeEvent]:
        # Rebuild the queue without its first ChangeEvent, keeping control items
        items = []
        while not self._queue.empty():
            items.append(self._queue.get_nowait())
        dropped = None
        for item in items:
            if dropped is None and isinstance(item, ChangeEvent):
                dropped = item
                self._pending_events -= 1
                continue
            self._queue.put_nowait(item)
        return dropped

    def set_interval(self, min_interval: float):
        self._queue.put_nowait(_SetInterval(min_interval))

    def stop(self):
        self._queue.put_nowait(_STOP)

    # -------------------------------------------------------------------------
    # Consumer side
    # -------------------------------------------------------------------------

    def _take(self, item) -> bool:
        """Apply one queue item. Returns True if it was the stop marker."""
        if item is _STOP:
            return True
        if isinstance(item, _SetInterval):
            logger.info(f"Channel {self.id} min interval set to {item.min_interval:.0f}s")
            self.state.min_interval = item.min_interval
            return False
        self._pending_events -= 1
        self._batch.append(item)
        return False

    async def run(self):
        """Worker loop. Exits after the stop marker, flushing pending events."""
        logger.debug(f"Channel worker {self.id} started")
        stopping = False
        while not stopping:
            stopping = self._take(await self._queue.get())

            # Coalesce everything that arrives before the next send slot
            while self._batch and not stopping:
                wait = self.state.seconds_until_eligible(self._clock())
                if wait <= 0:
                    break
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=wait)
                except asyncio.TimeoutError:
                    continue
                stopping = self._take(item)

            if self._batch:
                # In-flight events no longer count toward the queue bound
                batch, self._batch = self._batch, []
                if len(batch) > 1:
                    logger.info(f"Channel {self.id}: coalescing {len(batch)} events")
                await self.deliver(batch)

        logger.debug(f"Channel worker {self.id} stopped")

    async def deliver(self, batch: List[ChangeEvent]) -> bool:
        """
        Send one coalesced message with bounded retries.

        Returns:
            True if delivered, False if every attempt failed
        """
        title, body = format_batch(batch, self.timezone_name)

        for attempt in range(self.max_attempts):
            try:
                await asyncio.wait_for(self.channel.send(title, body), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                reason = f"send timed out after {self.send_timeout:.0f}s"
            except ChannelSendError as e:
                reason = str(e)
            except Exception as e:
                logger.exception(f"Unexpected error sending to channel {self.id}")
                reason = f"{type(e).__name__}: {e}"
            else:
                self.state.last_sent_at = self._clock()
                self.deliveries_sent += 1
                logger.info(f"Delivered {len(batch)} event(s) to {self.id}: {title}")
                return True

            if attempt + 1 < self.max_attempts:
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    f"Channel {self.id} send failed (attempt {attempt + 1}/"
                    f"{self.max_attempts}): {reason}; retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
            else:
                logger.warning(
                    f"Channel {self.id} send failed (attempt {attempt + 1}/"
                    f"{self.max_attempts}): {reason}"
                )

        self.deliveries_failed += 1
        logger.warning(
            f"Dropping delivery of {len(batch)} event(s) to {self.id} "
            f"after {self.max_attempts} attempts"
        )
        return False


class NotificationDispatcher:
    """
    Routes ChangeEvents to one ChannelWorker per channel.

    enqueue() never blocks. Workers must be started inside a running event
    loop with start().
    """

    def __init__(self, **worker_options):
        self._worker_options = worker_options
        self._workers: Dict[str, ChannelWorker] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._running = False

    def add_channel(self, channel: Channel, min_interval: float = 0.0) -> ChannelWorker:
        if channel.id in self._workers:
            raise ValueError(f"Channel {channel.id} already registered")
        worker = ChannelWorker(channel, min_interval, **self._worker_options)
        self._workers[channel.id] = worker
        if self._running:
            self._tasks[channel.id] = asyncio.create_task(
                worker.run(), name=f"channel:{channel.id}"
            )
        return worker

    @property
    def channel_ids(self) -> List[str]:
        return list(self._workers)

    def worker(self, channel_id: str) -> Optional[ChannelWorker]:
        return self._workers.get(channel_id)

    def start(self):
        """Start one consumer task per channel."""
        self._running = True
        for channel_id, worker in self._workers.items():
            if channel_id not in self._tasks:
                self._tasks[channel_id] = asyncio.create_task(
                    worker.run(), name=f"channel:{channel_id}"
                )
        logger.info(f"Dispatcher started with {len(self._workers)} channel(s)")

    def enqueue(self, event: ChangeEvent):
        """Queue an event on every channel. Non-blocking."""
        if not self._workers:
            logger.info(f"No channels configured, change not delivered: {event.title}")
            return
        for worker in self._workers.values():
            worker.offer(event)

    def update_channel(self, channel_id: str, min_interval: float):
        """Change a channel's throttle interval (applied in queue order)."""
        worker = self._workers.get(channel_id)
        if worker is None:
            raise KeyError(f"Unknown channel: {channel_id}")
        worker.set_interval(min_interval)

    def channel_states(self) -> List[ChannelState]:
        return [
            ChannelState(w.state.channel_id, w.state.min_interval, w.state.last_sent_at)
            for w in self._workers.values()
        ]

    async def stop(self):
        """Signal every worker to flush and exit, then wait for them."""
        self._running = False
        for worker in self._workers.values():
            worker.stop()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        logger.info("Dispatcher stopped")
