"""
Tests for NotificationDispatcher: throttling, coalescing, retries, ordering

Timing tests use real (short) intervals on the event loop.

Run with:
    pytest tests/test_dispatcher.py -v
"""

import asyncio

import pytest

from tests.fakes import RecordingChannel, RecordingSleep, make_event

from hyperliquid_monitor.alerts.formatting import format_batch
from hyperliquid_monitor.monitor.dispatcher import (
    ChannelState,
    ChannelWorker,
    NotificationDispatcher,
)


class TestChannelState:
    """Tests for the throttle window arithmetic"""

    def test_never_sent_is_eligible(self):
        state = ChannelState("c", min_interval=60.0)
        assert state.seconds_until_eligible(now=0.0) == 0.0

    def test_within_window(self):
        state = ChannelState("c", min_interval=60.0, last_sent_at=100.0)
        assert state.seconds_until_eligible(now=130.0) == 30.0

    def test_after_window(self):
        state = ChannelState("c", min_interval=60.0, last_sent_at=100.0)
        assert state.seconds_until_eligible(now=200.0) == 0.0


class TestDeliveryRetries:
    """Tests for ChannelWorker.deliver"""

    def test_retry_then_success(self):
        channel = RecordingChannel(failures=2)
        sleep = RecordingSleep()
        worker = ChannelWorker(channel, 0.0, max_attempts=4, retry_base_delay=1.0, sleep=sleep)

        delivered = asyncio.run(worker.deliver([make_event()]))

        assert delivered
        assert channel.attempts == 3
        assert sleep.delays == [1.0, 2.0]
        assert worker.deliveries_sent == 1
        assert worker.state.last_sent_at is not None

    def test_drop_after_max_attempts(self):
        channel = RecordingChannel(failures=10)
        sleep = RecordingSleep()
        worker = ChannelWorker(channel, 0.0, max_attempts=3, retry_base_delay=0.5, sleep=sleep)

        delivered = asyncio.run(worker.deliver([make_event()]))

        assert not delivered
        assert channel.attempts == 3
        assert sleep.delays == [0.5, 1.0]
        assert worker.deliveries_failed == 1
        # A failed delivery does not consume the throttle window
        assert worker.state.last_sent_at is None

    def test_send_timeout_counts_as_failure(self):
        channel = RecordingChannel(delay=1.0)
        worker = ChannelWorker(
            channel, 0.0, max_attempts=1, send_timeout=0.05, sleep=RecordingSleep()
        )

        assert not asyncio.run(worker.deliver([make_event()]))
        assert channel.sent == []

    def test_unexpected_exception_is_retried(self):
        class FlakyChannel(RecordingChannel):
            async def send(self, title, body):
                if not self.attempts:
                    self.attempts += 1
                    raise RuntimeError("boom")
                await super().send(title, body)

        channel = FlakyChannel()
        worker = ChannelWorker(channel, 0.0, max_attempts=2, sleep=RecordingSleep())

        assert asyncio.run(worker.deliver([make_event()]))
        assert len(channel.sent) == 1


class TestQueueBound:
    """Tests for the per-channel queue limit"""

    def test_full_queue_drops_oldest(self):
        async def scenario():
            worker = ChannelWorker(RecordingChannel(), 0.0, max_queue_size=2)
            for n in range(3):
                worker.offer(make_event(title=f"e{n}"))
            items = []
            while not worker._queue.empty():
                items.append(worker._queue.get_nowait())
            return worker, items

        worker, items = asyncio.run(scenario())

        assert worker.events_dropped == 1
        assert [e.title for e in items] == ["e1", "e2"]

    def test_bound_covers_events_waiting_for_send_slot(self):
        async def scenario():
            channel = RecordingChannel()
            worker = ChannelWorker(channel, 0.5, max_queue_size=2)
            task = asyncio.create_task(worker.run())

            worker.offer(make_event(title="first"))
            await asyncio.sleep(0.05)
            # Each event reaches the coalescing batch before the next arrives
            for n in range(10):
                worker.offer(make_event(title=f"e{n}", seconds=n + 1))
                await asyncio.sleep(0.01)
            held = worker._pending_events + len(worker._batch)

            await asyncio.sleep(0.6)
            worker.stop()
            await task
            return channel, worker, held

        channel, worker, held = asyncio.run(scenario())

        assert held == 2
        assert worker.events_dropped == 8
        assert [title for title, _ in channel.sent] == ["first", "2 changes"]
        body = channel.sent[1][1]
        assert "e8" in body and "e9" in body
        assert "e7" not in body


class TestDispatcher:
    """Tests for the running dispatcher"""

    def test_fifo_without_throttle(self):
        async def scenario():
            channel = RecordingChannel()
            dispatcher = NotificationDispatcher(sleep=RecordingSleep())
            dispatcher.add_channel(channel, min_interval=0.0)
            dispatcher.start()
            for n in range(5):
                dispatcher.enqueue(make_event(title=f"e{n}", seconds=n))
                await asyncio.sleep(0.01)
            await dispatcher.stop()
            return channel

        channel = asyncio.run(scenario())

        assert [title for title, _ in channel.sent] == ["e0", "e1", "e2", "e3", "e4"]

    def test_throttled_events_are_coalesced(self):
        async def scenario():
            channel = RecordingChannel()
            dispatcher = NotificationDispatcher()
            dispatcher.add_channel(channel, min_interval=0.5)
            dispatcher.start()

            dispatcher.enqueue(make_event(title="first", seconds=0))
            await asyncio.sleep(0.05)
            dispatcher.enqueue(make_event(title="second", seconds=1))
            await asyncio.sleep(0.1)
            dispatcher.enqueue(make_event(title="third", seconds=2))
            await asyncio.sleep(0.1)
            sent_while_throttled = len(channel.sent)

            await asyncio.sleep(0.6)
            await dispatcher.stop()
            return channel, sent_while_throttled

        channel, sent_while_throttled = asyncio.run(scenario())

        assert sent_while_throttled == 1
        assert len(channel.sent) == 2
        assert channel.sent[0][0] == "first"
        title, body = channel.sent[1]
        assert title == "2 changes"
        assert body.index("second") < body.index("third")
        assert channel.sent_at[1] - channel.sent_at[0] >= 0.5

    def test_channels_are_independent(self):
        async def scenario():
            fast = RecordingChannel("fast")
            slow = RecordingChannel("slow")
            dispatcher = NotificationDispatcher()
            dispatcher.add_channel(fast, min_interval=0.0)
            dispatcher.add_channel(slow, min_interval=30.0)
            dispatcher.start()

            dispatcher.enqueue(make_event(title="a"))
            await asyncio.sleep(0.05)
            dispatcher.enqueue(make_event(title="b"))
            await asyncio.sleep(0.05)
            fast_count, slow_count = len(fast.sent), len(slow.sent)
            await dispatcher.stop()
            return fast_count, slow_count, slow

        fast_count, slow_count, slow = asyncio.run(scenario())

        assert fast_count == 2
        assert slow_count == 1
        # Shutdown flushes the pending event instead of losing it
        assert [title for title, _ in slow.sent] == ["a", "b"]

    def test_update_channel_interval(self):
        async def scenario():
            dispatcher = NotificationDispatcher()
            dispatcher.add_channel(RecordingChannel("c"), min_interval=0.0)
            dispatcher.start()
            dispatcher.update_channel("c", 120.0)
            await asyncio.sleep(0.02)
            states = dispatcher.channel_states()
            await dispatcher.stop()
            return states

        states = asyncio.run(scenario())
        assert states[0].min_interval == 120.0

    def test_update_unknown_channel(self):
        dispatcher = NotificationDispatcher()
        with pytest.raises(KeyError):
            dispatcher.update_channel("nope", 10.0)

    def test_duplicate_channel(self):
        dispatcher = NotificationDispatcher()
        dispatcher.add_channel(RecordingChannel("c"))
        with pytest.raises(ValueError):
            dispatcher.add_channel(RecordingChannel("c"))

    def test_enqueue_without_channels(self):
        NotificationDispatcher().enqueue(make_event())


class TestFormatBatch:
    """Tests for coalesced message layout"""

    def test_single_event_unchanged(self):
        title, body = format_batch([make_event(title="BTC: 1 -> 2", description="d")], "UTC")
        assert title == "BTC: 1 -> 2"
        assert body.startswith("d\n\nDetected: 2026-01-18 12:00:00 UTC")

    def test_ordered_by_detection_time(self):
        late = make_event(title="late", seconds=30)
        early = make_event(title="early", seconds=10)

        title, body = format_batch([late, early], "UTC")

        assert title == "2 changes"
        assert body.startswith("1. [2026-01-18 12:00:10 UTC] early")
        assert "2. [2026-01-18 12:00:30 UTC] late" in body

    def test_empty_batch(self):
        with pytest.raises(ValueError):
            format_batch([])
