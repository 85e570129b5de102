"""
Tests for ChangeDetector and position diffing

Run with:
    pytest tests/test_detector.py -v
"""

from tests.fakes import FakeClock, START, make_target

from hyperliquid_monitor.models import DeltaKind, PositionState, Snapshot, TargetKind
from hyperliquid_monitor.monitor.detector import (
    ChangeDetector,
    describe_list_change,
    diff_positions,
    values_equal,
)

ADDR = "0x" + "a" * 40


def pos(asset, side, size, entry=100.0, address=ADDR):
    return PositionState(address=address, asset=asset, side=side, size=size, entry_price=entry)


def snap(value, target_id="t1", version=1):
    return Snapshot(target_id=target_id, value=value, captured_at=START, version=version)


class TestValuesEqual:
    """Tests for normalized value equality"""

    def test_key_order_ignored(self):
        assert values_equal({"a": 1, "b": {"x": 1, "y": 2}}, {"b": {"y": 2, "x": 1}, "a": 1})

    def test_list_order_matters(self):
        assert not values_equal([1, 2], [2, 1])

    def test_bool_is_not_int(self):
        assert not values_equal(True, 1)
        assert not values_equal({"on": False}, {"on": 0})

    def test_int_equals_float(self):
        assert values_equal({"price": 100}, {"price": 100.0})

    def test_strings_exact(self):
        assert not values_equal("abc", "abc ")


class TestValueChanges:
    """Tests for api / static_page targets"""

    def setup_method(self):
        self.detector = ChangeDetector(clock=FakeClock())
        self.target = make_target("price", selector="$.price", notes="BTC")

    def test_baseline_is_silent(self):
        assert self.detector.compare(self.target, {"price": 100}, None) is None

    def test_identical_value_no_event(self):
        assert self.detector.compare(self.target, {"price": 100}, snap({"price": 100})) is None

    def test_reordered_map_no_event(self):
        event = self.detector.compare(self.target, {"b": 2, "a": 1}, snap({"a": 1, "b": 2}))
        assert event is None

    def test_change_event(self):
        event = self.detector.compare(self.target, 105, snap(100))

        assert event is not None
        assert event.target_id == "price"
        assert event.previous_value == 100
        assert event.new_value == 105
        assert event.detected_at == START
        assert event.title == "BTC: 100 -> 105"
        assert "Previous value: 100" in event.description
        assert "Current value: 105" in event.description
        assert "Selector: $.price" in event.description
        assert not event.is_baseline

    def test_long_values_get_generic_title(self):
        old = "x" * 50
        new = "y" * 50
        event = self.detector.compare(self.target, new, snap(old))
        assert event.title == "BTC changed"

    def test_label_falls_back_to_locator(self):
        target = make_target("page", kind=TargetKind.STATIC_PAGE)
        event = self.detector.compare(target, "b", snap("a", "page"))
        assert event.title == "https://example.com/page: a -> b"

    def test_list_breakdown(self):
        old = ", ".join(f"item{i:03d}" for i in range(30))
        new = old.replace("item005, ", "") + ", item999"
        event = self.detector.compare(self.target, new, snap(old))

        assert "Added: item999" in event.description
        assert "Removed: item005" in event.description


class TestDescribeListChange:
    """Tests for the comma-separated list breakdown"""

    def test_short_values_skipped(self):
        assert describe_list_change("a, b", "a, c") is None

    def test_reorder_only(self):
        old = ", ".join(f"name{i:03d}" for i in range(30))
        new = ", ".join(reversed(old.split(", ")))
        assert describe_list_change(old, new) is None

    def test_not_a_list(self):
        assert describe_list_change("a" * 120, "b" * 120) is None


class TestDiffPositions:
    """Tests for the position set-diff"""

    def test_size_change_and_open(self):
        before = frozenset({pos("BTC", "long", 1.0)})
        after = frozenset({pos("BTC", "long", 2.0), pos("ETH", "short", 1.0)})

        deltas = diff_positions(before, after)

        assert [(d.kind, d.key[1]) for d in deltas] == [
            (DeltaKind.SIZE_CHANGED, "BTC"),
            (DeltaKind.OPENED, "ETH"),
        ]

    def test_closed(self):
        deltas = diff_positions(frozenset({pos("SOL", "short", 3.0)}), frozenset())
        assert len(deltas) == 1
        assert deltas[0].kind == DeltaKind.CLOSED
        assert deltas[0].before.size == 3.0
        assert deltas[0].after is None

    def test_flip_takes_precedence_over_size(self):
        deltas = diff_positions(
            frozenset({pos("BTC", "long", 1.0)}),
            frozenset({pos("BTC", "short", 4.0)}),
        )
        assert [d.kind for d in deltas] == [DeltaKind.SIDE_FLIPPED]

    def test_entry_price_only_not_reported(self):
        deltas = diff_positions(
            frozenset({pos("BTC", "long", 1.0, entry=100.0)}),
            frozenset({pos("BTC", "long", 1.0, entry=101.0)}),
        )
        assert deltas == []

    def test_same_asset_different_addresses(self):
        other = "0x" + "b" * 40
        deltas = diff_positions(
            frozenset({pos("BTC", "long", 1.0)}),
            frozenset({pos("BTC", "long", 1.0), pos("BTC", "long", 1.0, address=other)}),
        )
        assert [(d.kind, d.key) for d in deltas] == [(DeltaKind.OPENED, (other, "BTC"))]

    def test_identical_sets(self):
        holdings = frozenset({pos("BTC", "long", 1.0), pos("ETH", "short", 2.0)})
        assert diff_positions(holdings, frozenset(holdings)) == []


class TestPositionEvents:
    """Tests for position_feed change events"""

    def setup_method(self):
        self.detector = ChangeDetector(clock=FakeClock())
        self.target = make_target("wallet", kind=TargetKind.POSITION_FEED, notes="Whale")

    def test_baseline_reports_holdings(self):
        holdings = frozenset({pos("BTC", "long", 1.0), pos("ETH", "short", 2.0)})

        event = self.detector.compare(self.target, holdings, None)

        assert event.is_baseline
        assert event.previous_value is None
        assert event.title == "Current holdings for Whale: 2 position(s)"
        assert [d.kind for d in event.deltas] == [DeltaKind.OPENED, DeltaKind.OPENED]
        assert "OPENED BTC long 1" in event.description

    def test_empty_baseline(self):
        event = self.detector.compare(self.target, frozenset(), None)
        assert event.is_baseline
        assert event.description == "No open positions"

    def test_one_event_per_poll(self):
        before = frozenset({pos("BTC", "long", 1.0)})
        after = frozenset({pos("BTC", "long", 2.0), pos("ETH", "short", 1.0)})

        event = self.detector.compare(self.target, after, snap(before, "wallet"))

        assert len(event.deltas) == 2
        assert event.title == "Whale: 1 size changed, 1 opened"
        assert "SIZE BTC long 1 -> 2" in event.description
        assert "OPENED ETH short 1" in event.description

    def test_no_change_no_event(self):
        holdings = frozenset({pos("BTC", "long", 1.0)})
        assert self.detector.compare(self.target, holdings, snap(holdings, "wallet")) is None
