"""
Tests for target/channel configuration loading

Run with:
    pytest tests/test_config.py -v
"""

import json

import pytest

from tests.fakes import PROJECT_ROOT  # noqa: F401  (puts project root on sys.path)

from hyperliquid_monitor.config import (
    load_monitor_config,
    parse_channel,
    parse_monitor_config,
    parse_target,
)
from hyperliquid_monitor.errors import ConfigError
from hyperliquid_monitor.models import TargetKind

ADDRESS = "0x" + "ab" * 20


def valid_data():
    return {
        "targets": [
            {
                "id": "price",
                "kind": "api",
                "locator": "https://example.com/price.json",
                "selector": "$.price",
                "interval_seconds": 60,
            },
            {
                "kind": "position_feed",
                "locator": ADDRESS,
                "interval_seconds": 30,
                "notes": "Whale",
                "dexes": ["", "xyz"],
            },
        ],
        "channels": [
            {"id": "tg", "kind": "Telegram", "min_interval_minutes": 5, "chat_id": "42"},
        ],
    }


class TestParseMonitorConfig:
    """Tests for parse_monitor_config"""

    def test_valid_config(self):
        cfg = parse_monitor_config(valid_data())

        assert [t.id for t in cfg.targets] == ["price", f"position_feed:{ADDRESS}"]
        price, wallet = cfg.targets
        assert price.kind == TargetKind.API
        assert price.selector == "$.price"
        assert price.interval == 60.0
        assert wallet.label == "Whale"
        assert wallet.dexes == ("", "xyz")

    def test_channel_interval_converted_to_seconds(self):
        cfg = parse_monitor_config(valid_data())

        channel = cfg.channels[0]
        assert channel.kind == "telegram"
        assert channel.min_interval == 300.0
        assert channel.options == {"chat_id": "42"}

    def test_empty_config(self):
        cfg = parse_monitor_config({})
        assert cfg.targets == []
        assert cfg.channels == []

    def test_duplicate_target_id(self):
        data = valid_data()
        data["targets"][1]["id"] = "price"
        with pytest.raises(ConfigError, match="Duplicate target id"):
            parse_monitor_config(data)

    def test_duplicate_channel_id(self):
        data = valid_data()
        data["channels"].append({"id": "tg", "kind": "console"})
        with pytest.raises(ConfigError, match="Duplicate channel id"):
            parse_monitor_config(data)

    def test_root_must_be_object(self):
        with pytest.raises(ConfigError):
            parse_monitor_config([])


class TestParseTarget:
    """Tests for parse_target validation"""

    def base(self, **overrides):
        raw = {
            "kind": "static_page",
            "locator": "https://example.com",
            "selector": "div.status",
            "interval_seconds": 10,
        }
        raw.update(overrides)
        return raw

    def test_unknown_kind(self):
        with pytest.raises(ConfigError, match="kind"):
            parse_target(self.base(kind="rss"), 0)

    def test_missing_locator(self):
        raw = self.base()
        del raw["locator"]
        with pytest.raises(ConfigError, match="locator"):
            parse_target(raw, 0)

    def test_non_http_locator(self):
        with pytest.raises(ConfigError, match="http"):
            parse_target(self.base(locator="ftp://example.com"), 0)

    def test_invalid_wallet_address(self):
        with pytest.raises(ConfigError, match="wallet address"):
            parse_target(self.base(kind="position_feed", locator="0x123"), 0)

    @pytest.mark.parametrize("interval", [0, -5, "60", 1.5, True, None])
    def test_invalid_interval(self, interval):
        with pytest.raises(ConfigError, match="interval_seconds"):
            parse_target(self.base(interval_seconds=interval), 3)

    def test_invalid_dexes(self):
        with pytest.raises(ConfigError, match="dexes"):
            parse_target(self.base(kind="position_feed", locator=ADDRESS, dexes=[]), 0)

    def test_selector_must_be_string(self):
        with pytest.raises(ConfigError, match="selector"):
            parse_target(self.base(selector=["div"]), 0)

    def test_error_names_entry(self):
        with pytest.raises(ConfigError, match=r"targets\[7\]"):
            parse_target(self.base(kind="bogus"), 7)


class TestParseChannel:
    """Tests for parse_channel validation"""

    def test_missing_id(self):
        with pytest.raises(ConfigError, match="id"):
            parse_channel({"kind": "console"}, 0)

    def test_missing_kind(self):
        with pytest.raises(ConfigError, match="kind"):
            parse_channel({"id": "c"}, 0)

    def test_negative_interval(self):
        with pytest.raises(ConfigError, match="min_interval_minutes"):
            parse_channel({"id": "c", "kind": "console", "min_interval_minutes": -1}, 0)

    def test_default_interval_is_zero(self):
        spec = parse_channel({"id": "c", "kind": "console"}, 0)
        assert spec.min_interval == 0.0


class TestLoadMonitorConfig:
    """Tests for reading config files"""

    def test_load_file(self, tmp_path):
        path = tmp_path / "monitor.json"
        path.write_text(json.dumps(valid_data()), encoding="utf-8")

        cfg = load_monitor_config(path)

        assert len(cfg.targets) == 2
        assert len(cfg.channels) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_monitor_config(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_monitor_config(path)

    def test_example_config_is_valid(self):
        cfg = load_monitor_config(PROJECT_ROOT / "monitor.example.json")
        assert {t.kind for t in cfg.targets} == set(TargetKind)
