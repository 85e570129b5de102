#!/usr/bin/env python3
"""
Hyperliquid Monitor - CLI Entry Point
=====================================

Runs the continuous change-monitoring service.

Targets:
    - api: JSON endpoint, value selected with a JSONPath expression
    - static_page: HTML page, value selected with a CSS selector
    - position_feed: Hyperliquid wallet, open positions diffed per poll

Usage:
    # Start monitor
    python scripts/run_monitor.py --config monitor.json

    # Dry run (console notifications only)
    python scripts/run_monitor.py --config monitor.json --dry-run

    # Send one test message through every configured channel
    python scripts/run_monitor.py --config monitor.json --test-channels
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from hyperliquid_monitor.config import config, load_monitor_config
from hyperliquid_monitor.errors import ConfigError
from hyperliquid_monitor.monitor import MonitorService

DEFAULT_CONFIG = project_root / "monitor.json"
LOG_FILE = project_root / "logs" / "monitor.log"


def setup_logging(log_level: str = "INFO", log_file: Path = LOG_FILE):
    """Configure logging for the monitor service."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Create date-stamped log file (e.g., logs/monitor_2026-01-18.log)
    date_str = datetime.now().strftime("%Y-%m-%d")
    dated_log_file = log_file.parent / f"{log_file.stem}_{date_str}{log_file.suffix}"

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # File handler (date-stamped)
    file_handler = logging.FileHandler(dated_log_file)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from HTTP libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    root_logger.info(f"Logging to: {dated_log_file}")


def main():
    parser = argparse.ArgumentParser(
        description='Hyperliquid Change Monitor',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_monitor.py --config monitor.json                 # Start monitor
  python scripts/run_monitor.py --config monitor.json --dry-run       # Console output only
  python scripts/run_monitor.py --config monitor.json --test-channels # Test channel setup
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        default=DEFAULT_CONFIG,
        help=f'Targets/channels JSON file (default: {DEFAULT_CONFIG.name})'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Print notifications to console instead of sending them'
    )

    parser.add_argument(
        '--test-channels',
        action='store_true',
        help='Send a test message through every channel and exit'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Log level (default: INFO)'
    )

    parser.add_argument(
        '--degraded-threshold',
        type=int,
        default=config.degraded_threshold,
        help=f'Consecutive failures before a target is flagged degraded (default: {config.degraded_threshold})'
    )

    args = parser.parse_args()

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        monitor_config = load_monitor_config(args.config)
        service = MonitorService(
            monitor_config,
            dry_run=args.dry_run,
            degraded_threshold=args.degraded_threshold,
        )
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        print(f"\nConfiguration error: {e}")
        sys.exit(1)

    # Test channels mode
    if args.test_channels:
        print("Testing notification channels...")
        if asyncio.run(service.test_channels()):
            print("Test message sent through every channel!")
            sys.exit(0)
        print("One or more channels failed. Check credentials in .env and the config file.")
        sys.exit(1)

    # Print configuration
    print("\n" + "=" * 60)
    print("HYPERLIQUID CHANGE MONITOR")
    print("=" * 60)
    print(f"Config:         {args.config}")
    print(f"Targets:        {len(monitor_config.targets)}")
    for target in monitor_config.targets:
        print(f"  - {target.id} [{target.kind.value}] every {target.interval:g}s")
    print(f"Channels:       {len(monitor_config.channels)}")
    for spec in monitor_config.channels:
        print(f"  - {spec.id} [{spec.kind}] min interval {spec.min_interval / 60:g} min")
    print(f"Dry run:        {args.dry_run}")
    print(f"Log level:      {args.log_level}")
    print("=" * 60)

    try:
        print("\nStarting monitor service...")
        print("Press Ctrl+C to stop\n")
        asyncio.run(service.run())
    except KeyboardInterrupt:
        print("\n\nMonitor stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Monitor service error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
