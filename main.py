#!/usr/bin/env python3
"""
VWAP Service - real-time volume weighted average prices

Streams trade matches from Coinbase and writes the running VWAP of the last
N trades for each configured trading pair.

Usage:
    python main.py                        # Default pairs, output to stdout
    python main.py --config my.yaml       # Run with custom config
    python main.py --pairs BTC-USD,ETH-USD
    python main.py --mock                 # Offline run with synthetic trades
"""

import asyncio
import argparse
import logging
import signal
import sys
from typing import Optional, TextIO

from loguru import logger

from vwap_service.config import AppConfig, load_config, parse_trading_pairs
from vwap_service.errors import VWAPServiceError
from vwap_service.ingestion import CoinbaseFeed
from vwap_service.platforms import BaseFeed, MockFeed
from vwap_service.service import ServiceConfig, VWAPService


class VWAPApp:
    """
    Main application class.

    Wires the feed, the VWAP service and the output target together and
    owns the shutdown signal.
    """

    def __init__(self, config: AppConfig, mock: bool = False):
        self.config = config
        self.mock = mock

        self.feed: Optional[BaseFeed] = None
        self.service: Optional[VWAPService] = None
        self.shutdown = asyncio.Event()

        self._output: Optional[TextIO] = None

    async def initialize(self):
        """Initialize all components"""
        self._setup_logging()
        logger.info("Initializing VWAP service...")

        if self.config.output_path:
            self._output = open(self.config.output_path, "a", encoding="utf-8")
            logger.info(f"Writing VWAPs to {self.config.output_path}")

        if self.mock:
            self.feed = MockFeed()
            logger.info("Using mock trade feed")
        else:
            self.feed = await CoinbaseFeed.connect(self.config.ws_url, rate_limit=self.config.rate_limit)

        self.service = VWAPService(
            self.feed,
            ServiceConfig(
                logger=logging.getLogger("vwap_service"),
                max_data_points=self.config.max_data_points,
                output=self._output,
            ),
            shutdown=self.shutdown,
        )
        self.service.add_trading_pairs(*self.config.trading_pairs)

        logger.info("Initialization complete")

    def _setup_logging(self):
        """Configure logging"""
        level = self.config.effective_log_level

        # Library modules log through the standard logging module
        logging.basicConfig(
            level=level,
            format='%(asctime)s | %(levelname)s | %(name)s - %(message)s',
            datefmt='%H:%M:%S',
            stream=sys.stderr,
        )
        logging.getLogger("websockets").setLevel(logging.WARNING)

        logger.remove()
        logger.add(
            sys.stderr,
            level=level,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
        )

        if self.config.log_file:
            logger.add(
                self.config.log_file,
                level=level,
                rotation="10 MB",
                retention="7 days"
            )

    async def start(self):
        """Run until a shutdown signal or a fatal feed error"""
        logger.info(f"Starting VWAP service for {', '.join(self.service.trading_pairs())}")
        await self.service.run()

    async def stop(self):
        """Release the feed and the output target"""
        logger.info("Stopping VWAP service...")

        if self.service:
            self.service.stop()

        if self.feed:
            try:
                await self.feed.close()
            except VWAPServiceError as e:
                logger.error(f"Failed to close feed: {e}")

        if self._output:
            self._output.close()
            self._output = None

        logger.info("VWAP service stopped")


async def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="VWAP Service - real-time volume weighted average prices"
    )
    parser.add_argument(
        '--config', '-c',
        default='config.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--pairs',
        help='Comma separated trading pairs (overrides config)'
    )
    parser.add_argument(
        '--mock',
        action='store_true',
        help='Use a synthetic trade feed instead of Coinbase'
    )

    args = parser.parse_args()

    config = load_config(args.config)
    if args.pairs:
        config.trading_pairs = parse_trading_pairs(args.pairs)

    app = VWAPApp(config, mock=args.mock)

    # Setup signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        app.shutdown.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    exit_code = 0
    try:
        await app.initialize()
        await app.start()
    except VWAPServiceError as e:
        logger.error(f"VWAP service failed: {e}")
        exit_code = 1
    finally:
        await app.stop()

    sys.exit(exit_code)


if __name__ == "__main__":
    asyncio.run(main())
