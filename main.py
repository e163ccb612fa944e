#!/usr/bin/env python3
"""
Paysera Payment App.

Runs the HTTP service that connects Saleor transactions to the Paysera
redirect gateway: the transaction-initialize-session webhook, the Paysera
callback endpoint and the installation/configuration endpoints.

Usage:
    python main.py                    # run the service
    python main.py --port 9000        # override API_PORT
    python main.py --init-db          # create the schema and exit
    python main.py --check-config     # validate settings and exit

Environment variables:
    See config.py for all configuration options.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

from aiohttp import web

from config import config
from database.db import Database
from services.transaction_reporter import TransactionReporter
from api.app_api import create_app

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(level: str, log_file: Optional[str] = None) -> None:
    """
    Configure root logging.

    Args:
        level: Log level name (e.g. INFO)
        log_file: Optional file to log to in addition to stdout
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers
    )

    # aiohttp access logs are noisy at INFO
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


class PaymentAppService:
    """
    Service lifecycle for the payment app.

    Owns the single Database and TransactionReporter instances and the
    aiohttp runner serving the API.
    """

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None):
        self.host = host or config.api.host
        self.port = port or config.api.port
        self.db: Optional[Database] = None
        self.reporter: Optional[TransactionReporter] = None
        self.runner: Optional[web.AppRunner] = None
        self._stopped = asyncio.Event()
        self._stopping = False

    async def start(self) -> None:
        """Validate configuration and bring all components up."""
        logger.info(f"Starting {config.service.name}")

        errors = config.validate()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError("Invalid configuration")

        self.db = await open_database()

        self.reporter = TransactionReporter(self.db)
        await self.reporter.start()

        await self._start_web_server()

        logger.info(f"API server listening on http://{self.host}:{self.port}")
        logger.info(f"Paysera payment endpoint: {config.paysera.payment_url}")
        if not config.app.api_base_url:
            logger.warning("APP_API_BASE_URL not set, callback URLs use the request host")

    async def _start_web_server(self) -> None:
        app = create_app(db=self.db, reporter=self.reporter)
        self.runner = web.AppRunner(app)
        await self.runner.setup()
        await web.TCPSite(self.runner, self.host, self.port).start()

    async def stop(self) -> None:
        """Stop accepting requests, then release the reporter and database."""
        if self._stopping:
            return
        self._stopping = True
        logger.info("Shutting down...")

        if self.runner:
            try:
                await asyncio.wait_for(
                    self.runner.cleanup(),
                    timeout=config.service.shutdown_timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"In-flight requests did not finish within "
                    f"{config.service.shutdown_timeout}s"
                )

        if self.reporter:
            await self.reporter.stop()

        if self.db:
            await self.db.disconnect()

        logger.info("Shutdown complete")
        self._stopped.set()

    async def run(self) -> None:
        """Run until stop() is called."""
        await self.start()
        await self._stopped.wait()


async def open_database() -> Database:
    """Connect to the configured database and apply the schema."""
    db = Database()
    await db.connect()
    await db.init_schema()
    return db


async def init_database() -> None:
    """Create the schema and exit."""
    db = await open_database()
    await db.disconnect()


def check_config() -> int:
    """Print configuration problems; returns the process exit code."""
    errors = config.validate()
    for error in errors:
        print(f"❌ {error}")
    if not errors:
        print("✅ Configuration is valid")
    return 1 if errors else 0


async def serve(host: Optional[str], port: Optional[int]) -> None:
    """Run the service with SIGTERM/SIGINT triggering a graceful stop."""
    service = PaymentAppService(host=host, port=port)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda s=sig: asyncio.ensure_future(_on_signal(service, s))
        )

    try:
        await service.run()
    except Exception as e:
        logger.error(f"Service error: {e}", exc_info=True)
        await service.stop()
        sys.exit(1)


async def _on_signal(service: PaymentAppService, sig: signal.Signals) -> None:
    logger.info(f"Received {sig.name}")
    await service.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description='Paysera payment app for Saleor')
    parser.add_argument('--host', help='Bind address (default: API_HOST)')
    parser.add_argument('--port', type=int, help='Bind port (default: API_PORT)')
    parser.add_argument(
        '--init-db',
        action='store_true',
        help='Create the database schema and exit'
    )
    parser.add_argument(
        '--check-config',
        action='store_true',
        help='Validate configuration and exit'
    )
    args = parser.parse_args()

    if args.check_config:
        sys.exit(check_config())

    setup_logging(config.logging.level, config.logging.file)

    if args.init_db:
        asyncio.run(init_database())
        return

    asyncio.run(serve(args.host, args.port))


if __name__ == '__main__':
    main()
