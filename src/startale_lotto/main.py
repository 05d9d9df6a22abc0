#!/usr/bin/env python3
"""
Startale Lotto client application

Main entry point: connects to the chain, starts the lifecycle engine and
serves the HTTP/WebSocket API until a shutdown signal arrives.
"""

import asyncio
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

# .env must be loaded before the logger reads LOG_LEVEL
load_dotenv(Path.cwd() / ".env")

from startale_lotto.blockchain.client import BlockchainClient
from startale_lotto.blockchain.wallet import LocalKeyWallet
from startale_lotto.lottery.engine import LottoEngine
from startale_lotto.utils.config import load_config
from startale_lotto.utils.logger import get_logger
from startale_lotto.web_server import LottoWebServer

logger = get_logger(__name__)


class LottoApp:
    """Owns the blockchain client, wallet, engine and web server."""

    def __init__(self, config=None):
        self.config = config or load_config()
        self.blockchain_client = None
        self.engine = None
        self.web_server = None
        self.running = True

    def _setup_signal_handlers(self):
        def _handler(signum, frame):
            logger.info("Received signal %s, initiating graceful shutdown...", signum)
            self.running = False

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)

    def _display_config_summary(self):
        blockchain_config = self.config.get("blockchain", {})
        server_config = self.config.get("server", {})
        logger.info("=" * 60)
        logger.info("RPC URL: %s", blockchain_config.get("rpc_url", "default"))
        logger.info("Target chain id: %s", blockchain_config.get("chain_id", 1946))
        logger.info("Contract: %s", blockchain_config.get("contract_address", "default"))
        logger.info("ETH/USD: %s", self.config.get("price", {}).get("eth_usd", 3000))
        logger.info("Server: %s:%s", server_config.get("host", "0.0.0.0"), server_config.get("port", 6080))
        logger.info("=" * 60)

    async def initialize(self):
        self._display_config_summary()

        self.blockchain_client = BlockchainClient(self.config)
        await self.blockchain_client.initialize()

        wallet = LocalKeyWallet(self.blockchain_client, self.config)
        if not wallet.account:
            logger.warning("No wallet key configured; operations will be rejected until one is bound")

        self.engine = LottoEngine(self.config, self.blockchain_client, wallet)
        self.web_server = LottoWebServer(self.config, self.engine)

    async def start(self):
        """Start services and run until a shutdown signal is received."""
        self._setup_signal_handlers()
        try:
            await self.initialize()
            await self.engine.start()

            server_host = self.config.get("server", {}).get("host", "0.0.0.0")
            server_port = int(self.config.get("server", {}).get("port", 6080))
            server_task = asyncio.create_task(self.web_server.start(host=server_host, port=server_port))

            while self.running and not server_task.done():
                await asyncio.sleep(1)

            if server_task.done() and server_task.exception():
                raise server_task.exception()
            logger.info("Shutdown signal received, stopping application...")
        finally:
            await self.stop()

    async def stop(self):
        """Stop all services and cleanup resources."""
        self.running = False

        if self.web_server:
            try:
                await self.web_server.stop()
            except Exception as e:
                logger.error("Error stopping web server: %s", e)

        if self.engine:
            try:
                await self.engine.stop()
            except Exception as e:
                logger.error("Error stopping engine: %s", e)

        if self.blockchain_client:
            await self.blockchain_client.close()

        logger.info("Startale Lotto client stopped")


async def main():
    app = LottoApp()
    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Application failed")
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
