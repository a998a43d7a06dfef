"""
TicsTracker Bot - Main Entry Point
Composite TICS/USDT pricing across exchanges and on-chain CEX/whale transfer alerts.
"""
import asyncio
import logging
import sys
import time
from typing import List, Optional

import aiohttp
from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from config import Settings, get_settings
from core.aggregator import Aggregator
from core.chain_watcher import ChainWatcher
from core.exchange_connectors import (
    CoinstoreTickerWS, LBankTickerWS, MexcTickerPoller, MultiExchangeTickerFeed
)
from core.rpc import JsonRpcClient
from core.ticker_store import TickerStore
from core.transfer_classifier import TransferClassifier
from core.wallet_client import PresaleWalletClient
from bot.notifier import Notifier
from bot.handlers import commands
from utils.formatting import format_status_line
from utils.logging_config import setup_logging
from utils.rate_limiter import RateLimiter

logger = logging.getLogger("main")


class TicsTrackerBot:
    """Main bot application orchestrating all components."""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize bot components."""
        self.settings = settings or get_settings()

        # Core components
        self.bot = Bot(token=self.settings.bot_token)
        self.dp = Dispatcher(storage=MemoryStorage())
        self.session: aiohttp.ClientSession = None
        self.notifier: Notifier = None

        # Price engine
        self.store = TickerStore()
        self.ticker_feed: MultiExchangeTickerFeed = None
        self.aggregator: Aggregator = None

        # Chain monitoring
        self.rpc: JsonRpcClient = None
        self.classifier: TransferClassifier = None
        self.watcher: ChainWatcher = None

        # Chat commands
        self.rate_limiter: RateLimiter = None
        self.wallet_client: PresaleWalletClient = None

        self.tasks: List[asyncio.Task] = []

        # Start time for uptime tracking
        self.start_time = time.time()

    async def setup(self):
        """Setup all components."""
        logger.info("Setting up TicsTracker Bot...")
        s = self.settings

        # One HTTP session shared by connectors, RPC and the wallet client
        self.session = aiohttp.ClientSession()

        ws_options = dict(
            session=self.session,
            http_timeout=s.http_timeout,
            reconnect_delay=s.ws_reconnect_delay,
            ping_interval=s.ws_ping_interval,
            ping_timeout=s.ws_ping_timeout,
        )
        connectors = [
            MexcTickerPoller(
                self.store,
                url=s.mexc_ticker_url,
                symbol=s.mexc_symbol,
                session=self.session,
                http_timeout=s.http_timeout,
                poll_interval=s.poll_interval,
            ),
            LBankTickerWS(self.store, ws_url=s.lbank_ws_url, rest_url=s.lbank_rest_url, pair=s.lbank_pair, **ws_options),
            CoinstoreTickerWS(
                self.store, ws_url=s.coinstore_ws_url, rest_url=s.coinstore_rest_url, symbol=s.coinstore_symbol, **ws_options
            ),
        ]
        self.ticker_feed = MultiExchangeTickerFeed(connectors)

        self.aggregator = Aggregator(
            self.store,
            fallbacks=self.ticker_feed.fallbacks,
            freshness_seconds=s.freshness_seconds,
            display_names=self.ticker_feed.display_names,
        )

        # Alerts
        self.notifier = Notifier(
            self.bot,
            alert_chat_id=s.alert_chat_id,
            token_symbol=s.token_symbol,
            explorer_tx_url=s.explorer_tx_url,
        )
        if self.notifier.chat_id is None:
            logger.warning("No alert chat configured - transfer alerts will only be logged")

        self.rpc = JsonRpcClient(s.rpc_url, session=self.session, timeout=s.rpc_timeout)
        self.classifier = TransferClassifier(
            price_provider=self.aggregator,
            dispatcher=self.notifier,
            rpc=self.rpc,
            cex_addresses=s.cex_addresses,
            cex_threshold=s.cex_threshold,
            whale_threshold=s.whale_threshold,
            inspect_token_logs=s.inspect_token_logs,
            token_contract=s.token_contract_address,
        )
        self.watcher = ChainWatcher(
            s.rpc_ws_url,
            self.rpc,
            self.classifier,
            reconnect_delay=s.ws_reconnect_delay,
            ping_interval=s.ws_ping_interval,
            ping_timeout=s.ws_ping_timeout,
        )

        # Setup handlers
        self.rate_limiter = RateLimiter(s.rate_limit_window, s.max_requests_per_user)
        self.wallet_client = PresaleWalletClient(
            s.wallet_api_url, session=self.session, timeout=s.wallet_api_timeout
        )
        commands.aggregator = self.aggregator
        commands.wallet_client = self.wallet_client
        commands.rate_limiter = self.rate_limiter
        commands.display_names = self.ticker_feed.display_names
        commands.token_symbol = s.token_symbol

        self.dp.include_router(commands.router)

        logger.info(
            f"CEX threshold: {s.cex_threshold} {s.token_symbol} | "
            f"Whale threshold: {s.whale_threshold} {s.token_symbol} | "
            f"Token logs: {'on' if s.inspect_token_logs else 'off'}"
        )
        logger.info("Setup complete!")

    async def rate_limit_cleanup_loop(self):
        """Purge expired rate limit windows once per window."""
        while True:
            await asyncio.sleep(self.settings.rate_limit_window)
            self.rate_limiter.purge_expired()

    async def status_loop(self):
        """Log feed connectivity periodically."""
        while True:
            await asyncio.sleep(self.settings.status_log_interval)
            logger.info(format_status_line(
                self.store.status(),
                self.ticker_feed.display_names,
                self.watcher.ws_connected,
            ))

    async def run_status_server(self):
        """Serve /health and /quote with uvicorn."""
        import uvicorn
        from status_server import create_app

        app = create_app(self.store, self.aggregator, self.watcher, self.start_time)
        config = uvicorn.Config(
            app=app,
            host=self.settings.status_server_host,
            port=self.settings.status_server_port,
            log_level="info",
            access_log=False
        )
        server = uvicorn.Server(config)
        try:
            await server.serve()
        except Exception as e:
            logger.error(f"❌ Status server crashed: {e}", exc_info=True)

    async def start(self):
        """Start the bot and all background tasks."""
        logger.info("Starting TicsTracker Bot...")

        try:
            await self.bot.set_my_commands(commands.BOT_COMMANDS)
        except Exception as e:
            logger.warning(f"Failed to register bot commands: {e}")

        # Background tasks
        self.tasks = [
            asyncio.create_task(self.ticker_feed.start()),
            asyncio.create_task(self.watcher.start()),
            asyncio.create_task(self.rate_limit_cleanup_loop()),
            asyncio.create_task(self.status_loop()),
        ]
        if self.settings.status_server_enabled:
            self.tasks.append(asyncio.create_task(self.run_status_server()))

        # Start polling
        try:
            await self.dp.start_polling(self.bot, allowed_updates=self.dp.resolve_used_update_types())
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Graceful shutdown."""
        logger.info("Shutting down TicsTracker Bot...")

        # Stop all WebSocket connections and pollers
        await self.ticker_feed.stop()
        await self.watcher.stop()

        for task in self.tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)

        # Close shared HTTP session
        if self.session and not self.session.closed:
            await self.session.close()

        # Close bot session
        await self.bot.session.close()

        logger.info("Shutdown complete")


async def main():
    """Main entry point."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, log_dir=settings.log_dir)

    if not settings.bot_token:
        logger.error("BOT_TOKEN is not set")
        sys.exit(1)

    bot = TicsTrackerBot(settings)

    try:
        await bot.setup()
        await bot.start()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


def cli():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")


if __name__ == "__main__":
    cli()
