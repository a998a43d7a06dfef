"""
HTTP status server for TicsTracker Bot.
Exposes feed health and the current composite quote.

Usage:
    Enabled with STATUS_SERVER_ENABLED=true; served by uvicorn from main.py.
"""
import logging
import time
from typing import Optional

from fastapi import FastAPI, HTTPException

from core.aggregator import Aggregator
from core.chain_watcher import ChainWatcher
from core.exceptions import NoDataAvailableError
from core.ticker_store import TickerStore

logger = logging.getLogger(__name__)


def create_app(
    store: TickerStore,
    aggregator: Aggregator,
    watcher: Optional[ChainWatcher] = None,
    start_time: Optional[float] = None
) -> FastAPI:
    """Build the FastAPI app around live components."""
    started = start_time or time.time()

    app = FastAPI(
        title="TicsTracker Status Server",
        description="Feed health and composite TICS/USDT quote",
        version="1.0.0",
    )

    @app.get("/")
    async def root():
        """Basic liveness endpoint."""
        return {
            "status": "ok",
            "service": "TicsTracker Bot",
            "endpoints": {
                "health": "/health",
                "quote": "/quote"
            }
        }

    @app.get("/health")
    async def health_check():
        """Connectivity of each exchange feed and the chain watcher."""
        exchanges = {}
        for name in store.exchanges():
            snapshot = store.get_snapshot(name)
            exchanges[name] = {
                "connected": snapshot.connected,
                "price": snapshot.price,
                "timestamp": snapshot.timestamp.isoformat() if snapshot.timestamp else None,
            }

        chain = None
        if watcher is not None:
            chain = {
                "connected": watcher.ws_connected,
                "last_block": watcher.last_processed_block,
                "blocks_processed": watcher.blocks_processed,
                "blocks_failed": watcher.blocks_failed,
                "reconnects": watcher.reconnect_count,
            }

        any_live = any(aggregator.is_live(store.get_snapshot(name)) for name in store.exchanges())
        return {
            "status": "healthy" if any_live else "degraded",
            "uptime_seconds": round(time.time() - started, 1),
            "exchanges": exchanges,
            "chain_watcher": chain,
        }

    @app.get("/quote")
    async def quote():
        """Current composite quote, 503 when no exchange is usable."""
        try:
            composite = await aggregator.get_composite_quote()
        except NoDataAvailableError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return composite.model_dump(mode="json")

    return app
