"""
Exchange ticker connectors for TICS/USDT.
Each connector keeps one exchange's entry in the ticker store fresh,
either by polling a REST endpoint or through a WebSocket subscription.
"""
import asyncio
import json
import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from core.models import TickerSnapshot
from core.ticker_store import TickerStore
from core.ws_client import ReconnectingWebSocket

logger = logging.getLogger(__name__)


def to_float(value: Any) -> Optional[float]:
    """Parse a numeric field, returning None for missing or non-finite values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, str):
            value = value.replace(",", "").strip()
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_ticker_fields(price: Any, volume: Any = None, high: Any = None, low: Any = None) -> Optional[TickerSnapshot]:
    """
    Build a live snapshot from raw ticker fields.

    Returns None when the price is missing, non-finite or not positive.
    Optional fields that fail to parse are left empty.
    """
    parsed_price = to_float(price)
    if parsed_price is None or parsed_price <= 0:
        return None

    parsed_volume = to_float(volume)
    if parsed_volume is not None and parsed_volume < 0:
        parsed_volume = None

    return TickerSnapshot(
        price=parsed_price,
        volume=parsed_volume,
        high=to_float(high),
        low=to_float(low),
        timestamp=datetime.now(),
        connected=True,
    )


class ExchangeConnector(ABC):
    """
    Base connector: owns one store entry and an optional REST endpoint.

    `fetch_rest_snapshot` is also used by the aggregator as a one-shot
    fallback, so it must never touch the store itself.
    """

    name = "exchange"
    display_name = "Exchange"

    def __init__(
        self,
        store: TickerStore,
        session: Optional[aiohttp.ClientSession] = None,
        http_timeout: float = 5
    ):
        self.store = store
        self.http_timeout = http_timeout
        self._session = session
        self._owns_session = session is None
        self.store.register(self.name)

    async def _ensure_session(self):
        """Ensure aiohttp session exists."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self):
        """Close the aiohttp session if this connector created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Optional[Any]:
        """GET a JSON document; None on timeout, network error or non-200 status."""
        await self._ensure_session()

        try:
            async with self._session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.http_timeout)
            ) as response:
                if response.status != 200:
                    logger.warning(f"{self.display_name} API error: HTTP {response.status}")
                    return None
                return await response.json(content_type=None)

        except asyncio.TimeoutError:
            logger.warning(f"{self.display_name} request timed out after {self.http_timeout}s")
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"{self.display_name} request failed: {e}")
        return None

    async def fetch_rest_snapshot(self) -> Optional[TickerSnapshot]:
        """One-shot REST ticker; connectors without a REST endpoint return None."""
        return None

    def _update(self, snapshot: TickerSnapshot):
        self.store.set_snapshot(self.name, snapshot)

    def _mark_disconnected(self):
        self.store.mark_disconnected(self.name)

    @property
    def connected(self) -> bool:
        return self.store.get_snapshot(self.name).connected

    @abstractmethod
    async def start(self):
        """Run until stopped, keeping the store entry fresh."""

    async def stop(self):
        await self.close()


class PollingConnector(ExchangeConnector):
    """Pull-mode connector: polls the REST ticker on a fixed interval."""

    def __init__(
        self,
        store: TickerStore,
        session: Optional[aiohttp.ClientSession] = None,
        http_timeout: float = 5,
        poll_interval: float = 5
    ):
        super().__init__(store, session, http_timeout)
        self.poll_interval = poll_interval
        self.running = False

    async def poll_once(self) -> bool:
        """Fetch once; on failure keep stale values and flag the feed down."""
        try:
            snapshot = await self.fetch_rest_snapshot()
        except Exception as e:
            logger.error(f"{self.display_name} poll error: {e}")
            snapshot = None

        if snapshot is None:
            self._mark_disconnected()
            return False

        snapshot.connected = True
        self._update(snapshot)
        return True

    async def start(self):
        """Poll until stopped."""
        self.running = True
        logger.info(f"✅ {self.display_name} polling every {self.poll_interval}s")

        while self.running:
            await self.poll_once()
            await asyncio.sleep(self.poll_interval)

    async def stop(self):
        self.running = False
        await super().stop()
        logger.info(f"{self.display_name} polling stopped")


class WebSocketConnector(ReconnectingWebSocket, ExchangeConnector):
    """Push-mode connector: persistent ticker subscription with REST fallback."""

    def __init__(
        self,
        store: TickerStore,
        ws_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        http_timeout: float = 5,
        reconnect_delay: float = 5,
        ping_interval: int = 20,
        ping_timeout: int = 20
    ):
        ExchangeConnector.__init__(self, store, session, http_timeout)
        ReconnectingWebSocket.__init__(self, ws_url, reconnect_delay, ping_interval, ping_timeout)
        self.label = f"{self.display_name} ticker feed"

    async def _on_open(self, ws):
        await ws.send(json.dumps(self.subscribe_message()))
        logger.info(f"Subscribed to {self.display_name} ticker")

    def _on_close(self):
        self._mark_disconnected()

    async def stop(self):
        await ReconnectingWebSocket.stop(self)
        await self.close()

    async def _handle_message(self, message):
        """Parse and route incoming ticker messages."""
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            logger.warning(f"Failed to decode {self.display_name} message: {message!r:.200}")
            self._mark_disconnected()
            return

        if not isinstance(data, dict):
            return

        if await self._handle_control(data):
            return

        if not self.is_ticker_message(data):
            return

        snapshot = self.parse_ticker(data)
        if snapshot is None:
            logger.warning(f"Dropping malformed {self.display_name} ticker: {data}")
            self._mark_disconnected()
            return

        self._update(snapshot)

    async def _handle_control(self, data: dict) -> bool:
        """Handle pings and subscription acks; True when the message was consumed."""
        return False

    @abstractmethod
    def subscribe_message(self) -> dict:
        """Subscription frame sent right after connecting."""

    @abstractmethod
    def is_ticker_message(self, data: dict) -> bool:
        """Whether a decoded frame is a ticker for this pair."""

    @abstractmethod
    def parse_ticker(self, data: dict) -> Optional[TickerSnapshot]:
        """Snapshot from a ticker frame, None when malformed."""


class MexcTickerPoller(PollingConnector):
    """
    MEXC spot ticker via the v2 open API.
    Response: {"code": 200, "data": [{"last", "volume", "high", "low", ...}]}
    """

    name = "mexc"
    display_name = "MEXC"

    def __init__(
        self,
        store: TickerStore,
        url: str = "https://www.mexc.co/open/api/v2/market/ticker",
        symbol: str = "TICS_USDT",
        **kwargs
    ):
        super().__init__(store, **kwargs)
        self.url = url
        self.symbol = symbol

    async def fetch_rest_snapshot(self) -> Optional[TickerSnapshot]:
        data = await self._get_json(self.url, params={"symbol": self.symbol})
        return self.parse_response(data)

    @staticmethod
    def parse_response(data: Any) -> Optional[TickerSnapshot]:
        if not isinstance(data, dict) or data.get("code") != 200:
            return None
        tickers = data.get("data") or []
        if not isinstance(tickers, list) or not tickers or not isinstance(tickers[0], dict):
            return None
        ticker = tickers[0]
        return parse_ticker_fields(ticker.get("last"), ticker.get("volume"), ticker.get("high"), ticker.get("low"))


class LBankTickerWS(WebSocketConnector):
    """
    LBank V2 WebSocket tick channel.

    Tick message: {"type": "tick", "pair": "tics_usdt",
                   "tick": {"latest", "vol", "high", "low", ...}}
    The server pings with {"action": "ping", "ping": id} and expects a pong.
    """

    name = "lbank"
    display_name = "LBank"

    def __init__(
        self,
        store: TickerStore,
        ws_url: str = "wss://www.lbkex.net/ws/V2/",
        rest_url: str = "https://api.lbkex.com/v2/ticker/24hr.do",
        pair: str = "tics_usdt",
        **kwargs
    ):
        super().__init__(store, ws_url, **kwargs)
        self.rest_url = rest_url
        self.pair = pair.lower()

    def subscribe_message(self) -> dict:
        return {"action": "subscribe", "subscribe": "tick", "pair": self.pair}

    async def _handle_control(self, data: dict) -> bool:
        if data.get("action") == "ping":
            if self.ws is not None:
                await self.ws.send(json.dumps({"action": "pong", "pong": data.get("ping")}))
            return True
        return False

    def is_ticker_message(self, data: dict) -> bool:
        return data.get("type") == "tick" and str(data.get("pair", "")).lower() == self.pair

    def parse_ticker(self, data: dict) -> Optional[TickerSnapshot]:
        tick = data.get("tick")
        if not isinstance(tick, dict):
            return None
        return parse_ticker_fields(tick.get("latest"), tick.get("vol"), tick.get("high"), tick.get("low"))

    async def fetch_rest_snapshot(self) -> Optional[TickerSnapshot]:
        data = await self._get_json(self.rest_url, params={"symbol": self.pair})
        return self.parse_rest_response(data)

    @staticmethod
    def parse_rest_response(data: Any) -> Optional[TickerSnapshot]:
        # {"result": "true", "data": [{"symbol": ..., "ticker": {...}}]}
        if not isinstance(data, dict):
            return None
        entries = data.get("data") or []
        if not isinstance(entries, list) or not entries or not isinstance(entries[0], dict):
            return None
        ticker = entries[0].get("ticker")
        if not isinstance(ticker, dict):
            return None
        snapshot = parse_ticker_fields(ticker.get("latest"), ticker.get("vol"), ticker.get("high"), ticker.get("low"))
        if snapshot is not None:
            snapshot.connected = False
        return snapshot


class CoinstoreTickerWS(WebSocketConnector):
    """
    CoinStore WebSocket ticker channel.

    Ticker message carries "symbol", "close", "volume", "high" and "low"
    on a "<symbol>@ticker" channel.
    """

    name = "coinstore"
    display_name = "CoinStore"

    def __init__(
        self,
        store: TickerStore,
        ws_url: str = "wss://ws.coinstore.com/s/ws",
        rest_url: str = "https://api.coinstore.com/api/v1/market/tickers",
        symbol: str = "TICSUSDT",
        **kwargs
    ):
        super().__init__(store, ws_url, **kwargs)
        self.rest_url = rest_url
        self.symbol = symbol.upper()

    def subscribe_message(self) -> dict:
        return {"op": "SUB", "channel": [f"{self.symbol.lower()}@ticker"], "id": 1}

    async def _handle_control(self, data: dict) -> bool:
        if data.get("op") in ("SUB", "pong"):
            if data.get("op") == "SUB":
                logger.info(f"CoinStore subscription response: {data}")
            return True
        return False

    def is_ticker_message(self, data: dict) -> bool:
        channel = str(data.get("channel", ""))
        is_ticker = data.get("T") == "ticker" or channel.endswith("@ticker")
        return is_ticker and str(data.get("symbol", "")).upper() == self.symbol

    def parse_ticker(self, data: dict) -> Optional[TickerSnapshot]:
        return parse_ticker_fields(data.get("close"), data.get("volume"), data.get("high"), data.get("low"))

    async def fetch_rest_snapshot(self) -> Optional[TickerSnapshot]:
        data = await self._get_json(self.rest_url)
        return self.parse_rest_response(data, self.symbol)

    @staticmethod
    def parse_rest_response(data: Any, symbol: str = "TICSUSDT") -> Optional[TickerSnapshot]:
        if not isinstance(data, dict):
            return None
        tickers: List[dict] = data.get("data") or []
        if not isinstance(tickers, list):
            return None
        for ticker in tickers:
            if isinstance(ticker, dict) and str(ticker.get("symbol", "")).upper() == symbol:
                snapshot = parse_ticker_fields(ticker.get("close"), ticker.get("volume"), ticker.get("high"), ticker.get("low"))
                if snapshot is not None:
                    snapshot.connected = False
                return snapshot
        return None


class MultiExchangeTickerFeed:
    """
    Manages every exchange connector.
    Starts them side by side and exposes their REST fallbacks.
    """

    def __init__(self, connectors: List[ExchangeConnector]):
        self.connectors = connectors

    @property
    def fallbacks(self):
        return {connector.name: connector.fetch_rest_snapshot for connector in self.connectors}

    @property
    def display_names(self) -> Dict[str, str]:
        return {connector.name: connector.display_name for connector in self.connectors}

    async def start(self):
        """Start all connectors in parallel."""
        names = ", ".join(connector.display_name for connector in self.connectors)
        logger.info(f"Starting ticker feeds: {names}")
        await asyncio.gather(*(connector.start() for connector in self.connectors))

    async def stop(self):
        """Stop all connectors."""
        logger.info("Stopping ticker feeds...")
        await asyncio.gather(*(connector.stop() for connector in self.connectors), return_exceptions=True)
