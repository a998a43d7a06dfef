"""
Composite price engine.
Reads the ticker store, applies freshness checks and REST fallback,
and combines usable exchanges into a volume-weighted quote.
"""
import asyncio
import logging
import math
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from core.exceptions import NoDataAvailableError
from core.models import CompositeQuote, ExchangeQuote, TickerSnapshot
from core.ticker_store import TickerStore

logger = logging.getLogger(__name__)

RestFallback = Callable[[], Awaitable[Optional[TickerSnapshot]]]


class Aggregator:
    """
    Produces a CompositeQuote from the ticker store on demand.

    A snapshot is live when it has a positive price, its feed is connected and
    it is younger than the freshness threshold. Anything else is refreshed
    once through the exchange's REST fallback; fallback data is never marked
    live and never written back to the store.
    """

    def __init__(
        self,
        store: TickerStore,
        fallbacks: Optional[Dict[str, RestFallback]] = None,
        freshness_seconds: float = 30,
        display_names: Optional[Dict[str, str]] = None
    ):
        self.store = store
        self.fallbacks: Dict[str, RestFallback] = fallbacks or {}
        self.freshness_seconds = freshness_seconds
        self.display_names: Dict[str, str] = display_names or {}

    def display_name(self, exchange: str) -> str:
        return self.display_names.get(exchange, exchange.upper())

    def is_live(self, snapshot: Optional[TickerSnapshot], now: Optional[datetime] = None) -> bool:
        """Check whether a stored snapshot can be used without refreshing."""
        if snapshot is None or not snapshot.has_price or not snapshot.connected:
            return False
        if snapshot.timestamp is None:
            return False
        now = now or datetime.now()
        age = (now - snapshot.timestamp).total_seconds()
        return age < self.freshness_seconds

    async def _refresh(self, exchange: str) -> Optional[TickerSnapshot]:
        """One-shot REST refresh for a stale exchange."""
        fallback = self.fallbacks.get(exchange)
        if fallback is None:
            return None

        try:
            snapshot = await fallback()
        except Exception as e:
            logger.warning(f"REST fallback for {exchange} failed: {e}")
            return None

        if snapshot is None or not snapshot.has_price:
            return None

        snapshot.connected = False
        logger.debug(f"Using REST fallback for {exchange}: {snapshot.price}")
        return snapshot

    async def collect_usable(self) -> List[Tuple[str, TickerSnapshot]]:
        """Usable snapshots in store order, refreshing stale ones."""
        now = datetime.now()
        exchanges = self.store.exchanges()
        stale = [name for name in exchanges if not self.is_live(self.store.get_snapshot(name), now)]

        refreshed = await asyncio.gather(*(self._refresh(name) for name in stale))
        fallback_data = dict(zip(stale, refreshed))

        usable = []
        for name in exchanges:
            if name in fallback_data:
                snapshot = fallback_data[name]
                if snapshot is not None:
                    usable.append((name, snapshot))
            else:
                usable.append((name, self.store.get_snapshot(name)))
        return usable

    async def get_composite_quote(self) -> CompositeQuote:
        """
        Combine all usable exchanges into one quote.

        Raises:
            NoDataAvailableError: no exchange is usable
        """
        usable = await self.collect_usable()

        if not usable:
            raise NoDataAvailableError()

        if len(usable) == 1:
            name, snapshot = usable[0]
            return self._single_quote(name, snapshot, f"{self.display_name(name)} only")

        return combine_snapshots(usable)

    async def get_current_price(self) -> float:
        """
        Best available price for valuing transfers.

        Composite price first, then the newest positive price in the store,
        then 0.
        """
        try:
            quote = await self.get_composite_quote()
            return quote.price
        except NoDataAvailableError:
            last = self.last_known()
            if last is not None:
                return last[1].price
        return 0.0

    async def get_price_quote(self) -> Optional[CompositeQuote]:
        """Composite quote, degrading to the last known snapshot when feeds are down."""
        try:
            return await self.get_composite_quote()
        except NoDataAvailableError:
            last = self.last_known()
            if last is None:
                return None
            name, snapshot = last
            return self._single_quote(name, snapshot, f"{self.display_name(name)} (last known)")

    def last_known(self) -> Optional[Tuple[str, TickerSnapshot]]:
        """Most recent snapshot with a positive price, connected or not."""
        best = None
        for name in self.store.exchanges():
            snapshot = self.store.get_snapshot(name)
            if not snapshot.has_price:
                continue
            if best is None or (snapshot.timestamp or datetime.min) > (best[1].timestamp or datetime.min):
                best = (name, snapshot)
        return best

    @staticmethod
    def _single_quote(name: str, snapshot: TickerSnapshot, source: str) -> CompositeQuote:
        volume = snapshot.volume or 0.0
        return CompositeQuote(
            price=snapshot.price,
            volume=volume,
            high=_bound(snapshot.high, snapshot.price),
            low=_bound(snapshot.low, snapshot.price),
            timestamp=snapshot.timestamp,
            source=source,
            exchanges={name: ExchangeQuote(price=snapshot.price, volume=volume, live=snapshot.connected)},
        )


def _bound(value: Optional[float], price: float) -> float:
    """High/low bound with the price as default when missing."""
    if value is None or math.isnan(value):
        return price
    return value


def combine_snapshots(usable: List[Tuple[str, TickerSnapshot]]) -> CompositeQuote:
    """
    Volume-weighted combination of two or more snapshots.

    Zero-volume exchanges carry no weight in the price but still count in the
    high/low means. With no volume at all the first snapshot's price is used.
    """
    if not usable:
        raise NoDataAvailableError()

    total_volume = 0.0
    weighted_price_sum = 0.0
    high_sum = 0.0
    low_sum = 0.0
    timestamps = []
    breakdown: Dict[str, ExchangeQuote] = {}

    for name, snapshot in usable:
        volume = snapshot.volume or 0.0
        total_volume += volume
        weighted_price_sum += snapshot.price * volume
        high_sum += _bound(snapshot.high, snapshot.price)
        low_sum += _bound(snapshot.low, snapshot.price)
        if snapshot.timestamp is not None:
            timestamps.append(snapshot.timestamp)
        breakdown[name] = ExchangeQuote(price=snapshot.price, volume=volume, live=snapshot.connected)

    if total_volume > 0:
        price = weighted_price_sum / total_volume
    else:
        price = usable[0][1].price

    count = len(usable)
    return CompositeQuote(
        price=price,
        volume=total_volume,
        high=high_sum / count,
        low=low_sum / count,
        timestamp=max(timestamps) if timestamps else None,
        source="Combined",
        exchanges=breakdown,
    )
