"""
In-memory store holding the latest ticker snapshot per exchange.
"""
import logging
from typing import Dict, Iterable, List

from core.models import TickerSnapshot

logger = logging.getLogger(__name__)


class TickerStore:
    """
    Latest ticker per exchange plus connectivity metadata.

    Each exchange entry is written only by its own connector and read by the
    aggregator. All access happens on one event loop, so no locking.
    """

    def __init__(self, exchanges: Iterable[str] = ()):
        """Create an empty snapshot for every known exchange."""
        self._snapshots: Dict[str, TickerSnapshot] = {}
        for name in exchanges:
            self.register(name)

    def register(self, exchange: str):
        """Add an exchange with an empty snapshot if it is not known yet."""
        if exchange not in self._snapshots:
            self._snapshots[exchange] = TickerSnapshot()

    def exchanges(self) -> List[str]:
        """Exchange names in registration order."""
        return list(self._snapshots.keys())

    def get_snapshot(self, exchange: str) -> TickerSnapshot:
        if exchange not in self._snapshots:
            raise KeyError(f"Unknown exchange: {exchange}")
        return self._snapshots[exchange]

    def set_snapshot(self, exchange: str, snapshot: TickerSnapshot):
        self.register(exchange)
        self._snapshots[exchange] = snapshot

    def mark_disconnected(self, exchange: str):
        """Flag the feed unhealthy, keeping the last values in place."""
        snapshot = self.get_snapshot(exchange)
        if snapshot.connected:
            logger.debug(f"{exchange} marked disconnected")
        snapshot.connected = False

    def status(self) -> Dict[str, bool]:
        """Connectivity flag per exchange."""
        return {name: snap.connected for name, snap in self._snapshots.items()}
