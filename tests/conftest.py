import sys
import pathlib
from datetime import datetime, timedelta

import pytest

sys.path.append(str(pathlib.Path(__file__).parent))
root_dir = pathlib.Path(__file__).resolve().parents[1]
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

from core.models import TickerSnapshot  # noqa: E402
from core.ticker_store import TickerStore  # noqa: E402


def make_snapshot(price, volume=0.0, high=None, low=None, age=0.0, connected=True):
    """Snapshot stamped `age` seconds in the past."""
    return TickerSnapshot(
        price=price,
        volume=volume,
        high=high,
        low=low,
        timestamp=datetime.now() - timedelta(seconds=age),
        connected=connected,
    )


class DummyWS:
    """Records what a connector sends over its socket."""

    def __init__(self):
        self.sent = []
        self.closed = False

    async def send(self, msg):
        self.sent.append(msg)

    async def close(self):
        self.closed = True


class DummyPriceProvider:
    def __init__(self, price=1.0, error=None):
        self.price = price
        self.error = error

    async def get_current_price(self):
        if self.error:
            raise self.error
        return self.price


class DummyDispatcher:
    def __init__(self, error=None):
        self.alerts = []
        self.error = error

    async def dispatch(self, alert):
        self.alerts.append(alert)
        if self.error:
            raise self.error
        return True


CEX = {
    "lbank": "0xB9885e76B4FeE07791377f4099d6eD4F3E49c4d0",
    "mexc": "0x05d71131B754d09ffc84E8250419539Fb5BFe8eb",
}


@pytest.fixture
def store():
    return TickerStore(["mexc", "lbank", "coinstore"])


@pytest.fixture
def cex_addresses():
    return dict(CEX)


@pytest.fixture
def dispatcher():
    return DummyDispatcher()


@pytest.fixture
def dummy_ws():
    return DummyWS()
