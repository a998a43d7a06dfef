import asyncio
import json

import aiohttp
import pytest

from conftest import make_snapshot
from core.exchange_connectors import (
    CoinstoreTickerWS,
    LBankTickerWS,
    MexcTickerPoller,
    MultiExchangeTickerFeed,
    WebSocketConnector,
    parse_ticker_fields,
    to_float,
)


class FakeConnection:
    """Async context manager yielding a fixed list of messages."""

    def __init__(self, messages):
        self.messages = list(messages)
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def send(self, msg):
        self.sent.append(msg)

    async def close(self):
        pass

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.messages:
            raise StopAsyncIteration
        return self.messages.pop(0)


def lbank_tick(latest="0.0123", vol="1000", high="0.013", low="0.012", pair="tics_usdt"):
    return json.dumps({"type": "tick", "pair": pair, "tick": {"latest": latest, "vol": vol, "high": high, "low": low}})


@pytest.mark.parametrize("raw", [None, "", "abc", "0", "-1", "nan", "inf", 0, True])
def test_parse_rejects_bad_prices(raw):
    assert parse_ticker_fields(raw, "10") is None


def test_parse_accepts_strings_with_separators():
    snap = parse_ticker_fields("1,234.5", "2,000", "nan", None)
    assert snap.price == 1234.5
    assert snap.volume == 2000
    assert snap.high is None
    assert snap.low is None
    assert snap.connected is True
    assert snap.timestamp is not None


def test_to_float():
    assert to_float("0.5") == 0.5
    assert to_float(None) is None
    assert to_float("x") is None


def test_mexc_parse_response():
    data = {"code": 200, "data": [{"last": "0.0125", "volume": "5000", "high": "0.013", "low": "0.011"}]}
    snap = MexcTickerPoller.parse_response(data)
    assert snap.price == 0.0125
    assert snap.volume == 5000

    assert MexcTickerPoller.parse_response({"code": 400, "data": []}) is None
    assert MexcTickerPoller.parse_response({"code": 200, "data": []}) is None
    assert MexcTickerPoller.parse_response(None) is None


@pytest.mark.asyncio
async def test_poll_failure_keeps_stale_values(store, monkeypatch):
    poller = MexcTickerPoller(store)
    stale = make_snapshot(0.01, 100)
    store.set_snapshot("mexc", stale)

    async def failing():
        return None

    monkeypatch.setattr(poller, "fetch_rest_snapshot", failing)
    assert await poller.poll_once() is False

    snap = store.get_snapshot("mexc")
    assert snap.price == 0.01
    assert snap.connected is False

    async def succeeding():
        return make_snapshot(0.02, 200, connected=False)

    monkeypatch.setattr(poller, "fetch_rest_snapshot", succeeding)
    assert await poller.poll_once() is True
    assert store.get_snapshot("mexc").price == 0.02
    assert poller.connected is True


@pytest.mark.asyncio
async def test_lbank_tick_updates_store(store):
    conn = LBankTickerWS(store)
    await conn._handle_message(lbank_tick())

    snap = store.get_snapshot("lbank")
    assert snap.price == 0.0123
    assert snap.volume == 1000
    assert snap.connected is True


@pytest.mark.asyncio
async def test_lbank_ignores_other_pairs(store):
    conn = LBankTickerWS(store)
    await conn._handle_message(lbank_tick(pair="btc_usdt"))
    assert store.get_snapshot("lbank").price is None


@pytest.mark.asyncio
async def test_lbank_answers_ping(store, dummy_ws):
    conn = LBankTickerWS(store)
    conn.ws = dummy_ws

    await conn._handle_message(json.dumps({"action": "ping", "ping": "abc-123"}))

    assert json.loads(dummy_ws.sent[0]) == {"action": "pong", "pong": "abc-123"}


@pytest.mark.asyncio
async def test_malformed_ticker_marks_disconnected(store):
    conn = LBankTickerWS(store)
    await conn._handle_message(lbank_tick())

    await conn._handle_message(lbank_tick(latest="garbage"))
    snap = store.get_snapshot("lbank")
    assert snap.price == 0.0123
    assert snap.connected is False

    await conn._handle_message(lbank_tick())
    await conn._handle_message("{not json")
    assert store.get_snapshot("lbank").connected is False


def test_lbank_rest_fallback_not_live():
    data = {"result": "true", "data": [{"symbol": "tics_usdt", "ticker": {"latest": "0.02", "vol": "10", "high": "0.03", "low": "0.01"}}]}
    snap = LBankTickerWS.parse_rest_response(data)
    assert snap.price == 0.02
    assert snap.connected is False
    assert LBankTickerWS.parse_rest_response({"data": []}) is None


@pytest.mark.asyncio
async def test_coinstore_ticker_and_control(store, dummy_ws):
    conn = CoinstoreTickerWS(store)

    await conn._on_open(dummy_ws)
    assert json.loads(dummy_ws.sent[0]) == {"op": "SUB", "channel": ["ticsusdt@ticker"], "id": 1}

    await conn._handle_message(json.dumps({"op": "SUB", "code": 0}))
    assert store.get_snapshot("coinstore").price is None

    await conn._handle_message(json.dumps({
        "T": "ticker", "channel": "ticsusdt@ticker", "symbol": "TICSUSDT",
        "close": "0.0124", "volume": "800", "high": "0.013", "low": "0.012",
    }))
    snap = store.get_snapshot("coinstore")
    assert snap.price == 0.0124
    assert snap.connected is True


def test_coinstore_rest_finds_symbol():
    data = {"data": [
        {"symbol": "BTCUSDT", "close": "60000", "volume": "1"},
        {"symbol": "TICSUSDT", "close": "0.0126", "volume": "900", "high": "0.013", "low": "0.012"},
    ]}
    snap = CoinstoreTickerWS.parse_rest_response(data, "TICSUSDT")
    assert snap.price == 0.0126
    assert snap.connected is False
    assert CoinstoreTickerWS.parse_rest_response({"data": []}, "TICSUSDT") is None


@pytest.mark.asyncio
async def test_reconnect_loop_marks_disconnected(store, monkeypatch):
    conn = LBankTickerWS(store, reconnect_delay=5)
    connection = FakeConnection([lbank_tick()])

    def fake_connect(url, *_, **__):
        return connection

    sleeps = []

    async def fake_sleep(t):
        sleeps.append(t)
        conn.running = False

    monkeypatch.setattr("core.ws_client.websockets.connect", fake_connect)
    monkeypatch.setattr("core.ws_client.asyncio.sleep", fake_sleep)

    await conn.start()

    assert json.loads(connection.sent[0])["subscribe"] == "tick"
    snap = store.get_snapshot("lbank")
    assert snap.price == 0.0123
    assert snap.connected is False
    assert conn.reconnect_count == 1
    assert sleeps == [5]
    assert conn.ws is None


def test_feed_exposes_fallbacks_and_names(store):
    feed = MultiExchangeTickerFeed([MexcTickerPoller(store), LBankTickerWS(store), CoinstoreTickerWS(store)])

    assert feed.display_names == {"mexc": "MEXC", "lbank": "LBank", "coinstore": "CoinStore"}
    assert set(feed.fallbacks) == {"mexc", "lbank", "coinstore"}
    assert store.exchanges() == ["mexc", "lbank", "coinstore"]


class FakeResponse:
    def __init__(self, status, payload=None):
        self.status = status
        self.payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        return self.payload


class FakeSession:
    closed = False

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error

    def get(self, url, **kwargs):
        if self.error:
            raise self.error
        return self.response


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=asyncio.TimeoutError()),
        FakeSession(error=aiohttp.ClientConnectionError("refused")),
        FakeSession(FakeResponse(500, {"code": 200, "data": [{"last": "9.9"}]})),
    ],
)
async def test_poll_network_failures_keep_stale_price(store, session):
    poller = MexcTickerPoller(store, session=session)
    store.set_snapshot("mexc", make_snapshot(0.01, 100))

    assert await poller.poll_once() is False

    snap = store.get_snapshot("mexc")
    assert snap.price == 0.01
    assert snap.connected is False


@pytest.mark.asyncio
async def test_poll_success_through_session(store):
    payload = {"code": 200, "data": [{"last": "0.0131", "volume": "700", "high": "0.014", "low": "0.012"}]}
    poller = MexcTickerPoller(store, session=FakeSession(FakeResponse(200, payload)))

    assert await poller.poll_once() is True
    assert store.get_snapshot("mexc").price == 0.0131
    assert poller.connected is True


def test_incomplete_connector_cannot_be_created(store):
    class HalfConnector(WebSocketConnector):
        name = "half"

        def subscribe_message(self):
            return {}

        def is_ticker_message(self, data):
            return True

    with pytest.raises(TypeError):
        HalfConnector(store, "wss://example")
