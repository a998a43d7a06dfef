import pytest
from fastapi.testclient import TestClient

from conftest import make_snapshot
from core.aggregator import Aggregator
from status_server import create_app


@pytest.fixture
def client_for(store):
    def build(**snapshots):
        for name, snap in snapshots.items():
            store.set_snapshot(name, snap)
        return TestClient(create_app(store, Aggregator(store)))
    return build


def test_health_reports_feeds(client_for):
    client = client_for(mexc=make_snapshot(1.0, 10))

    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["exchanges"]["mexc"]["connected"] is True
    assert body["exchanges"]["lbank"]["price"] is None
    assert body["chain_watcher"] is None


def test_quote_returns_composite(client_for):
    client = client_for(mexc=make_snapshot(1.0, 1000), lbank=make_snapshot(1.02, 3000))

    resp = client.get("/quote")

    assert resp.status_code == 200
    body = resp.json()
    assert body["price"] == pytest.approx(1.015)
    assert body["source"] == "Combined"


def test_quote_unavailable(client_for):
    client = client_for()

    assert client.get("/quote").status_code == 503
    assert client.get("/health").json()["status"] == "degraded"
