import asyncio

import aiohttp
import pytest

from core.exceptions import WalletFetchError, WalletNotFoundError
from core.wallet_client import PresaleWalletClient

ADDRESS = "0x1234567890abcdef1234567890abcdef12345678"


class FakeResponse:
    def __init__(self, status, payload=None):
        self.status = status
        self.payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    closed = False

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


@pytest.mark.asyncio
async def test_fetch_wallet_success():
    session = FakeSession(FakeResponse(200, {"total_tokens": "1500.5", "claim_wallet_address": ADDRESS}))
    client = PresaleWalletClient("https://presale.example/wallet/", session=session)

    wallet = await client.fetch_wallet(ADDRESS)

    assert wallet.total_tokens == 1500.5
    assert wallet.claim_wallet_address == ADDRESS
    url, kwargs = session.requests[0]
    assert url == f"https://presale.example/wallet/{ADDRESS}"
    assert kwargs["headers"]["User-Agent"] == "TICS-Bot/3.0"


@pytest.mark.asyncio
async def test_fetch_wallet_not_found():
    client = PresaleWalletClient(session=FakeSession(FakeResponse(404)))
    with pytest.raises(WalletNotFoundError):
        await client.fetch_wallet(ADDRESS)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "session",
    [
        FakeSession(FakeResponse(500)),
        FakeSession(FakeResponse(200, ValueError("bad json"))),
        FakeSession(error=aiohttp.ClientConnectionError("refused")),
        FakeSession(error=asyncio.TimeoutError()),
    ],
)
async def test_fetch_wallet_failures(session):
    client = PresaleWalletClient(session=session)
    with pytest.raises(WalletFetchError):
        await client.fetch_wallet(ADDRESS)


def test_parse_response_defaults():
    wallet = PresaleWalletClient.parse_response({"total_tokens": None})
    assert wallet.total_tokens == 0.0
    assert wallet.claim_wallet_address is None

    with pytest.raises(WalletFetchError):
        PresaleWalletClient.parse_response([])
    with pytest.raises(WalletFetchError):
        PresaleWalletClient.parse_response({"total_tokens": "lots"})
