"""
Presale wallet lookup client.
"""
import asyncio
import logging
from typing import Optional

import aiohttp

from core.exceptions import WalletFetchError, WalletNotFoundError
from core.models import WalletData

logger = logging.getLogger(__name__)


class PresaleWalletClient:
    """Fetches presale holdings for a wallet from the project API."""

    def __init__(
        self,
        base_url: str = "https://presale-api.qubetics.com/v1/projects/qubetics/wallet",
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10,
        user_agent: str = "TICS-Bot/3.0"
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self):
        """Ensure aiohttp session exists."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self):
        """Close the aiohttp session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def fetch_wallet(self, address: str) -> WalletData:
        """
        Look up presale holdings.

        Raises:
            WalletNotFoundError: the API answered 404
            WalletFetchError: any other failure
        """
        await self._ensure_session()

        try:
            async with self._session.get(
                f"{self.base_url}/{address}",
                headers={"User-Agent": self.user_agent},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status == 404:
                    raise WalletNotFoundError(address)
                if response.status != 200:
                    logger.warning(f"Wallet API error for {address}: HTTP {response.status}")
                    raise WalletFetchError(f"API Error: {response.status}")
                data = await response.json(content_type=None)

        except (WalletNotFoundError, WalletFetchError):
            raise
        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            logger.error(f"Error fetching wallet data for {address}: {e}")
            raise WalletFetchError() from e

        return self.parse_response(data)

    @staticmethod
    def parse_response(data) -> WalletData:
        if not isinstance(data, dict):
            raise WalletFetchError("Unexpected wallet API response")
        try:
            total_tokens = float(data.get("total_tokens") or 0)
        except (TypeError, ValueError) as e:
            raise WalletFetchError("Invalid total_tokens in wallet API response") from e
        return WalletData(
            total_tokens=total_tokens,
            claim_wallet_address=data.get("claim_wallet_address") or None,
        )
