"""
Minimal JSON-RPC client for the Qubetics node.
"""
import asyncio
import itertools
import logging
from typing import Any, List, Optional

import aiohttp

from core.exceptions import RpcError

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """Request/response JSON-RPC over HTTP with an explicit timeout."""

    def __init__(
        self,
        rpc_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    async def _ensure_session(self):
        """Ensure aiohttp session exists."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self):
        """Close the aiohttp session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def call(self, method: str, params: List[Any]) -> Any:
        """
        Execute one JSON-RPC call and return its `result`.

        Raises:
            RpcError: HTTP failure, timeout, or an `error` member in the reply
        """
        await self._ensure_session()

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids)
        }

        try:
            async with self._session.post(
                self.rpc_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status != 200:
                    raise RpcError(f"{method} failed: HTTP {resp.status}")
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise RpcError(f"{method} timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise RpcError(f"{method} failed: {e}") from e

        if not isinstance(data, dict):
            raise RpcError(f"{method} returned a non-object response")
        if data.get("error"):
            raise RpcError(f"{method} error: {data['error']}")

        return data.get("result")

    async def get_block(self, block_number: str, full_transactions: bool = True) -> Optional[dict]:
        """eth_getBlockByNumber; block_number is a hex quantity or tag."""
        return await self.call("eth_getBlockByNumber", [block_number, full_transactions])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])
