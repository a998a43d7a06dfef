"""
New-block watcher for the Qubetics chain.
Subscribes to newHeads over WebSocket, fetches every new block with full
transactions over JSON-RPC and hands each transaction to the classifier.
"""
import json
import logging
from typing import Optional

from core.rpc import JsonRpcClient
from core.transfer_classifier import TransferClassifier
from core.ws_client import ReconnectingWebSocket

logger = logging.getLogger(__name__)


class ChainWatcher(ReconnectingWebSocket):
    """
    Auto-reconnecting newHeads subscriber.

    Duplicate notifications for the last processed block are skipped. A block
    that fails to load is logged and not retried.
    """

    label = "Whale monitoring WebSocket"

    def __init__(
        self,
        ws_url: str,
        rpc: JsonRpcClient,
        classifier: TransferClassifier,
        reconnect_delay: float = 5,
        ping_interval: int = 20,
        ping_timeout: int = 20
    ):
        super().__init__(ws_url, reconnect_delay, ping_interval, ping_timeout)
        self.rpc = rpc
        self.classifier = classifier

        self.last_processed_block: Optional[str] = None
        self.blocks_processed = 0
        self.blocks_failed = 0

    async def _on_open(self, ws):
        subscribe_msg = {
            "jsonrpc": "2.0",
            "method": "eth_subscribe",
            "params": ["newHeads"],
            "id": 1
        }
        await ws.send(json.dumps(subscribe_msg))
        logger.info("Subscribed to newHeads")

    async def _handle_message(self, message):
        """Route subscription notifications to block processing."""
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            logger.warning(f"Failed to decode newHeads message: {message!r:.200}")
            return

        if not isinstance(data, dict):
            return

        if "id" in data and data.get("error"):
            logger.error(f"newHeads subscription failed: {data['error']}")
            if self.ws is not None:
                await self.ws.close()
            return

        if "id" in data and "result" in data:
            logger.info(f"newHeads subscription id: {data['result']}")
            return

        if data.get("method") != "eth_subscription":
            return

        header = (data.get("params") or {}).get("result")
        if not isinstance(header, dict) or not header.get("number"):
            return

        await self.on_new_head(header["number"])

    async def on_new_head(self, block_number: str) -> bool:
        """Process a block unless it is the one just processed."""
        if block_number == self.last_processed_block:
            logger.debug(f"Skipping duplicate block {block_number}")
            return False

        self.last_processed_block = block_number
        await self.process_block(block_number)
        return True

    async def process_block(self, block_number: str):
        """Fetch the block and classify its transactions one by one."""
        try:
            block = await self.rpc.get_block(block_number, True)
        except Exception as e:
            self.blocks_failed += 1
            logger.error(f"Error fetching block {block_number}: {e}")
            return

        if not isinstance(block, dict):
            self.blocks_failed += 1
            logger.warning(f"Block {block_number} not available")
            return

        transactions = block.get("transactions") or []
        for tx in transactions:
            await self.classifier.process_transaction(tx)

        self.blocks_processed += 1
        logger.debug(f"Block {block_number}: {len(transactions)} transactions")
