import json

import pytest

from core.chain_watcher import ChainWatcher
from core.exceptions import RpcError


class FakeRpc:
    def __init__(self, blocks=None, fail=()):
        self.blocks = blocks or {}
        self.fail = set(fail)
        self.requested = []

    async def get_block(self, block_number, full_transactions=True):
        self.requested.append(block_number)
        if block_number in self.fail:
            raise RpcError("eth_getBlockByNumber timed out after 10s")
        return self.blocks.get(block_number)


class RecordingClassifier:
    def __init__(self):
        self.seen = []

    async def process_transaction(self, tx):
        self.seen.append(tx["hash"])
        return []


def head(number):
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": "0xsub", "result": {"number": number}},
    })


@pytest.fixture
def classifier():
    return RecordingClassifier()


@pytest.mark.asyncio
async def test_subscribes_to_new_heads(classifier, dummy_ws):
    watcher = ChainWatcher("wss://node", FakeRpc(), classifier)
    await watcher._on_open(dummy_ws)

    sent = json.loads(dummy_ws.sent[0])
    assert sent["method"] == "eth_subscribe"
    assert sent["params"] == ["newHeads"]


@pytest.mark.asyncio
async def test_transactions_processed_in_order(classifier):
    rpc = FakeRpc({"0x10": {"transactions": [{"hash": "0xa"}, {"hash": "0xb"}, {"hash": "0xc"}]}})
    watcher = ChainWatcher("wss://node", rpc, classifier)

    await watcher._handle_message(head("0x10"))

    assert classifier.seen == ["0xa", "0xb", "0xc"]
    assert watcher.last_processed_block == "0x10"
    assert watcher.blocks_processed == 1


@pytest.mark.asyncio
async def test_duplicate_head_skipped(classifier):
    rpc = FakeRpc({"0x10": {"transactions": [{"hash": "0xa"}]}})
    watcher = ChainWatcher("wss://node", rpc, classifier)

    assert await watcher.on_new_head("0x10") is True
    assert await watcher.on_new_head("0x10") is False

    assert rpc.requested == ["0x10"]
    assert classifier.seen == ["0xa"]


@pytest.mark.asyncio
async def test_failed_block_is_not_retried(classifier):
    rpc = FakeRpc({"0x12": {"transactions": [{"hash": "0xd"}]}}, fail={"0x11"})
    watcher = ChainWatcher("wss://node", rpc, classifier)

    await watcher._handle_message(head("0x11"))
    await watcher._handle_message(head("0x12"))

    assert watcher.blocks_failed == 1
    assert watcher.blocks_processed == 1
    assert classifier.seen == ["0xd"]
    assert rpc.requested == ["0x11", "0x12"]


@pytest.mark.asyncio
async def test_ack_and_junk_messages_ignored(classifier):
    rpc = FakeRpc()
    watcher = ChainWatcher("wss://node", rpc, classifier)

    await watcher._handle_message(json.dumps({"jsonrpc": "2.0", "id": 1, "result": "0xsub"}))
    await watcher._handle_message("not json")
    await watcher._handle_message(json.dumps({"method": "eth_subscription", "params": {"result": {}}}))

    assert rpc.requested == []
    assert watcher.last_processed_block is None


@pytest.mark.asyncio
async def test_subscription_error_closes_socket(classifier, dummy_ws, caplog):
    watcher = ChainWatcher("wss://node", FakeRpc(), classifier)
    watcher.ws = dummy_ws

    await watcher._handle_message(json.dumps({
        "jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "subscriptions not supported"},
    }))

    assert dummy_ws.closed
    assert any("subscriptions not supported" in r.message for r in caplog.records if r.levelname == "ERROR")


@pytest.mark.asyncio
async def test_missing_block_counts_as_failed(classifier):
    rpc = FakeRpc()
    watcher = ChainWatcher("wss://node", rpc, classifier)

    await watcher._handle_message(head("0x20"))

    assert watcher.blocks_failed == 1
    assert watcher.blocks_processed == 0
    assert classifier.seen == []
