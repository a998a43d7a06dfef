"""
On-chain transfer detection and classification.

Extracts native-value and ERC-20 Transfer movements from transactions,
prices them with the current composite quote and classifies them as
CEX deposits/withdrawals and/or whale transfers.
"""
import logging
from typing import Any, Dict, List, Optional

from core.models import AlertKind, TransferAlert, TransferEvent, TransferKind

logger = logging.getLogger(__name__)
alerts_logger = logging.getLogger("alerts")

TOKEN_DECIMALS = 18
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def wei_to_tokens(value: Any, decimals: int = TOKEN_DECIMALS) -> float:
    """
    Convert an integer base-unit amount to whole tokens.

    Accepts ints, hex strings ("0x...") and decimal strings. Missing, zero or
    unparseable input gives 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        if isinstance(value, int):
            raw = value
        else:
            text = str(value).strip()
            if not text or text in ("0x", "0x0", "0"):
                return 0.0
            raw = int(text, 16) if text.lower().startswith("0x") else int(text)
    except ValueError:
        return 0.0
    if raw == 0:
        return 0.0
    return raw / 10 ** decimals


def _address(value: Any) -> str:
    return value.lower() if isinstance(value, str) else ""


def _topic_address(topic: Any) -> Optional[str]:
    """Last 20 bytes of an indexed address topic."""
    if not isinstance(topic, str):
        return None
    hex_part = topic[2:] if topic.lower().startswith("0x") else topic
    if len(hex_part) < 40:
        return None
    return "0x" + hex_part[-40:].lower()


def extract_native_transfer(tx: dict, min_amount: float) -> Optional[TransferEvent]:
    """Native value movement of a transaction, or None when absent or below min_amount."""
    if not isinstance(tx, dict):
        return None

    amount = wei_to_tokens(tx.get("value"))
    if amount <= 0 or amount < min_amount:
        return None

    return TransferEvent(
        from_address=_address(tx.get("from")),
        to_address=_address(tx.get("to")),
        amount=amount,
        kind=TransferKind.NATIVE,
    )


def extract_token_transfers(
    receipt: Optional[dict],
    min_amount: float,
    token_contract: Optional[str] = None
) -> List[TransferEvent]:
    """
    ERC-20 Transfer events from a transaction receipt.

    Only logs emitted by `token_contract` are considered when it is given.
    Logs that do not decode are skipped.
    """
    if not isinstance(receipt, dict):
        return []

    contract = token_contract.lower() if token_contract else None
    transfers = []

    for log in receipt.get("logs") or []:
        if not isinstance(log, dict):
            continue

        topics = log.get("topics") or []
        if len(topics) < 3 or str(topics[0]).lower() != TRANSFER_TOPIC:
            continue

        if contract and _address(log.get("address")) != contract:
            continue

        from_addr = _topic_address(topics[1])
        to_addr = _topic_address(topics[2])
        if from_addr is None or to_addr is None:
            logger.debug(f"Skipping Transfer log with malformed topics: {topics}")
            continue

        amount = wei_to_tokens(log.get("data"))
        if amount <= 0 or amount < min_amount:
            continue

        transfers.append(TransferEvent(
            from_address=from_addr,
            to_address=to_addr,
            amount=amount,
            kind=TransferKind.TOKEN,
        ))

    return transfers


def classify_transfer(
    transfer: TransferEvent,
    price: float,
    tx_hash: str,
    cex_addresses: Dict[str, str],
    whale_threshold: float
) -> List[TransferAlert]:
    """
    Alerts for one transfer.

    Destination match is a deposit; otherwise a source match is a
    withdrawal. Whale alerts are independent of CEX matching.
    """
    usd_value = transfer.amount * price
    alerts = []

    def make(kind: AlertKind, exchange_name: Optional[str] = None) -> TransferAlert:
        return TransferAlert(
            kind=kind,
            exchange_name=exchange_name,
            from_address=transfer.from_address,
            to_address=transfer.to_address,
            amount=transfer.amount,
            usd_value=usd_value,
            tx_hash=tx_hash,
            transfer_kind=transfer.kind,
        )

    to_addr = transfer.to_address.lower()
    from_addr = transfer.from_address.lower()

    cex_alert = None
    for name, address in cex_addresses.items():
        if to_addr and to_addr == address.lower():
            cex_alert = make(AlertKind.DEPOSIT, name.upper())
            break

    if cex_alert is None:
        for name, address in cex_addresses.items():
            if from_addr and from_addr == address.lower():
                cex_alert = make(AlertKind.WITHDRAWAL, name.upper())
                break

    if cex_alert is not None:
        alerts.append(cex_alert)

    if transfer.amount >= whale_threshold:
        alerts.append(make(AlertKind.WHALE))

    return alerts


class TransferClassifier:
    """
    Processes raw transactions into dispatched alerts.

    `price_provider` needs an async `get_current_price()`; `dispatcher` needs
    an async `dispatch(alert)`. Failures are logged per transaction and never
    stop the caller's loop.
    """

    def __init__(
        self,
        price_provider,
        dispatcher=None,
        rpc=None,
        cex_addresses: Optional[Dict[str, str]] = None,
        cex_threshold: float = 20,
        whale_threshold: float = 100,
        inspect_token_logs: bool = False,
        token_contract: Optional[str] = None
    ):
        self.price_provider = price_provider
        self.dispatcher = dispatcher
        self.rpc = rpc
        self.cex_addresses = {name: addr.lower() for name, addr in (cex_addresses or {}).items()}
        self.cex_threshold = cex_threshold
        self.whale_threshold = whale_threshold
        self.inspect_token_logs = inspect_token_logs and rpc is not None
        self.token_contract = token_contract

        self.processed_count = 0
        self.alert_count = 0

    async def detect_transfers(self, tx: dict) -> List[TransferEvent]:
        """All retained transfers of one transaction."""
        transfers = []

        native = extract_native_transfer(tx, self.cex_threshold)
        if native is not None:
            transfers.append(native)

        if self.inspect_token_logs:
            try:
                receipt = await self.rpc.get_transaction_receipt(tx["hash"])
                transfers.extend(extract_token_transfers(receipt, self.cex_threshold, self.token_contract))
            except Exception as e:
                logger.error(f"Error fetching receipt for {tx.get('hash')}: {e}")

        return transfers

    async def _current_price(self) -> float:
        try:
            return float(await self.price_provider.get_current_price())
        except Exception as e:
            logger.warning(f"Price unavailable for transfer valuation: {e}")
            return 0.0

    async def process_transaction(self, tx: dict) -> List[TransferAlert]:
        """Detect, classify and dispatch; returns the alerts produced."""
        try:
            if not isinstance(tx, dict) or not tx.get("hash"):
                return []

            self.processed_count += 1
            transfers = await self.detect_transfers(tx)
            if not transfers:
                return []

            price = await self._current_price()
            alerts = []
            for transfer in transfers:
                alerts.extend(classify_transfer(
                    transfer, price, tx["hash"], self.cex_addresses, self.whale_threshold
                ))

        except Exception as e:
            logger.error(f"Error processing transaction: {e}")
            return []

        for alert in alerts:
            alerts_logger.info(
                f"{alert.kind.value} {alert.exchange_name or '-'} {alert.amount:,.2f} "
                f"(${alert.usd_value:,.2f}) tx={alert.tx_hash}"
            )
            self.alert_count += 1
            await self._dispatch(alert)

        return alerts

    async def _dispatch(self, alert: TransferAlert):
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.dispatch(alert)
        except Exception as e:
            logger.error(f"Failed to send {alert.kind.value} alert: {e}")
