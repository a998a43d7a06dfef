"""
Pydantic models for TicsTracker Bot data structures.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, Field


class TickerSnapshot(BaseModel):
    """Latest known ticker for one exchange."""
    price: Optional[float] = None
    volume: Optional[float] = None  # base-asset units
    high: Optional[float] = None
    low: Optional[float] = None
    timestamp: Optional[datetime] = None
    connected: bool = False  # push feed / last poll healthy

    @property
    def has_price(self) -> bool:
        return self.price is not None and self.price > 0


class ExchangeQuote(BaseModel):
    """Per-exchange breakdown row of a composite quote."""
    price: float
    volume: float = 0.0
    live: bool = True


class CompositeQuote(BaseModel):
    """Synthetic quote combining every usable exchange."""
    price: float
    volume: float
    high: float
    low: float
    timestamp: Optional[datetime] = None
    source: str
    exchanges: Dict[str, ExchangeQuote] = Field(default_factory=dict)

    @property
    def is_combined(self) -> bool:
        return len(self.exchanges) > 1


class TransferKind(str, Enum):
    """Where a value movement was found."""
    NATIVE = "native"
    TOKEN = "contract_token"


class TransferEvent(BaseModel):
    """A single value movement inside a transaction."""
    from_address: str = ""  # lower-cased
    to_address: str = ""  # lower-cased
    amount: float
    kind: TransferKind = TransferKind.NATIVE


class AlertKind(str, Enum):
    """Alert type enumeration."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    WHALE = "whale"


class TransferAlert(BaseModel):
    """Classified transfer handed to the alert dispatcher."""
    kind: AlertKind
    exchange_name: Optional[str] = None
    from_address: str = ""
    to_address: str = ""
    amount: float
    usd_value: float
    tx_hash: str
    transfer_kind: TransferKind = TransferKind.NATIVE


class RateLimitEntry(BaseModel):
    """Per-user request window."""
    count: int = 0
    reset_time: float  # epoch seconds when the window expires


class WalletData(BaseModel):
    """Presale holdings returned by the wallet API."""
    total_tokens: float = 0.0
    claim_wallet_address: Optional[str] = None
