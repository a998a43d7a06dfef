"""
Configuration module for TicsTracker Bot.
Loads environment variables and provides application settings.
"""
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CEX_ADDRESSES = {
    "lbank": "0xB9885e76B4FeE07791377f4099d6eD4F3E49c4d0",
    "mexc": "0x05d71131B754d09ffc84E8250419539Fb5BFe8eb",
    "coinstore": "0x86790abbaCcD1B21F5ecFDaA67EC6282AFbf3E83",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Telegram Bot Configuration
    bot_token: str = ""

    # Alert destination for CEX and whale alerts
    # Format: "chat_id" or "chat_id:thread_id" for topics
    alert_chat_id: Optional[str] = "-1002771496854"

    # Token / chain
    token_symbol: str = "TICS"
    rpc_url: str = "https://rpc.qubetics.com"
    rpc_ws_url: str = "wss://socket.qubetics.com"
    explorer_tx_url: str = "https://ticsscan.com/tx/"

    # Transfer thresholds (in whole tokens)
    cex_threshold: float = 20
    whale_threshold: float = 100
    cex_addresses: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CEX_ADDRESSES))

    # Inspect receipts for ERC-20 Transfer logs in addition to native value
    inspect_token_logs: bool = False
    token_contract_address: Optional[str] = None

    # Exchange feeds
    mexc_ticker_url: str = "https://www.mexc.co/open/api/v2/market/ticker"
    mexc_symbol: str = "TICS_USDT"
    lbank_ws_url: str = "wss://www.lbkex.net/ws/V2/"
    lbank_rest_url: str = "https://api.lbkex.com/v2/ticker/24hr.do"
    lbank_pair: str = "tics_usdt"
    coinstore_ws_url: str = "wss://ws.coinstore.com/s/ws"
    coinstore_rest_url: str = "https://api.coinstore.com/api/v1/market/tickers"
    coinstore_symbol: str = "TICSUSDT"

    # Aggregation
    freshness_seconds: float = 30
    poll_interval: float = 5

    # WebSocket / HTTP behaviour
    ws_reconnect_delay: float = 5
    ws_ping_interval: int = 20
    ws_ping_timeout: int = 20
    http_timeout: float = 5
    rpc_timeout: float = 10

    # Presale wallet lookup
    wallet_api_url: str = "https://presale-api.qubetics.com/v1/projects/qubetics/wallet"
    wallet_api_timeout: float = 10

    # Per-user command rate limiting
    rate_limit_window: float = 10
    max_requests_per_user: int = 3

    # Status reporting
    status_log_interval: float = 300
    status_server_enabled: bool = False
    status_server_host: str = "0.0.0.0"
    status_server_port: int = 8080

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


def get_settings() -> Settings:
    """Load application settings from the environment."""
    return Settings()
