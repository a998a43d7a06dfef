"""
Message formatting utilities for Telegram replies and alerts.
"""
import math
from typing import Dict, Optional

from core.models import AlertKind, CompositeQuote, TransferAlert, TransferKind, WalletData
from utils.filters import format_address


def format_number(num) -> str:
    """Compact number with K/M suffix and two decimals."""
    if not isinstance(num, (int, float)) or isinstance(num, bool) or math.isnan(num):
        return "0.00"
    if num >= 1_000_000:
        return f"{num / 1_000_000:.2f}M"
    if num >= 1_000:
        return f"{num / 1_000:.2f}K"
    return f"{num:.2f}"


def format_price_message(
    quote: CompositeQuote,
    token_symbol: str = "TICS",
    display_names: Optional[Dict[str, str]] = None
) -> str:
    """
    Format a composite quote with the per-exchange breakdown.

    Exchanges missing from the quote are listed as N/A.
    """
    display_names = display_names or {name: name.upper() for name in quote.exchanges}
    icons = ["🔸", "🔹", "💠", "▫️"]

    lines = [
        f"🚀 {token_symbol} / USDT ({quote.source})",
        "",
        f"💵 Avg Price: ${quote.price:.4f}",
        f"📊 24h Volume: {format_number(quote.volume)} {token_symbol}",
        f"🟢 High: ${quote.high:.4f} | 🔴 Low: ${quote.low:.4f}",
        "",
        "📈 Exchange Breakdown:",
    ]

    for i, (name, label) in enumerate(display_names.items()):
        icon = icons[min(i, len(icons) - 1)]
        row = quote.exchanges.get(name)
        if row is None:
            lines.append(f"{icon} {label}: N/A ({format_number(0)})")
            continue
        stale = "" if row.live else " ⚠️"
        lines.append(f"{icon} {label}: ${row.price:.4f} ({format_number(row.volume)}){stale}")

    return "\n".join(lines)


def format_portfolio_message(
    address: str,
    wallet: WalletData,
    price: float,
    source: Optional[str] = None,
    token_symbol: str = "TICS"
) -> str:
    """Format the /check portfolio reply."""
    portfolio_value = wallet.total_tokens * price
    receiving = format_address(wallet.claim_wallet_address) if wallet.claim_wallet_address else "Not set"

    lines = [
        f"💼 {token_symbol} Portfolio",
        "",
        f"👤 Wallet: {format_address(address)}",
        f"🪙 Total {token_symbol}: {format_number(wallet.total_tokens)} {token_symbol}",
        f"💰 Portfolio Value: ${portfolio_value:.2f} USDT",
        "",
        f"📊 Current Price: ${price:.4f}",
    ]

    if source:
        lines.append(f"📈 Source: {source}")

    lines.extend([
        "",
        f"🎯 Receiving Address: {receiving}",
    ])

    return "\n".join(lines)


def format_cex_alert(
    alert: TransferAlert,
    token_symbol: str = "TICS",
    explorer_tx_url: str = "https://ticsscan.com/tx/"
) -> str:
    """Format a CEX deposit/withdrawal alert."""
    if alert.kind == AlertKind.DEPOSIT:
        emoji, action = "📈", "Deposit to"
    else:
        emoji, action = "📉", "Withdrawal from"

    lines = [
        "🏦 CEX ALERT",
        "",
        f"{emoji} {action} {alert.exchange_name}",
        f"🪙 Amount: {format_number(alert.amount)} {token_symbol}",
        f"💰 Value: ${alert.usd_value:.2f} USDT",
        f"🔗 {explorer_tx_url}{alert.tx_hash}",
    ]
    return "\n".join(lines)


def format_whale_alert(
    alert: TransferAlert,
    token_symbol: str = "TICS",
    explorer_tx_url: str = "https://ticsscan.com/tx/"
) -> str:
    """Format a whale transfer alert."""
    kind_text = "Native" if alert.transfer_kind == TransferKind.NATIVE else "Token"

    lines = [
        "🐋 WHALE ALERT",
        "",
        f"💸 Large {kind_text} {token_symbol} Transfer",
        f"📤 From: {format_address(alert.from_address)}",
        f"📥 To: {format_address(alert.to_address)}",
        f"🪙 Amount: {format_number(alert.amount)} {token_symbol}",
        f"💰 Value: ${alert.usd_value:.2f} USDT",
        f"🔗 {explorer_tx_url}{alert.tx_hash}",
    ]
    return "\n".join(lines)


def format_alert(alert: TransferAlert, token_symbol: str = "TICS", explorer_tx_url: str = "https://ticsscan.com/tx/") -> str:
    if alert.kind == AlertKind.WHALE:
        return format_whale_alert(alert, token_symbol, explorer_tx_url)
    return format_cex_alert(alert, token_symbol, explorer_tx_url)


def format_status_line(exchange_status: Dict[str, bool], display_names: Dict[str, str], watcher_connected: bool) -> str:
    """One-line connectivity summary for the periodic status log."""
    parts = [
        f"{display_names.get(name, name)}: {'✅' if ok else '❌'}"
        for name, ok in exchange_status.items()
    ]
    parts.append(f"Alerts: {'✅' if watcher_connected else '❌'}")
    return "📊 Status | " + " | ".join(parts)
