"""
Input helpers for chat commands and address display.
"""
import re
from typing import Optional

WALLET_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_wallet_address(address: Optional[str]) -> bool:
    """Check for a 0x-prefixed 20-byte hex address."""
    return bool(address) and WALLET_ADDRESS_RE.match(address) is not None


def parse_command_argument(text: Optional[str]) -> Optional[str]:
    """
    First argument after the command word.

    "/check 0xabc" -> "0xabc"; returns None when no argument was given.
    """
    if not text:
        return None
    parts = text.split()
    if len(parts) < 2:
        return None
    return parts[1].strip()


def format_address(address: str, length: int = 6, tail: int = 4) -> str:
    """
    Format blockchain address for display (0x1234...abcd).

    Args:
        address: Full blockchain address
        length: Number of characters to keep at the start
        tail: Number of characters to keep at the end

    Returns:
        Formatted address string
    """
    if not address or len(address) <= length + tail:
        return address

    return f"{address[:length]}...{address[-tail:]}"
