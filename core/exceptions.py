"""
Exception types raised across TicsTracker Bot components.
"""


class TicsTrackerError(Exception):
    """Base class for bot errors."""


class NoDataAvailableError(TicsTrackerError):
    """No exchange produced a usable ticker."""

    def __init__(self, message: str = "no data available"):
        super().__init__(message)


class RpcError(TicsTrackerError):
    """JSON-RPC request failed or returned an error object."""


class WalletNotFoundError(TicsTrackerError):
    """Wallet lookup returned HTTP 404."""

    def __init__(self, address: str):
        super().__init__("WALLET_NOT_FOUND")
        self.address = address


class WalletFetchError(TicsTrackerError):
    """Wallet lookup failed for any other reason."""

    def __init__(self, message: str = "Failed to fetch wallet data"):
        super().__init__(message)
