"""
Wallet error taxonomy and translation of raw provider/library errors.

Depends on: (nothing — leaf module)
"""

import asyncio
from enum import Enum
from typing import Any, Optional

import httpx


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    USER_REJECTED = "user_rejected"
    NOT_AVAILABLE = "not_available"
    TIMEOUT = "timeout"
    NETWORK = "network"
    UNKNOWN = "unknown"


class WalletError(Exception):
    """Base class for every error the controller is allowed to surface.

    ``str(err)`` is the single user-facing message. ``detail`` keeps the raw
    cause for log lines and is never shown to subscribers.
    """
    kind: ErrorKind = ErrorKind.UNKNOWN
    default_message = "Failed to connect wallet."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.detail = detail

    @property
    def user_message(self) -> str:
        return str(self)


class ConfigurationError(WalletError):
    kind = ErrorKind.CONFIGURATION
    default_message = "Wallet connection is not configured."


class UserRejectedError(WalletError):
    kind = ErrorKind.USER_REJECTED
    default_message = "The request was rejected in your wallet."


class NotAvailableError(WalletError):
    kind = ErrorKind.NOT_AVAILABLE
    default_message = "No compatible wallet was found. Try another connection method."


class ChainNotSupportedError(NotAvailableError):
    def __init__(self, chain_id: Any, *, detail: Optional[str] = None):
        super().__init__(f"Network {chain_id} is not supported.", detail=detail)
        self.chain_id = chain_id


class WalletTimeoutError(WalletError):
    kind = ErrorKind.TIMEOUT
    default_message = "Your wallet did not respond in time."


class NetworkError(WalletError):
    kind = ErrorKind.NETWORK
    default_message = "Network error while talking to the blockchain."


class UnknownWalletError(WalletError):
    kind = ErrorKind.UNKNOWN


# =============================================================================
# Raw provider errors
# =============================================================================

# EIP-1193 provider error codes
USER_REJECTED_CODE = 4001
UNAUTHORIZED_CODE = 4100
UNSUPPORTED_METHOD_CODE = 4200
DISCONNECTED_CODE = 4900
CHAIN_DISCONNECTED_CODE = 4901
UNRECOGNIZED_CHAIN_CODE = 4902


class ProviderRpcError(Exception):
    """Error returned by a wallet provider's request() call."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.data = data


_REJECTION_HINTS = ("user rejected", "rejected", "denied", "cancelled", "canceled")


def classify_error(exc: BaseException) -> WalletError:
    """Translate any exception into the wallet taxonomy. WalletErrors pass through."""
    if isinstance(exc, WalletError):
        return exc

    detail = f"{type(exc).__name__}: {exc}"

    if isinstance(exc, ProviderRpcError):
        if exc.code in (USER_REJECTED_CODE, UNAUTHORIZED_CODE):
            return UserRejectedError(detail=detail)
        if exc.code in (DISCONNECTED_CODE, CHAIN_DISCONNECTED_CODE, UNSUPPORTED_METHOD_CODE):
            return NotAvailableError(detail=detail)
        if exc.code == UNRECOGNIZED_CHAIN_CODE:
            return NotAvailableError("Your wallet does not know this network.", detail=detail)

    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return WalletTimeoutError(detail=detail)
    if isinstance(exc, httpx.ConnectError):
        return NotAvailableError(detail=detail)
    if isinstance(exc, httpx.HTTPError):
        return NetworkError(detail=detail)

    text = str(exc).lower()
    if any(hint in text for hint in _REJECTION_HINTS):
        return UserRejectedError(detail=detail)

    return UnknownWalletError(detail=detail)
