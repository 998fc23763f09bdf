"""
Data models — pure data classes with no business logic.

Depends on: errors
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from baseconnect.errors import WalletError


# =============================================================================
# Enums
# =============================================================================

class SessionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class BalanceStatus(str, Enum):
    NONE = "none"          # nothing requested (not connected, or unknown chain)
    PENDING = "pending"    # query in flight, previous value cleared
    FRESH = "fresh"        # answered by an RPC endpoint
    DEGRADED = "degraded"  # every endpoint failed, zero shown as unreliable


# =============================================================================
# Accounts & Balances
# =============================================================================

@dataclass(frozen=True)
class AccountInfo:
    """The account an adapter reports, plus every linked account."""
    address: str
    chain_id: Optional[int] = None
    accounts: tuple[str, ...] = ()

    @classmethod
    def from_accounts(cls, accounts: Optional[Sequence[str]],
                      chain_id: Optional[int] = None) -> Optional["AccountInfo"]:
        """First account wins. Returns None for an empty or missing list."""
        cleaned = tuple(a.lower() for a in (accounts or ()) if isinstance(a, str) and a)
        if not cleaned:
            return None
        return cls(address=cleaned[0], chain_id=chain_id, accounts=cleaned)


@dataclass(frozen=True)
class BalanceResult:
    """Native balance for one address on one chain."""
    address: str
    chain_id: int
    wei: int
    formatted: str
    symbol: str = "ETH"
    reliable: bool = True
    endpoint: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def degraded(cls, address: str, chain_id: int, symbol: str = "ETH",
                 error: Optional[str] = None) -> "BalanceResult":
        return cls(address=address, chain_id=chain_id, wei=0, formatted="0",
                   symbol=symbol, reliable=False, error=error)


# =============================================================================
# Session
# =============================================================================

@dataclass(frozen=True)
class Session:
    """The controller's view of the wallet connection. Replaced, never mutated."""
    status: SessionStatus = SessionStatus.DISCONNECTED
    address: Optional[str] = None
    chain_id: Optional[int] = None
    reported_chain_id: Optional[int] = None
    balance: Optional[str] = None
    balance_status: BalanceStatus = BalanceStatus.NONE
    last_error: Optional[str] = None
    error_kind: Optional[str] = None
    active_adapter: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.status == SessionStatus.CONNECTED

    @property
    def chain_supported(self) -> bool:
        """False when the wallet reported a chain the registry does not know."""
        return self.reported_chain_id is None or self.reported_chain_id == self.chain_id

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "is_connected": self.is_connected,
            "address": self.address,
            "chain_id": self.chain_id,
            "reported_chain_id": self.reported_chain_id,
            "chain_supported": self.chain_supported,
            "balance": self.balance,
            "balance_status": self.balance_status.value,
            "last_error": self.last_error,
            "error_kind": self.error_kind,
            "active_adapter": self.active_adapter,
        }


# =============================================================================
# Controller messages
# =============================================================================
# Every user operation and every adapter event is turned into one of these and
# fed to controller.reduce_session(), one at a time, in arrival order.

@dataclass(frozen=True)
class ConnectStarted:
    adapter: str


@dataclass(frozen=True)
class ConnectSucceeded:
    adapter: str
    account: AccountInfo


@dataclass(frozen=True)
class ConnectFailed:
    adapter: str
    error: WalletError


@dataclass(frozen=True)
class AccountsChanged:
    adapter: str
    account: Optional[AccountInfo]


@dataclass(frozen=True)
class SessionEnded:
    adapter: str


@dataclass(frozen=True)
class ChainSwitched:
    chain_id: int


@dataclass(frozen=True)
class ChainSwitchFailed:
    error: WalletError


@dataclass(frozen=True)
class BalanceRequested:
    address: str
    chain_id: int


@dataclass(frozen=True)
class BalanceResolved:
    result: BalanceResult


@dataclass(frozen=True)
class Disconnected:
    reason: str = "user"
