"""
Relay pairing adapter — connects a remote (mobile) wallet through a relay service.

The pairing protocol itself is an external library; RelayClient describes the
part of it this adapter uses. The adapter owns the client's one-time init,
its event wiring, and the translation of its errors.

Depends on: config, errors, models, chains, guard, adapters/__init__
"""

import asyncio
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from baseconnect.adapters import ProviderAdapter, parse_chain_id
from baseconnect.chains import ChainRegistry
from baseconnect.config import WalletConfig
from baseconnect.errors import (
    ConfigurationError,
    NotAvailableError,
    UserRejectedError,
    WalletError,
    WalletTimeoutError,
    classify_error,
)
from baseconnect.guard import InitGuard
from baseconnect.models import AccountInfo

RELAY_INIT_KEY = "relay-client"


# =============================================================================
# Relay client interface
# =============================================================================

@dataclass
class RelaySession:
    """An approved pairing. Accounts may be plain or CAIP-10 ('eip155:8453:0xabc...')."""
    topic: str
    accounts: list[str] = field(default_factory=list)
    chain_id: Optional[int] = None
    peer_name: Optional[str] = None


class RelayClient(ABC):
    """Pairing/relay library surface.

    Events: 'display_uri' (pairing URI for QR / deep link), 'accountsChanged',
    'chainChanged', 'session_delete'.
    """

    @abstractmethod
    async def init(self, project_id: str, metadata: dict, chains: list[int],
                   optional_chains: list[int]) -> None:
        ...

    @abstractmethod
    async def connect(self) -> RelaySession:
        """Start pairing and wait for the remote wallet to approve."""
        ...

    @abstractmethod
    async def request(self, method: str, params: Any = None) -> Any:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @property
    @abstractmethod
    def session(self) -> Optional[RelaySession]:
        ...

    @abstractmethod
    def on(self, event: str, callback: Callable) -> None:
        ...

    @abstractmethod
    def remove_listener(self, event: str, callback: Callable) -> None:
        ...


def parse_account(raw: str) -> tuple[Optional[str], Optional[int]]:
    """Split 'eip155:8453:0xabc' into ('0xabc', 8453). Plain addresses have no chain."""
    if not isinstance(raw, str) or not raw:
        return None, None
    parts = raw.split(":")
    if len(parts) == 3:
        return parts[2].lower(), parse_chain_id(parts[1])
    return raw.lower(), None


# =============================================================================
# Adapter
# =============================================================================

class RelayAdapter(ProviderAdapter):
    """Relay-only connection flow (QR code / deep link), bypassing the aggregator modal."""

    def __init__(self, registry: ChainRegistry, config: WalletConfig,
                 client: Optional[RelayClient] = None, init_guard: Optional[InitGuard] = None):
        super().__init__()
        self._registry = registry
        self._config = config
        self._client = client
        self._guard = init_guard or InitGuard()
        self._account: Optional[AccountInfo] = None
        self.pairing_uri: Optional[str] = None

    @property
    def name(self) -> str:
        return "relay"

    async def is_available(self) -> bool:
        return self._client is not None and self._config.has_valid_project_id

    async def prepare(self) -> None:
        """Initialize the client early so a pairing it restored shows up in get_accounts()."""
        if self._client is None or not self._config.has_valid_project_id:
            return
        await self._ensure_client()

    async def _ensure_client(self) -> RelayClient:
        if not self._config.has_valid_project_id:
            raise ConfigurationError(
                "Wallet pairing is not configured. Set BASECONNECT_WALLETCONNECT_PROJECT_ID."
            )
        if self._client is None:
            raise NotAvailableError("No relay client is configured for wallet pairing.")
        try:
            await self._guard.ensure(RELAY_INIT_KEY, self._init_client)
        except WalletError:
            raise
        except Exception as e:
            raise classify_error(e)
        return self._client

    async def _init_client(self) -> None:
        primary = self._registry.primary.chain_id
        optional = [cid for cid in self._registry.ids() if cid != primary]
        await self._client.init(self._config.project_id, self._config.metadata,
                                [primary], optional)
        self._client.on("display_uri", self._handle_display_uri)
        self._client.on("accountsChanged", self._handle_accounts_changed)
        self._client.on("chainChanged", self._handle_chain_changed)
        self._client.on("session_delete", self._handle_session_delete)
        print(f"[BaseConnect] Relay client initialized "
              f"(chains: {primary}, optional: {optional})", file=sys.stderr)

    async def connect(self) -> AccountInfo:
        client = await self._ensure_client()
        try:
            session = await asyncio.wait_for(client.connect(),
                                             timeout=self._config.relay_approval_timeout)
        except asyncio.TimeoutError:
            raise WalletTimeoutError("The pairing request expired before it was approved.")
        except Exception as e:
            raise classify_error(e)
        finally:
            self.pairing_uri = None

        account = self._account_from_session(session)
        if account is None:
            raise UserRejectedError("The wallet approved the pairing without sharing an account.")
        if account.chain_id is None:
            account = AccountInfo(address=account.address,
                                  chain_id=await self._request_chain_id(client),
                                  accounts=account.accounts)
        self._account = account
        return account

    async def _request_chain_id(self, client: RelayClient) -> int:
        try:
            chain_id = parse_chain_id(await client.request("eth_chainId"))
        except Exception as e:
            print(f"[BaseConnect] Relay eth_chainId failed ({e}), assuming primary network",
                  file=sys.stderr)
            chain_id = None
        return chain_id if chain_id is not None else self._registry.primary.chain_id

    def _account_from_session(self, session: Optional[RelaySession]) -> Optional[AccountInfo]:
        if session is None:
            return None
        addresses = []
        chain_id = session.chain_id
        for raw in session.accounts:
            address, account_chain = parse_account(raw)
            if address and address not in addresses:
                addresses.append(address)
            if chain_id is None and account_chain is not None:
                chain_id = account_chain
        return AccountInfo.from_accounts(addresses, chain_id)

    async def disconnect(self) -> None:
        self._account = None
        self.pairing_uri = None
        client = self._client
        if client is None or client.session is None:
            return
        try:
            await client.disconnect()
        except Exception as e:
            print(f"[BaseConnect] Relay disconnect failed (session may already be gone): {e}",
                  file=sys.stderr)

    def get_accounts(self) -> Optional[AccountInfo]:
        if self._account is not None:
            return self._account
        # Pairing restored by the client library before we attached
        if self._client is not None and self._guard.is_initialized(RELAY_INIT_KEY):
            self._account = self._account_from_session(self._client.session)
        return self._account

    async def switch_chain(self, chain_id: int) -> None:
        client = self._client
        if client is None or client.session is None:
            raise NotAvailableError("Pair a wallet before switching networks.")
        descriptor = self._registry.describe(chain_id)
        try:
            await asyncio.wait_for(
                client.request("wallet_switchEthereumChain", [{"chainId": descriptor.hex_chain_id}]),
                timeout=self._config.relay_approval_timeout,
            )
        except asyncio.TimeoutError:
            raise WalletTimeoutError(detail="wallet_switchEthereumChain timed out")
        except Exception as e:
            raise classify_error(e)
        if self._account is not None:
            self._account = AccountInfo(address=self._account.address, chain_id=chain_id,
                                        accounts=self._account.accounts)

    # -- Relay client events --

    def _handle_display_uri(self, uri: str) -> None:
        self.pairing_uri = uri

    def _handle_accounts_changed(self, accounts) -> None:
        chain_id = self._account.chain_id if self._account else None
        addresses = []
        for raw in accounts or []:
            address, account_chain = parse_account(raw)
            if address:
                addresses.append(address)
            if chain_id is None and account_chain is not None:
                chain_id = account_chain
        self._account = AccountInfo.from_accounts(addresses, chain_id)
        self._emit_accounts(self._account)

    def _handle_chain_changed(self, raw_chain) -> None:
        if self._account is None:
            return
        self._account = AccountInfo(address=self._account.address,
                                    chain_id=parse_chain_id(raw_chain),
                                    accounts=self._account.accounts)
        self._emit_accounts(self._account)

    def _handle_session_delete(self, *args) -> None:
        self._account = None
        self.pairing_uri = None
        print("[BaseConnect] Relay session ended by the remote wallet", file=sys.stderr)
        self._emit_session_ended()
