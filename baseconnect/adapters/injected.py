"""
Injected wallet adapter — EIP-1193 style provider (request + events).

In a browser this is window.ethereum. In a Python process the same surface is
offered by HttpInjectedProvider, which speaks JSON-RPC to a local wallet
endpoint and polls it for account/chain changes.

Depends on: config, errors, models, chains, adapters/__init__
"""

import asyncio
import itertools
import sys
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import httpx

from baseconnect.adapters import EventEmitter, ProviderAdapter, parse_chain_id
from baseconnect.chains import ChainRegistry
from baseconnect.config import (
    INJECTED_FAILURE_THRESHOLD,
    INJECTED_POLL_INTERVAL,
    INJECTED_PROBE_TIMEOUT,
    INJECTED_REQUEST_TIMEOUT,
)
from baseconnect.errors import (
    DISCONNECTED_CODE,
    NotAvailableError,
    ProviderRpcError,
    UserRejectedError,
    WalletTimeoutError,
    classify_error,
)
from baseconnect.models import AccountInfo

ETH_REQUEST_ACCOUNTS = "eth_requestAccounts"
ETH_ACCOUNTS = "eth_accounts"
ETH_CHAIN_ID = "eth_chainId"
WALLET_SWITCH_CHAIN = "wallet_switchEthereumChain"
WALLET_REVOKE_PERMISSIONS = "wallet_revokePermissions"


# =============================================================================
# Provider interface
# =============================================================================

class EthereumProvider(ABC):
    """EIP-1193 provider surface: request() plus accountsChanged/chainChanged/disconnect events."""

    @abstractmethod
    async def request(self, method: str, params: Any = None) -> Any:
        ...

    @abstractmethod
    def on(self, event: str, callback: Callable) -> None:
        ...

    @abstractmethod
    def remove_listener(self, event: str, callback: Callable) -> None:
        ...

    async def start(self) -> None:
        """Begin delivering events. Override for providers that must poll."""
        pass

    async def stop(self) -> None:
        pass


ProviderLocator = Callable[[], Awaitable[Optional[EthereumProvider]]]


class HttpInjectedProvider(EthereumProvider):
    """JSON-RPC over HTTP to a locally running wallet, with a polling event watcher."""

    def __init__(self, url: str, timeout: float = INJECTED_REQUEST_TIMEOUT,
                 poll_interval: float = INJECTED_POLL_INTERVAL,
                 failure_threshold: int = INJECTED_FAILURE_THRESHOLD,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._failure_threshold = failure_threshold
        self._transport = transport
        self._events = EventEmitter(owner="injected-provider")
        self._ids = itertools.count(1)
        self._watch_task: Optional[asyncio.Task] = None
        self._last_accounts: Optional[list] = None
        self._last_chain: Optional[str] = None

    async def request(self, method: str, params: Any = None, timeout: Optional[float] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params if params is not None else [],
        }
        async with httpx.AsyncClient(timeout=timeout or self._timeout,
                                     transport=self._transport) as client:
            resp = await client.post(self.url, json=payload)
        try:
            body = resp.json()
        except ValueError:
            raise ProviderRpcError(-32603, f"HTTP {resp.status_code}: response is not JSON")
        err = body.get("error") if isinstance(body, dict) else None
        if err:
            if isinstance(err, dict):
                raise ProviderRpcError(int(err.get("code", -32603)), str(err.get("message", "")),
                                       err.get("data"))
            raise ProviderRpcError(-32603, str(err))
        if resp.status_code != 200:
            raise ProviderRpcError(-32603, f"HTTP {resp.status_code}")
        return body.get("result")

    async def detect(self) -> bool:
        """True if a wallet answers at the configured URL."""
        try:
            await self.request(ETH_CHAIN_ID, timeout=INJECTED_PROBE_TIMEOUT)
            return True
        except Exception:
            return False

    def on(self, event: str, callback: Callable) -> None:
        self._events.on(event, callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        self._events.off(event, callback)

    async def start(self) -> None:
        if self._watch_task is None or self._watch_task.done():
            self._last_accounts = None
            self._last_chain = None
            self._watch_task = asyncio.create_task(self._watch_loop())

    async def stop(self) -> None:
        task, self._watch_task = self._watch_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _watch_loop(self) -> None:
        """Poll eth_accounts/eth_chainId and turn differences into events."""
        failures = 0
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                accounts = await self.request(ETH_ACCOUNTS) or []
                chain = await self.request(ETH_CHAIN_ID)
            except Exception as e:
                failures += 1
                if failures >= self._failure_threshold:
                    print(f"[BaseConnect] Injected wallet at {self.url} unreachable after "
                          f"{failures} polls: {e}", file=sys.stderr)
                    self._watch_task = None
                    self._events.emit("disconnect", ProviderRpcError(DISCONNECTED_CODE, str(e)))
                    return
                continue
            failures = 0

            if self._last_accounts is not None and accounts != self._last_accounts:
                self._events.emit("accountsChanged", accounts)
            if self._last_chain is not None and chain != self._last_chain:
                self._events.emit("chainChanged", chain)
            self._last_accounts = accounts
            self._last_chain = chain


def http_provider_locator(url: Optional[str], **kwargs) -> ProviderLocator:
    """Locator that yields an HttpInjectedProvider when a wallet answers at url."""
    provider = HttpInjectedProvider(url, **kwargs) if url else None

    async def locate() -> Optional[EthereumProvider]:
        if provider is None:
            return None
        return provider if await provider.detect() else None

    return locate


async def _no_provider() -> Optional[EthereumProvider]:
    return None


# =============================================================================
# Adapter
# =============================================================================

class InjectedAdapter(ProviderAdapter):
    """Connects straight to an injected wallet via eth_requestAccounts."""

    def __init__(self, registry: ChainRegistry, locator: Optional[ProviderLocator] = None,
                 request_timeout: float = INJECTED_REQUEST_TIMEOUT):
        super().__init__()
        self._registry = registry
        self._locator = locator or _no_provider
        self._request_timeout = request_timeout
        self._provider: Optional[EthereumProvider] = None
        self._account: Optional[AccountInfo] = None
        self._handlers: list[tuple[str, Callable]] = []

    @property
    def name(self) -> str:
        return "injected"

    async def _locate(self) -> Optional[EthereumProvider]:
        try:
            return await self._locator()
        except Exception as e:
            print(f"[BaseConnect] Injected provider detection failed: {e}", file=sys.stderr)
            return None

    async def is_available(self) -> bool:
        return await self._locate() is not None

    async def connect(self) -> AccountInfo:
        provider = await self._locate()
        if provider is None:
            raise NotAvailableError("No browser wallet was detected. Install one or use another "
                                    "connection method.")
        try:
            accounts = await asyncio.wait_for(provider.request(ETH_REQUEST_ACCOUNTS),
                                              timeout=self._request_timeout)
        except asyncio.TimeoutError:
            raise WalletTimeoutError(detail=f"{ETH_REQUEST_ACCOUNTS} timed out")
        except Exception as e:
            raise classify_error(e)

        chain_id = await self._read_chain_id(provider)
        account = AccountInfo.from_accounts(accounts, chain_id)
        if account is None:
            raise UserRejectedError("Your wallet did not share any accounts.")

        await self._attach(provider)
        self._account = account
        return account

    async def _read_chain_id(self, provider: EthereumProvider) -> int:
        """Chain reported by the provider, or the primary network if it does not say."""
        try:
            chain_id = parse_chain_id(await provider.request(ETH_CHAIN_ID))
        except Exception as e:
            print(f"[BaseConnect] {ETH_CHAIN_ID} failed ({e}), assuming primary network",
                  file=sys.stderr)
            chain_id = None
        if chain_id is None:
            chain_id = self._registry.primary.chain_id
        return chain_id

    async def _attach(self, provider: EthereumProvider) -> None:
        await self._detach()
        self._provider = provider
        self._handlers = [
            ("accountsChanged", self._handle_accounts_changed),
            ("chainChanged", self._handle_chain_changed),
            ("disconnect", self._handle_disconnect),
        ]
        for event, handler in self._handlers:
            provider.on(event, handler)
        await provider.start()

    async def _detach(self) -> None:
        provider, self._provider = self._provider, None
        if provider is None:
            return
        for event, handler in self._handlers:
            provider.remove_listener(event, handler)
        self._handlers = []
        await provider.stop()

    def _handle_accounts_changed(self, accounts) -> None:
        chain_id = self._account.chain_id if self._account else None
        self._account = AccountInfo.from_accounts(accounts, chain_id)
        self._emit_accounts(self._account)

    def _handle_chain_changed(self, raw_chain) -> None:
        if self._account is None:
            return
        self._account = AccountInfo(address=self._account.address,
                                    chain_id=parse_chain_id(raw_chain),
                                    accounts=self._account.accounts)
        self._emit_accounts(self._account)

    def _handle_disconnect(self, error=None) -> None:
        self._account = None
        self._emit_session_ended()

    async def disconnect(self) -> None:
        provider = self._provider
        self._account = None
        if provider is None:
            return
        try:
            await provider.request(WALLET_REVOKE_PERMISSIONS, [{"eth_accounts": {}}])
        except Exception as e:
            print(f"[BaseConnect] Injected wallet did not revoke permissions: {e}",
                  file=sys.stderr)
        try:
            await self._detach()
        except Exception as e:
            print(f"[BaseConnect] Injected provider cleanup failed: {e}", file=sys.stderr)

    def get_accounts(self) -> Optional[AccountInfo]:
        return self._account

    async def switch_chain(self, chain_id: int) -> None:
        if self._provider is None:
            raise NotAvailableError("Connect a wallet before switching networks.")
        descriptor = self._registry.describe(chain_id)
        try:
            await asyncio.wait_for(
                self._provider.request(WALLET_SWITCH_CHAIN, [{"chainId": descriptor.hex_chain_id}]),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError:
            raise WalletTimeoutError(detail=f"{WALLET_SWITCH_CHAIN} timed out")
        except Exception as e:
            raise classify_error(e)
        if self._account is not None and self._account.chain_id != chain_id:
            self._account = AccountInfo(address=self._account.address, chain_id=chain_id,
                                        accounts=self._account.accounts)
