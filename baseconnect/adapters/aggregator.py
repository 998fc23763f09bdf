"""
Aggregator adapter — one modal, several connectors, one account/chain stream.

Depends on: config, errors, models, guard, adapters/__init__
"""

import sys
from typing import Awaitable, Callable, Optional, Sequence

from baseconnect.adapters import ProviderAdapter
from baseconnect.config import WalletConfig
from baseconnect.errors import (
    ConfigurationError,
    NotAvailableError,
    UserRejectedError,
    WalletError,
    classify_error,
)
from baseconnect.guard import InitGuard
from baseconnect.models import AccountInfo

AGGREGATOR_INIT_KEY = "aggregator"

# The modal: given the connectors that can work right now, return the one the
# user picked, or None if the modal was dismissed.
ConnectorPicker = Callable[[Sequence[ProviderAdapter]], Awaitable[Optional[ProviderAdapter]]]


async def first_available(connectors: Sequence[ProviderAdapter]) -> Optional[ProviderAdapter]:
    """Default picker: the first connector offered."""
    return connectors[0] if connectors else None


class AggregatorAdapter(ProviderAdapter):
    """Modal-driven composite over connector adapters.

    Initialization (subscribing to every connector, adopting a restored
    session) runs once through the shared InitGuard, so re-creating a
    controller that uses this aggregator never stacks duplicate listeners.
    """

    def __init__(self, connectors: Sequence[ProviderAdapter], config: WalletConfig,
                 init_guard: InitGuard, picker: Optional[ConnectorPicker] = None):
        super().__init__()
        self._connectors = list(connectors)
        self._config = config
        self._guard = init_guard
        self._picker = picker or first_available
        self._selected: Optional[ProviderAdapter] = None

    @property
    def name(self) -> str:
        return "aggregator"

    @property
    def selected(self) -> Optional[ProviderAdapter]:
        return self._selected

    async def ensure_initialized(self) -> bool:
        """Initialize once per guard. Invalid project id fails before anything is touched."""
        if not self._config.has_valid_project_id:
            raise ConfigurationError(
                "Wallet connection is not configured. Set BASECONNECT_WALLETCONNECT_PROJECT_ID."
            )
        return await self._guard.ensure(AGGREGATOR_INIT_KEY, self._initialize)

    async def _initialize(self) -> None:
        for connector in self._connectors:
            connector.on_accounts_changed(self._forward_accounts(connector))
            connector.on_session_ended(self._forward_session_ended(connector))
            try:
                await connector.prepare()
            except WalletError as e:
                print(f"[BaseConnect] Connector {connector.name} not ready: {e.detail or e}",
                      file=sys.stderr)

        for connector in self._connectors:
            restored = connector.get_accounts()
            if restored is not None:
                self._selected = connector
                print(f"[BaseConnect] Aggregator restored {connector.name} session for "
                      f"{restored.address[:10]}...", file=sys.stderr)
                break
        print(f"[BaseConnect] Aggregator initialized with connectors: "
              f"{', '.join(c.name for c in self._connectors) or 'none'}", file=sys.stderr)

    def _forward_accounts(self, connector: ProviderAdapter):
        def handler(account: Optional[AccountInfo]) -> None:
            if self._selected is None and account is not None:
                self._selected = connector
            if connector is not self._selected:
                return
            if account is None:
                self._selected = None
            self._emit_accounts(account)
        return handler

    def _forward_session_ended(self, connector: ProviderAdapter):
        def handler() -> None:
            if connector is not self._selected:
                return
            self._selected = None
            self._emit_session_ended()
        return handler

    async def is_available(self) -> bool:
        return self._config.has_valid_project_id

    async def connect(self) -> AccountInfo:
        await self.ensure_initialized()

        available = []
        for connector in self._connectors:
            try:
                if await connector.is_available():
                    available.append(connector)
            except Exception as e:
                print(f"[BaseConnect] Connector {connector.name} availability check failed: {e}",
                      file=sys.stderr)
        if not available:
            raise NotAvailableError()

        try:
            chosen = await self._picker(available)
        except WalletError:
            raise
        except Exception as e:
            raise classify_error(e)
        if chosen is None:
            raise UserRejectedError("The wallet selection was closed before connecting.")

        previous = self._selected
        self._selected = chosen
        try:
            account = await chosen.connect()
        except Exception:
            self._selected = previous
            raise
        if previous is not None and previous is not chosen:
            await previous.disconnect()
        return account

    async def disconnect(self) -> None:
        connector, self._selected = self._selected, None
        if connector is None:
            return
        try:
            await connector.disconnect()
        except Exception as e:
            print(f"[BaseConnect] Aggregator connector {connector.name} disconnect failed: {e}",
                  file=sys.stderr)

    def get_accounts(self) -> Optional[AccountInfo]:
        if self._selected is None:
            return None
        return self._selected.get_accounts()

    async def switch_chain(self, chain_id: int) -> None:
        if self._selected is None:
            raise NotAvailableError("Connect a wallet before switching networks.")
        await self._selected.switch_chain(chain_id)
