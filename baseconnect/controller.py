"""
Session controller — owns the wallet Session and arbitrates the provider adapters.

Every user operation and every adapter event becomes a message that goes
through reduce_session(), one at a time, in arrival order. The controller adds
the side effects around it: calling adapters, starting balance queries,
notifying subscribers.

Depends on: errors, models, chains, balance, guard, adapters, adapters/aggregator
"""

import asyncio
import sys
from dataclasses import replace
from typing import Callable, Optional

from baseconnect.adapters import ProviderAdapter, Unsubscribe
from baseconnect.adapters.aggregator import AggregatorAdapter
from baseconnect.balance import BalanceResolver
from baseconnect.chains import ChainRegistry
from baseconnect.errors import (
    ChainNotSupportedError,
    ConfigurationError,
    NotAvailableError,
    classify_error,
)
from baseconnect.guard import SingleFlight
from baseconnect.models import (
    AccountInfo,
    AccountsChanged,
    BalanceRequested,
    BalanceResolved,
    BalanceResult,
    BalanceStatus,
    ChainSwitched,
    ChainSwitchFailed,
    ConnectFailed,
    ConnectStarted,
    ConnectSucceeded,
    Disconnected,
    Session,
    SessionEnded,
    SessionStatus,
)

Listener = Callable[[Session], None]


# =============================================================================
# Transition function
# =============================================================================

def reduce_session(session: Session, message, registry: ChainRegistry) -> Session:
    """Return the Session that follows `message`. Pure: no I/O, no mutation."""
    if isinstance(message, ConnectStarted):
        return Session(status=SessionStatus.CONNECTING, active_adapter=message.adapter)

    if isinstance(message, ConnectSucceeded):
        return _connected(session, message.adapter, message.account, registry, clear_error=True)

    if isinstance(message, AccountsChanged):
        if message.account is None:
            return Session()
        return _connected(session, message.adapter, message.account, registry, clear_error=False)

    if isinstance(message, ConnectFailed):
        return Session(
            status=SessionStatus.ERROR,
            last_error=message.error.user_message,
            error_kind=message.error.kind.value,
            active_adapter=None,
        )

    if isinstance(message, (SessionEnded, Disconnected)):
        return Session()

    if isinstance(message, ChainSwitched):
        if not session.is_connected or not registry.is_supported(message.chain_id):
            return session
        if message.chain_id == session.chain_id and session.chain_supported:
            return replace(session, last_error=None, error_kind=None)
        return replace(
            session,
            chain_id=message.chain_id,
            reported_chain_id=message.chain_id,
            balance=None,
            balance_status=BalanceStatus.NONE,
            last_error=None,
            error_kind=None,
        )

    if isinstance(message, ChainSwitchFailed):
        return replace(session, last_error=message.error.user_message,
                       error_kind=message.error.kind.value)

    if isinstance(message, BalanceRequested):
        if not _is_current(session, message.address, message.chain_id):
            return session
        return replace(session, balance=None, balance_status=BalanceStatus.PENDING)

    if isinstance(message, BalanceResolved):
        result = message.result
        if not _is_current(session, result.address, result.chain_id):
            return session
        return replace(
            session,
            balance=result.formatted,
            balance_status=BalanceStatus.FRESH if result.reliable else BalanceStatus.DEGRADED,
        )

    raise TypeError(f"unknown controller message: {message!r}")


def _is_current(session: Session, address: str, chain_id: int) -> bool:
    return (session.is_connected and session.chain_supported
            and session.address == address and session.chain_id == chain_id)


def _connected(session: Session, adapter: str, account: AccountInfo,
               registry: ChainRegistry, clear_error: bool) -> Session:
    reported = account.chain_id
    if reported is None:
        # Adapter did not say: keep what we knew, else assume the primary network
        reported = session.reported_chain_id
        chain_id = session.chain_id if session.chain_id is not None else registry.primary.chain_id
    elif registry.is_supported(reported):
        chain_id = reported
    else:
        chain_id = registry.primary.chain_id

    keep_balance = (session.is_connected and session.address == account.address
                    and session.chain_id == chain_id
                    and (reported is None or reported == chain_id))
    return Session(
        status=SessionStatus.CONNECTED,
        address=account.address,
        chain_id=chain_id,
        reported_chain_id=reported,
        balance=session.balance if keep_balance else None,
        balance_status=session.balance_status if keep_balance else BalanceStatus.NONE,
        last_error=None if clear_error else session.last_error,
        error_kind=None if clear_error else session.error_kind,
        active_adapter=adapter,
    )


# =============================================================================
# Controller
# =============================================================================

class SessionController:
    """Single owner of the Session. Generic over ProviderAdapter.

    Build one per application (see app.create_app) and pass it to whatever
    needs it; the aggregator's one-time init is enforced by the InitGuard the
    aggregator was built with, not by the controller.
    """

    def __init__(self, registry: ChainRegistry, resolver: BalanceResolver,
                 aggregator: Optional[AggregatorAdapter] = None,
                 injected: Optional[ProviderAdapter] = None,
                 relay: Optional[ProviderAdapter] = None):
        self._registry = registry
        self._resolver = resolver
        self._aggregator = aggregator
        self._injected = injected
        self._relay = relay
        self._adapters: dict[str, ProviderAdapter] = {
            a.name: a for a in (aggregator, injected, relay) if a is not None
        }
        self._session = Session()
        self._listeners: list[Listener] = []
        self._attached: Optional[ProviderAdapter] = None
        self._unsubscribers: list[Unsubscribe] = []
        self._home: Optional[ProviderAdapter] = None
        self._connect_flight = SingleFlight()
        self._epoch = 0
        self._balance_tasks: set[asyncio.Task] = set()

    @property
    def registry(self) -> ChainRegistry:
        return self._registry

    def adapter(self, name: str) -> Optional[ProviderAdapter]:
        return self._adapters.get(name)

    # -- Subscriber interface --

    def get_state(self) -> Session:
        return self._session

    def subscribe(self, listener: Listener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def state_dict(self) -> dict:
        """Session plus the registry details a UI needs to render it."""
        session = self._session
        data = session.to_dict()
        descriptor = self._registry.get(session.chain_id)
        data["network_name"] = (
            self._registry.network_name(session.reported_chain_id
                                        if not session.chain_supported else session.chain_id)
            if session.chain_id is not None else None
        )
        data["currency_symbol"] = descriptor.currency_symbol if descriptor else None
        data["explorer_url"] = (
            descriptor.address_url(session.address) if descriptor and session.address else None
        )
        return data

    # -- Lifecycle --

    async def start(self) -> Session:
        """Wire the aggregator (once per guard) and pick up any session it restored."""
        aggregator = self._aggregator
        if aggregator is None:
            return self._session
        self._home = aggregator
        if self._attached is None:
            self._attach(aggregator)
        try:
            await aggregator.ensure_initialized()
        except ConfigurationError as e:
            print(f"[BaseConnect] Aggregator disabled: {e}", file=sys.stderr)
            return self._session
        except Exception as e:
            print(f"[BaseConnect] Aggregator initialization failed: {classify_error(e).detail or e}",
                  file=sys.stderr)
            return self._session

        restored = aggregator.get_accounts()
        if restored is not None and self._attached is aggregator and not self._session.is_connected:
            self._dispatch(AccountsChanged(aggregator.name, restored))
        return self._session

    async def close(self) -> None:
        self._detach()
        tasks = list(self._balance_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._balance_tasks.clear()

    # -- Operations --

    async def connect_via_aggregator(self) -> Session:
        return await self._connect(self._aggregator, "aggregator")

    async def connect_direct(self) -> Session:
        return await self._connect(self._injected, "injected")

    async def connect_via_relay(self) -> Session:
        return await self._connect(self._relay, "relay")

    async def disconnect(self) -> Session:
        """Tear down whatever is active. Never raises; no-op when already disconnected."""
        session = self._session
        if session.status == SessionStatus.DISCONNECTED and not self._connect_flight.in_flight:
            return session

        self._epoch += 1
        self._connect_flight.forget()
        adapter = self._adapters.get(session.active_adapter) if session.active_adapter else None
        self._detach()
        self._dispatch(Disconnected())

        if adapter is not None:
            try:
                await adapter.disconnect()
            except Exception as e:
                print(f"[BaseConnect] {adapter.name} disconnect failed (ignored): {e}",
                      file=sys.stderr)
        if self._home is not None:
            self._attach(self._home)
        return self._session

    async def switch_chain(self, chain_id: int) -> Session:
        session = self._session
        if not session.is_connected:
            self._dispatch(ChainSwitchFailed(
                NotAvailableError("Connect a wallet before switching networks.")))
            return self._session
        if not self._registry.is_supported(chain_id):
            self._dispatch(ChainSwitchFailed(ChainNotSupportedError(chain_id)))
            return self._session
        if chain_id == session.chain_id and session.chain_supported:
            return session

        adapter = self._adapters.get(session.active_adapter)
        if adapter is None:
            self._dispatch(ChainSwitchFailed(NotAvailableError()))
            return self._session

        epoch, address = self._epoch, session.address
        try:
            await adapter.switch_chain(chain_id)
        except Exception as e:
            error = classify_error(e)
            print(f"[BaseConnect] Switch to chain {chain_id} failed: {error.detail or error}",
                  file=sys.stderr)
            if epoch == self._epoch:
                self._dispatch(ChainSwitchFailed(error))
            return self._session

        if epoch != self._epoch or self._session.address != address:
            return self._session
        self._dispatch(ChainSwitched(chain_id))
        return self._session

    def refresh_balance(self) -> Session:
        """Re-query the balance for the current address and chain."""
        session = self._session
        if session.is_connected and session.chain_supported:
            self._request_balance()
        return self._session

    # -- Connect flow --

    async def _connect(self, adapter: Optional[ProviderAdapter], label: str) -> Session:
        if self._connect_flight.in_flight:
            print(f"[BaseConnect] Connect ({label}) requested while another connect is in "
                  f"flight, waiting for it", file=sys.stderr)
        return await self._connect_flight.run(lambda: self._run_connect(adapter, label))

    async def _run_connect(self, adapter: Optional[ProviderAdapter], label: str) -> Session:
        epoch = self._epoch
        self._dispatch(ConnectStarted(label))
        if adapter is None:
            self._dispatch(ConnectFailed(label, NotAvailableError(
                f"The {label} connection method is not set up.")))
            return self._session

        self._attach(adapter)
        print(f"[BaseConnect] Connecting via {adapter.name}...", file=sys.stderr)
        try:
            account = await adapter.connect()
        except Exception as e:
            error = classify_error(e)
            if epoch != self._epoch:
                return self._session
            print(f"[BaseConnect] Connect via {adapter.name} failed "
                  f"({error.kind.value}): {error.detail or error}", file=sys.stderr)
            self._dispatch(ConnectFailed(adapter.name, error))
            if self._home is not None and self._home is not adapter:
                self._attach(self._home)
            return self._session

        if epoch != self._epoch:
            print(f"[BaseConnect] Discarding {adapter.name} connection approved after "
                  f"disconnect", file=sys.stderr)
            if self._in_use(adapter):
                # A newer connect owns this adapter now; leave its session alone
                return self._session
            try:
                await adapter.disconnect()
            except Exception as e:
                print(f"[BaseConnect] {adapter.name} disconnect failed (ignored): {e}",
                      file=sys.stderr)
            return self._session

        self._dispatch(ConnectSucceeded(adapter.name, account))
        print(f"[BaseConnect] Connected {account.address[:10]}... on chain "
              f"{self._session.chain_id} via {adapter.name}", file=sys.stderr)
        return self._session

    def _in_use(self, adapter: ProviderAdapter) -> bool:
        """True if the current session, or the connect now in flight, runs through `adapter`."""
        name = self._session.active_adapter
        current = self._adapters.get(name) if name else None
        if current is None:
            return False
        if current is adapter:
            return True
        # The aggregator drives the same connector instances as the direct paths
        for outer, inner in ((current, adapter), (adapter, current)):
            if isinstance(outer, AggregatorAdapter) and outer.selected is inner:
                return True
        return False

    # -- Adapter events --

    def _attach(self, adapter: ProviderAdapter) -> None:
        """Make `adapter` the one whose events we reconcile; drops the previous one's listeners."""
        if adapter is self._attached:
            return
        self._detach()
        self._attached = adapter
        self._unsubscribers = [
            adapter.on_accounts_changed(lambda account: self._on_accounts_changed(adapter, account)),
            adapter.on_session_ended(lambda: self._on_session_ended(adapter)),
        ]

    def _detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._attached = None

    def _on_accounts_changed(self, adapter: ProviderAdapter, account: Optional[AccountInfo]) -> None:
        if adapter is not self._attached:
            return
        self._dispatch(AccountsChanged(adapter.name, account))

    def _on_session_ended(self, adapter: ProviderAdapter) -> None:
        if adapter is not self._attached:
            return
        print(f"[BaseConnect] {adapter.name} session ended by the wallet", file=sys.stderr)
        self._dispatch(SessionEnded(adapter.name))

    # -- State --

    def _dispatch(self, message) -> Session:
        previous = self._session
        session = reduce_session(previous, message, self._registry)
        if session == previous:
            return previous
        self._session = session
        self._notify(session)

        pair_changed = (not previous.is_connected
                        or not previous.chain_supported
                        or previous.address != session.address
                        or previous.chain_id != session.chain_id)
        if session.is_connected and session.chain_supported and pair_changed:
            self._request_balance()
        return self._session

    def _notify(self, session: Session) -> None:
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as e:
                print(f"[BaseConnect] Session listener raised: {e}", file=sys.stderr)

    # -- Balance --

    def _request_balance(self) -> None:
        session = self._session
        address, chain_id = session.address, session.chain_id
        self._dispatch(BalanceRequested(address, chain_id))
        task = asyncio.get_running_loop().create_task(self._resolve_balance(address, chain_id))
        self._balance_tasks.add(task)
        task.add_done_callback(self._balance_tasks.discard)

    async def _resolve_balance(self, address: str, chain_id: int) -> None:
        try:
            result = await self._resolver.resolve(address, chain_id)
        except Exception as e:
            print(f"[BaseConnect] Balance resolver raised: {e}", file=sys.stderr)
            result = BalanceResult.degraded(address, chain_id, error=str(e))

        current = self._session
        if not _is_current(current, address, chain_id):
            print(f"[BaseConnect] Dropping stale balance for {address[:10]}... on {chain_id}",
                  file=sys.stderr)
            return
        self._dispatch(BalanceResolved(result))
