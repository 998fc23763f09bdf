"""
Provider adapter interface — ABC for pluggable wallet connection backends.

Depends on: errors, models
"""

import sys
from abc import ABC, abstractmethod
from typing import Callable, Optional

from baseconnect.errors import NotAvailableError
from baseconnect.models import AccountInfo

AccountsCallback = Callable[[Optional[AccountInfo]], None]
SessionEndedCallback = Callable[[], None]
Unsubscribe = Callable[[], None]


class EventEmitter:
    """Minimal synchronous event emitter. Listeners run in registration order."""

    def __init__(self, owner: str = ""):
        self._owner = owner
        self._listeners: dict[str, list[Callable]] = {}

    def on(self, event: str, callback: Callable) -> Unsubscribe:
        self._listeners.setdefault(event, []).append(callback)

        def unsubscribe() -> None:
            self.off(event, callback)

        return unsubscribe

    def off(self, event: str, callback: Callable) -> None:
        callbacks = self._listeners.get(event)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: str, *args) -> None:
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(*args)
            except Exception as e:
                print(f"[BaseConnect] {self._owner or 'emitter'} listener for '{event}' "
                      f"raised: {e}", file=sys.stderr)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))


class ProviderAdapter(ABC):
    """Abstract connection backend (injected wallet, relay pairing, aggregator modal).

    The controller only ever talks to this surface. Adapters translate their
    library's errors into baseconnect.errors before raising.
    """

    def __init__(self):
        self._events = EventEmitter(owner=self.name)

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter tag stored in Session.active_adapter (e.g. 'injected')."""
        ...

    @abstractmethod
    async def connect(self) -> AccountInfo:
        """Ask the wallet for access. May wait on user approval.

        Raises:
            UserRejectedError, NotAvailableError, WalletTimeoutError,
            ConfigurationError, UnknownWalletError.
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear down this adapter's own session. Idempotent, never raises."""
        ...

    @abstractmethod
    def get_accounts(self) -> Optional[AccountInfo]:
        """Cached snapshot of the current account, or None."""
        ...

    async def prepare(self) -> None:
        """One-time setup before the first connect or restore.

        Override for adapters whose library must be initialized before
        get_accounts() can see a pre-existing session.
        """
        pass

    async def is_available(self) -> bool:
        """Whether connect() has a chance of working right now."""
        return True

    async def switch_chain(self, chain_id: int) -> None:
        """Ask the wallet to change network. Override where supported."""
        raise NotAvailableError(f"{self.name} wallets cannot switch networks from here.")

    # -- Events --

    def on_accounts_changed(self, callback: AccountsCallback) -> Unsubscribe:
        """Called with the current AccountInfo (or None) on account or chain change."""
        return self._events.on("accounts", callback)

    def on_session_ended(self, callback: SessionEndedCallback) -> Unsubscribe:
        return self._events.on("ended", callback)

    def _emit_accounts(self, account: Optional[AccountInfo]) -> None:
        self._events.emit("accounts", account)

    def _emit_session_ended(self) -> None:
        self._events.emit("ended")


def parse_chain_id(raw) -> Optional[int]:
    """Chain ids arrive as hex strings, decimal strings, ints or CAIP-2 ('eip155:8453')."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("eip155:"):
            text = text.split(":", 1)[1]
        try:
            if text.lower().startswith("0x"):
                return int(text, 16)
            return int(text)
        except ValueError:
            return None
    return None
