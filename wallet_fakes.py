"""
In-process stand-ins for wallets, relay clients, RPC nodes and the balance resolver.

Shared by the test_*.py scripts. Nothing here talks to the network.
"""

import asyncio
import json
from typing import Any, Callable, Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from baseconnect.adapters import EventEmitter
from baseconnect.adapters.injected import EthereumProvider
from baseconnect.adapters.relay import RelayClient, RelaySession
from baseconnect.app import build_controller
from baseconnect.chains import default_registry
from baseconnect.config import WalletConfig
from baseconnect.errors import ProviderRpcError
from baseconnect.guard import InitGuard
from baseconnect.models import BalanceResult

VALID_PROJECT_ID = "0123456789abcdef0123456789abcdef"
ADDRESS_A = "0xABCD" + "0" * 32 + "1234"
ADDRESS_B = "0xBEEF" + "0" * 32 + "5678"


async def settle(rounds: int = 20) -> None:
    """Let scheduled tasks (balance queries, event handlers) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Injected wallet
# ---------------------------------------------------------------------------

class FakeProvider(EthereumProvider):
    """Browser-extension style provider with scriptable answers.

    hold=True parks every eth_requestAccounts call until release(n) approves the n-th one.
    """

    def __init__(self, accounts=(ADDRESS_A,), chain_id: Optional[int] = 8453,
                 reject: bool = False, switch_error: Optional[Exception] = None,
                 hold: bool = False):
        self.accounts = list(accounts)
        self.hold = hold
        self.pending: list[asyncio.Event] = []
        self.chain_id = chain_id
        self.reject = reject
        self.switch_error = switch_error
        self.calls: list[str] = []
        self.started = 0
        self.stopped = 0
        self._events = EventEmitter(owner="fake-provider")

    async def request(self, method: str, params: Any = None) -> Any:
        self.calls.append(method)
        if method == "eth_requestAccounts":
            if self.hold:
                gate = asyncio.Event()
                self.pending.append(gate)
                await gate.wait()
            if self.reject:
                raise ProviderRpcError(4001, "User rejected the request.")
            return list(self.accounts)
        if method == "eth_accounts":
            return list(self.accounts)
        if method == "eth_chainId":
            return hex(self.chain_id) if self.chain_id is not None else None
        if method == "wallet_switchEthereumChain":
            if self.switch_error is not None:
                raise self.switch_error
            self.chain_id = int(params[0]["chainId"], 16)
            self.emit("chainChanged", hex(self.chain_id))
            return None
        if method == "wallet_revokePermissions":
            return None
        raise ProviderRpcError(4200, f"Unsupported method: {method}")

    def on(self, event: str, callback: Callable) -> None:
        self._events.on(event, callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        self._events.off(event, callback)

    def release(self, index: int = 0) -> None:
        self.pending[index].set()

    def emit(self, event: str, *args) -> None:
        self._events.emit(event, *args)

    def listener_count(self, event: str) -> int:
        return self._events.listener_count(event)

    async def start(self) -> None:
        self.started += 1

    async def stop(self) -> None:
        self.stopped += 1


def locator_for(provider: Optional[EthereumProvider]):
    async def locate():
        return provider
    return locate


# ---------------------------------------------------------------------------
# Relay client
# ---------------------------------------------------------------------------

PAIRING_URI = "wc:7f6e504bfad60b485450578e05678ed3e8e8c4751d3c6160be17160d63ec90f9@2?relay-protocol=irn"


class FakeRelayClient(RelayClient):
    """Pairing library stand-in. hold=True keeps connect() pending until release()."""

    def __init__(self, accounts=(f"eip155:8453:{ADDRESS_A}",), approve: bool = True,
                 hold: bool = False, restored: Optional[RelaySession] = None,
                 disconnect_error: Optional[Exception] = None):
        self.accounts = list(accounts)
        self.approve = approve
        self.hold = hold
        self.disconnect_error = disconnect_error
        self.init_calls = 0
        self.init_args: Optional[tuple] = None
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.requests: list[tuple[str, Any]] = []
        self._session = restored
        self._release = asyncio.Event()
        self._events = EventEmitter(owner="fake-relay")

    def release(self) -> None:
        self._release.set()

    async def init(self, project_id: str, metadata: dict, chains: list[int],
                   optional_chains: list[int]) -> None:
        self.init_calls += 1
        self.init_args = (project_id, metadata, chains, optional_chains)

    async def connect(self) -> RelaySession:
        self.connect_calls += 1
        self._events.emit("display_uri", PAIRING_URI)
        if self.hold:
            await self._release.wait()
        if not self.approve:
            raise Exception("User rejected.")
        self._session = RelaySession(topic="topic-1", accounts=list(self.accounts),
                                     peer_name="Fake Mobile Wallet")
        return self._session

    async def request(self, method: str, params: Any = None) -> Any:
        self.requests.append((method, params))
        if method == "eth_chainId":
            return "0x2105"
        if method == "wallet_switchEthereumChain":
            return None
        raise ProviderRpcError(4200, f"Unsupported method: {method}")

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._session = None
        if self.disconnect_error is not None:
            raise self.disconnect_error

    @property
    def session(self) -> Optional[RelaySession]:
        return self._session

    def on(self, event: str, callback: Callable) -> None:
        self._events.on(event, callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        self._events.off(event, callback)

    def end_session(self) -> None:
        """Remote wallet terminates the pairing."""
        self._session = None
        self._events.emit("session_delete", {"topic": "topic-1"})

    def emit(self, event: str, *args) -> None:
        self._events.emit(event, *args)


# ---------------------------------------------------------------------------
# Balance resolver
# ---------------------------------------------------------------------------

class FakeResolver:
    """Records resolve() calls. hold=True makes every call wait for release()."""

    def __init__(self, balances: Optional[dict] = None, hold: bool = False):
        self.balances = balances or {}
        self.hold = hold
        self.calls: list[tuple[str, int]] = []
        self._release = asyncio.Event()

    def release(self) -> None:
        self._release.set()

    async def resolve(self, address: str, chain_id: int) -> BalanceResult:
        self.calls.append((address, chain_id))
        if self.hold:
            await self._release.wait()
        formatted = self.balances.get(address, "1.5")
        return BalanceResult(address=address, chain_id=chain_id, wei=0, formatted=formatted)


# ---------------------------------------------------------------------------
# RPC node
# ---------------------------------------------------------------------------

def make_rpc_node(received: Optional[list] = None) -> Starlette:
    """JSON-RPC endpoints with fixed behaviours, one per path."""

    async def record(request: Request) -> dict:
        body = json.loads(await request.body())
        if received is not None:
            received.append((request.url.path, body))
        return body

    async def ok(request: Request) -> JSONResponse:
        body = await record(request)
        return JSONResponse({"jsonrpc": "2.0", "id": body["id"], "result": "0x14d1120d7b160000"})

    async def secondary(request: Request) -> JSONResponse:
        body = await record(request)
        return JSONResponse({"jsonrpc": "2.0", "id": body["id"], "result": "0x1bc16d674ec80000"})

    async def broken(request: Request) -> Response:
        await record(request)
        return Response("upstream unavailable", status_code=503)

    async def garbage(request: Request) -> Response:
        await record(request)
        return Response("<html>not json</html>", status_code=200, media_type="text/html")

    async def rpc_error(request: Request) -> JSONResponse:
        body = await record(request)
        return JSONResponse({"jsonrpc": "2.0", "id": body["id"],
                             "error": {"code": -32000, "message": "header not found"}})

    async def bad_result(request: Request) -> JSONResponse:
        body = await record(request)
        return JSONResponse({"jsonrpc": "2.0", "id": body["id"], "result": "12345"})

    async def signed_result(request: Request) -> JSONResponse:
        body = await record(request)
        return JSONResponse({"jsonrpc": "2.0", "id": body["id"], "result": "0x-de0b6b3a7640000"})

    return Starlette(routes=[
        Route("/ok", ok, methods=["POST"]),
        Route("/secondary", secondary, methods=["POST"]),
        Route("/broken", broken, methods=["POST"]),
        Route("/garbage", garbage, methods=["POST"]),
        Route("/rpc-error", rpc_error, methods=["POST"]),
        Route("/bad-result", bad_result, methods=["POST"]),
        Route("/signed-result", signed_result, methods=["POST"]),
    ])


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

def make_controller(provider: Optional[EthereumProvider] = None,
                    relay_client: Optional[RelayClient] = None,
                    resolver: Optional[FakeResolver] = None,
                    project_id: str = VALID_PROJECT_ID,
                    picker=None, guard: Optional[InitGuard] = None):
    """Controller wired like the real app, with fakes at every external edge."""
    config = WalletConfig(project_id=project_id, relay_approval_timeout=5.0,
                          injected_request_timeout=5.0)
    return build_controller(
        config,
        registry=default_registry(),
        resolver=resolver if resolver is not None else FakeResolver(),
        injected_locator=locator_for(provider),
        relay_client=relay_client,
        picker=picker,
        init_guard=guard,
    )


async def pick_relay(connectors):
    return next((c for c in connectors if c.name == "relay"), None)


async def pick_nothing(connectors):
    return None


async def wait_until(predicate: Callable[[], bool], rounds: int = 500) -> bool:
    """Yield to the loop until predicate() holds or the rounds run out."""
    for _ in range(rounds):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()
