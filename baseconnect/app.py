"""
Application composition root — build_controller(), create_app(), main entry point.

This is the top-level module that wires everything together.
Depends on: everything
"""

import contextlib
import os
import sys
from typing import Optional

import uvicorn
from starlette.applications import Starlette
from starlette.routing import Route

from baseconnect.adapters.aggregator import AggregatorAdapter, ConnectorPicker
from baseconnect.adapters.injected import InjectedAdapter, ProviderLocator, http_provider_locator
from baseconnect.adapters.relay import RelayAdapter, RelayClient
from baseconnect.balance import BalanceResolver
from baseconnect.chains import ChainRegistry, default_registry
from baseconnect.config import DEFAULT_HOST, DEFAULT_PORT, WalletConfig
from baseconnect.controller import SessionController
from baseconnect.guard import InitGuard
from baseconnect.routes import (
    handle_chains,
    handle_connect,
    handle_disconnect,
    handle_pairing,
    handle_refresh_balance,
    handle_state,
    handle_switch_chain,
)


# =============================================================================
# Controller wiring
# =============================================================================

def build_controller(config: Optional[WalletConfig] = None, *,
                     registry: Optional[ChainRegistry] = None,
                     resolver: Optional[BalanceResolver] = None,
                     injected_locator: Optional[ProviderLocator] = None,
                     relay_client: Optional[RelayClient] = None,
                     picker: Optional[ConnectorPicker] = None,
                     init_guard: Optional[InitGuard] = None) -> SessionController:
    """Build registry, resolver, the three adapters and the controller around them.

    The InitGuard created here (or passed in) is the one place that records
    one-time initialization; every adapter that needs it shares it.
    """
    config = config or WalletConfig.from_env()
    registry = registry or default_registry(config.rpc_overrides)
    resolver = resolver or BalanceResolver(registry, timeout=config.rpc_timeout)
    guard = init_guard or InitGuard()

    if injected_locator is None:
        injected_locator = http_provider_locator(config.injected_provider_url,
                                                 poll_interval=config.injected_poll_interval)
    injected = InjectedAdapter(registry, injected_locator,
                               request_timeout=config.injected_request_timeout)
    relay = RelayAdapter(registry, config, client=relay_client, init_guard=guard)
    aggregator = AggregatorAdapter([injected, relay], config, guard, picker=picker)

    return SessionController(registry, resolver, aggregator=aggregator,
                             injected=injected, relay=relay)


# =============================================================================
# App factory
# =============================================================================

def create_app(controller: Optional[SessionController] = None) -> Starlette:
    """Create the Starlette app serving the wallet routes for one controller."""
    controller = controller or build_controller()

    @contextlib.asynccontextmanager
    async def lifespan(app):
        session = await controller.start()
        print(f"[BaseConnect] Session controller started ({session.status.value})",
              file=sys.stderr)
        yield
        await controller.close()

    routes = [
        Route("/wallet/state", handle_state, methods=["GET"]),
        Route("/wallet/chains", handle_chains, methods=["GET"]),
        Route("/wallet/connect", handle_connect, methods=["POST"]),
        Route("/wallet/disconnect", handle_disconnect, methods=["POST"]),
        Route("/wallet/switch_chain", handle_switch_chain, methods=["POST"]),
        Route("/wallet/balance/refresh", handle_refresh_balance, methods=["POST"]),
        Route("/wallet/pairing", handle_pairing, methods=["GET"]),
    ]
    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.controller = controller
    return app


# =============================================================================
# Main entry point
# =============================================================================

def print_startup_banner(host: str, port: int, config: WalletConfig) -> None:
    print(f"[BaseConnect] Serving wallet session API on http://{host}:{port}", file=sys.stderr)
    print(f"[BaseConnect] Relay pairing: "
          f"{'ENABLED' if config.has_valid_project_id else 'disabled (set BASECONNECT_WALLETCONNECT_PROJECT_ID)'}",
          file=sys.stderr)
    print(f"[BaseConnect] Injected wallet: "
          f"{config.injected_provider_url or 'none (set BASECONNECT_INJECTED_PROVIDER_URL)'}",
          file=sys.stderr)


def main() -> None:
    config = WalletConfig.from_env()
    host = os.environ.get("BASECONNECT_HOST", DEFAULT_HOST)
    port = int(os.environ.get("BASECONNECT_PORT", str(DEFAULT_PORT)))
    app = create_app(build_controller(config))
    print_startup_banner(host, port, config)
    uvicorn.run(app, host=host, port=port, log_level="warning")


if __name__ == "__main__":
    main()
