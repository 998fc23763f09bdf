"""
HTTP handlers for /wallet/* routes — the subscriber boundary for a web UI.

Depends on: controller, schemas, adapters/relay
"""

import json

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from baseconnect.adapters.relay import RelayAdapter
from baseconnect.controller import SessionController
from baseconnect.schemas import ConnectInput, ConnectMethod, SwitchChainInput


def _controller(request: Request) -> SessionController:
    return request.app.state.controller


async def _read_body(request: Request) -> dict:
    raw = await request.body()
    if not raw.strip():
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("body must be a JSON object")
    return data


async def handle_state(request: Request) -> JSONResponse:
    """Current session snapshot."""
    return JSONResponse(_controller(request).state_dict())


async def handle_chains(request: Request) -> JSONResponse:
    registry = _controller(request).registry
    return JSONResponse({
        "primary": registry.primary.chain_id,
        "chains": [d.to_dict() for d in registry.all()],
    })


async def handle_connect(request: Request) -> JSONResponse:
    try:
        params = ConnectInput(**await _read_body(request))
    except (ValidationError, ValueError) as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    controller = _controller(request)
    if params.method == ConnectMethod.INJECTED:
        await controller.connect_direct()
    elif params.method == ConnectMethod.RELAY:
        await controller.connect_via_relay()
    else:
        await controller.connect_via_aggregator()
    return JSONResponse(controller.state_dict())


async def handle_disconnect(request: Request) -> JSONResponse:
    controller = _controller(request)
    await controller.disconnect()
    return JSONResponse(controller.state_dict())


async def handle_switch_chain(request: Request) -> JSONResponse:
    try:
        params = SwitchChainInput(**await _read_body(request))
    except (ValidationError, ValueError) as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    controller = _controller(request)
    await controller.switch_chain(params.chain_id)
    return JSONResponse(controller.state_dict())


async def handle_refresh_balance(request: Request) -> JSONResponse:
    controller = _controller(request)
    controller.refresh_balance()
    return JSONResponse(controller.state_dict())


async def handle_pairing(request: Request) -> JSONResponse:
    """Latest relay pairing URI, for rendering a QR code while a relay connect is pending."""
    relay = _controller(request).adapter("relay")
    uri = relay.pairing_uri if isinstance(relay, RelayAdapter) else None
    return JSONResponse({"uri": uri})
