"""
RPC balance resolver — eth_getBalance with endpoint fallback and a degraded result.

Depends on: config, chains, models
"""

import re
import sys
from typing import Optional

import httpx

from baseconnect.chains import ChainRegistry
from baseconnect.config import RPC_TIMEOUT
from baseconnect.models import BalanceResult


_HEX_DIGITS = re.compile(r"[0-9a-fA-F]+")


class RpcEndpointError(Exception):
    """One endpoint failed to produce a usable answer."""


def format_units(value: int, decimals: int) -> str:
    """Convert a smallest-unit integer to a decimal string, e.g. 1500000000000000000 -> '1.5'."""
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** decimals)
    text = f"{sign}{whole}"
    if frac and decimals > 0:
        text += "." + str(frac).rjust(decimals, "0").rstrip("0")
    return text


def parse_hex_quantity(raw) -> int:
    """Parse a JSON-RPC hex quantity ('0x1bc16d674ec80000'). Raises ValueError if malformed."""
    if not isinstance(raw, str) or not raw.lower().startswith("0x"):
        raise ValueError(f"not a hex quantity: {raw!r}")
    digits = raw[2:]
    if not _HEX_DIGITS.fullmatch(digits):
        raise ValueError(f"not a hex quantity: {raw!r}")
    return int(digits, 16)


class BalanceResolver:
    """Queries native balances against a chain's RPC endpoints, in order."""

    def __init__(self, registry: ChainRegistry, timeout: float = RPC_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self._registry = registry
        self._timeout = timeout
        self._transport = transport

    async def resolve(self, address: str, chain_id: int) -> BalanceResult:
        """Return the balance, or a degraded zero result if nothing answered. Never raises."""
        descriptor = self._registry.get(chain_id)
        if descriptor is None:
            return BalanceResult.degraded(address, chain_id, error=f"unknown chain {chain_id}")

        errors = []
        for url in descriptor.rpc_urls:
            try:
                wei = await self._get_balance(url, address)
            except Exception as e:
                errors.append(f"{url}: {e}")
                print(f"[BaseConnect] eth_getBalance via {url} failed ({e}), "
                      f"trying next endpoint", file=sys.stderr)
                continue
            return BalanceResult(
                address=address,
                chain_id=chain_id,
                wei=wei,
                formatted=format_units(wei, descriptor.currency_decimals),
                symbol=descriptor.currency_symbol,
                reliable=True,
                endpoint=url,
            )

        error = "; ".join(errors) if errors else "no RPC endpoints configured"
        print(f"[BaseConnect] Balance for {address[:10]}... on {chain_id} unavailable: {error}",
              file=sys.stderr)
        return BalanceResult.degraded(address, chain_id, symbol=descriptor.currency_symbol,
                                      error=error)

    async def _get_balance(self, url: str, address: str) -> int:
        payload = {
            "jsonrpc": "2.0",
            "method": "eth_getBalance",
            "params": [address, "latest"],
            "id": 1,
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(url, json=payload)
        if resp.status_code != 200:
            raise RpcEndpointError(f"HTTP {resp.status_code}")
        try:
            body = resp.json()
        except ValueError:
            raise RpcEndpointError("response is not JSON")
        if not isinstance(body, dict):
            raise RpcEndpointError("response is not a JSON object")
        if body.get("error"):
            err = body["error"]
            message = err.get("message") if isinstance(err, dict) else err
            raise RpcEndpointError(f"RPC error: {message}")
        try:
            return parse_hex_quantity(body.get("result"))
        except ValueError as e:
            raise RpcEndpointError(f"malformed result: {e}")
