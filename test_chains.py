#!/usr/bin/env python3
"""
Tests for the chain registry, configuration and error classification.

Standalone async script — no network, no real ports.
"""

import asyncio
import os
import sys

import httpx

from baseconnect.chains import (
    BASE,
    BASE_CHAIN_ID,
    BASE_SEPOLIA_CHAIN_ID,
    ChainDescriptor,
    ChainRegistry,
    default_registry,
)
from baseconnect.config import PLACEHOLDER_PROJECT_ID, WalletConfig, is_valid_project_id
from baseconnect.errors import (
    ChainNotSupportedError,
    ErrorKind,
    NetworkError,
    ProviderRpcError,
    UserRejectedError,
    WalletTimeoutError,
    classify_error,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

GREEN = "\033[92m"
RED = "\033[91m"
BOLD = "\033[1m"
RESET = "\033[0m"

results: list[tuple[str, bool, str]] = []


def report(name: str, passed: bool, detail: str = "") -> None:
    mark = f"{GREEN}✓{RESET}" if passed else f"{RED}✗{RESET}"
    print(f"  {mark} {name}")
    if detail and not passed:
        print(f"      {detail}")
    results.append((name, passed, detail))
    if not passed:
        raise AssertionError(f"{name}: {detail}")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


async def test_default_registry() -> None:
    """Base mainnet is primary, Base Sepolia is registered, nothing else."""
    print(f"\n{BOLD}Test: default registry{RESET}")
    registry = default_registry()

    report("primary is Base mainnet", registry.primary.chain_id == BASE_CHAIN_ID,
           f"got: {registry.primary.chain_id}")
    report("ids in registration order", registry.ids() == [8453, 84532], f"got: {registry.ids()}")

    sepolia = registry.describe(BASE_SEPOLIA_CHAIN_ID)
    report("sepolia is a testnet", sepolia.testnet and sepolia.name == "Base Sepolia")
    report("currency is 18-decimal ETH",
           sepolia.currency_symbol == "ETH" and sepolia.currency_decimals == 18)
    report("hex chain id", sepolia.hex_chain_id == "0x14a34", f"got: {sepolia.hex_chain_id}")

    try:
        registry.describe(1)
        report("describe(unknown) raises", False, "no exception")
    except ChainNotSupportedError as e:
        report("describe(unknown) raises ChainNotSupportedError",
               e.chain_id == 1 and e.kind == ErrorKind.NOT_AVAILABLE)

    report("get(unknown) is None", registry.get(1) is None and registry.get(None) is None)
    report("unknown network name", registry.network_name(1) == "Unknown Network")
    report("explorer address url",
           BASE.address_url("0xabc") == "https://basescan.org/address/0xabc",
           f"got: {BASE.address_url('0xabc')}")


async def test_registry_overrides_and_extension() -> None:
    """RPC overrides go first; built-ins stay as fallbacks; new chains need no code changes."""
    print(f"\n{BOLD}Test: registry overrides and extension{RESET}")
    registry = default_registry({BASE_CHAIN_ID: "https://rpc.example.org"})
    urls = registry.describe(BASE_CHAIN_ID).rpc_urls
    report("override is the primary endpoint", urls[0] == "https://rpc.example.org", f"got: {urls}")
    report("built-in endpoints kept as fallbacks", set(BASE.rpc_urls) <= set(urls))
    report("other chains untouched",
           registry.describe(BASE_SEPOLIA_CHAIN_ID).rpc_urls == default_registry().describe(
               BASE_SEPOLIA_CHAIN_ID).rpc_urls)

    optimism = ChainDescriptor(chain_id=10, name="OP Mainnet", currency_symbol="ETH",
                               currency_decimals=18, rpc_urls=("https://mainnet.optimism.io",),
                               explorer_url="https://optimistic.etherscan.io")
    extended = ChainRegistry(default_registry().all() + [optimism])
    report("added chain is supported", extended.is_supported(10))
    report("primary unchanged by extension", extended.primary.chain_id == BASE_CHAIN_ID)

    try:
        ChainRegistry([])
        report("empty registry rejected", False, "no exception")
    except ValueError:
        report("empty registry rejected", True)


async def test_project_id_validation() -> None:
    print(f"\n{BOLD}Test: relay project id validation{RESET}")
    report("32 hex chars accepted", is_valid_project_id("0123456789abcdef0123456789ABCDEF"))
    report("placeholder rejected", not is_valid_project_id(PLACEHOLDER_PROJECT_ID))
    report("empty rejected", not is_valid_project_id("") and not is_valid_project_id(None))
    report("wrong length rejected", not is_valid_project_id("abc123"))
    report("non-hex rejected", not is_valid_project_id("z" * 32))
    report("config property follows", not WalletConfig(project_id="nope").has_valid_project_id)


async def test_config_from_env() -> None:
    """from_env() re-reads the environment on every call."""
    print(f"\n{BOLD}Test: WalletConfig.from_env{RESET}")
    keys = ["BASECONNECT_WALLETCONNECT_PROJECT_ID", "BASECONNECT_BASE_RPC_URL",
            "BASECONNECT_BASE_SEPOLIA_RPC_URL", "BASECONNECT_INJECTED_PROVIDER_URL"]
    saved = {k: os.environ.get(k) for k in keys}
    try:
        os.environ["BASECONNECT_WALLETCONNECT_PROJECT_ID"] = " 0123456789abcdef0123456789abcdef "
        os.environ["BASECONNECT_BASE_RPC_URL"] = "https://base.example.org"
        os.environ.pop("BASECONNECT_BASE_SEPOLIA_RPC_URL", None)
        os.environ["BASECONNECT_INJECTED_PROVIDER_URL"] = "http://127.0.0.1:8545"

        config = WalletConfig.from_env()
        report("project id stripped and valid", config.has_valid_project_id,
               f"got: {config.project_id!r}")
        report("RPC override keyed by chain id",
               config.rpc_overrides == {8453: "https://base.example.org"},
               f"got: {config.rpc_overrides}")
        report("injected provider url read", config.injected_provider_url == "http://127.0.0.1:8545")
        report("metadata carries app name", config.metadata["name"] == "BaseConnect")

        os.environ.pop("BASECONNECT_WALLETCONNECT_PROJECT_ID")
        report("missing project id falls back to placeholder",
               WalletConfig.from_env().project_id == PLACEHOLDER_PROJECT_ID)
    finally:
        for key, value in saved.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


async def test_classify_error() -> None:
    """Raw provider and transport errors map onto the wallet error kinds."""
    print(f"\n{BOLD}Test: error classification{RESET}")

    rejected = classify_error(ProviderRpcError(4001, "User rejected the request."))
    report("4001 -> user_rejected", rejected.kind == ErrorKind.USER_REJECTED)
    report("user message is fixed text",
           rejected.user_message == "The request was rejected in your wallet.",
           f"got: {rejected.user_message}")
    report("raw cause kept as detail", "4001" in (rejected.detail or ""))

    report("4100 -> user_rejected",
           classify_error(ProviderRpcError(4100, "Unauthorized")).kind == ErrorKind.USER_REJECTED)
    report("4900 -> not_available",
           classify_error(ProviderRpcError(4900, "Disconnected")).kind == ErrorKind.NOT_AVAILABLE)
    unknown_chain = classify_error(ProviderRpcError(4902, "Unrecognized chain"))
    report("4902 -> not_available with network message",
           unknown_chain.kind == ErrorKind.NOT_AVAILABLE
           and unknown_chain.user_message == "Your wallet does not know this network.")

    report("asyncio timeout -> timeout",
           isinstance(classify_error(asyncio.TimeoutError()), WalletTimeoutError))
    report("httpx connect error -> not_available",
           classify_error(httpx.ConnectError("refused")).kind == ErrorKind.NOT_AVAILABLE)
    report("httpx read error -> network",
           isinstance(classify_error(httpx.ReadError("reset")), NetworkError))
    report("'denied' text -> user_rejected",
           isinstance(classify_error(ValueError("User denied account access")), UserRejectedError))

    other = classify_error(RuntimeError("boom"))
    report("anything else -> unknown", other.kind == ErrorKind.UNKNOWN)
    report("unknown message is generic", other.user_message == "Failed to connect wallet.")
    report("unknown detail names the cause", other.detail == "RuntimeError: boom",
           f"got: {other.detail}")

    original = UserRejectedError("custom")
    report("wallet errors pass through", classify_error(original) is original)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

async def main() -> None:
    print(f"\n{BOLD}BaseConnect Registry / Config / Error Tests{RESET}\n")

    tests = [
        ("1. Default registry", test_default_registry),
        ("2. Overrides and extension", test_registry_overrides_and_extension),
        ("3. Project id validation", test_project_id_validation),
        ("4. Config from env", test_config_from_env),
        ("5. Error classification", test_classify_error),
    ]

    for label, test_fn in tests:
        print(f"\n{BOLD}{label}{RESET}")
        try:
            await test_fn()
        except AssertionError:
            continue
        except Exception as e:
            print(f"  {RED}✗{RESET} {label}\n      EXCEPTION: {e}")
            results.append((label, False, f"EXCEPTION: {e}"))

    passed = sum(1 for _, ok, _ in results if ok)
    total = len(results)
    print(f"\n{'─' * 40}")
    if passed == total:
        print(f"{GREEN}{BOLD}All {total} checks passed.{RESET}")
    else:
        print(f"{RED}{BOLD}{total - passed}/{total} checks failed.{RESET}")

    sys.exit(0 if passed == total else 1)


if __name__ == "__main__":
    asyncio.run(main())
