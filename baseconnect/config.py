"""
Configuration constants, environment variables, and the WalletConfig snapshot.

This is a leaf module with no internal dependencies.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Optional

# =============================================================================
# Application
# =============================================================================

APP_NAME = "BaseConnect"
APP_DESCRIPTION = "Connect your wallet to the Base network"
APP_URL = os.environ.get("BASECONNECT_APP_URL", "https://base.org")
APP_ICONS = ["https://walletconnect.com/walletconnect-logo.png"]

DEFAULT_PORT = 8300
DEFAULT_HOST = "127.0.0.1"

# =============================================================================
# Relay (WalletConnect) project
# =============================================================================

PLACEHOLDER_PROJECT_ID = "0" * 32
WALLETCONNECT_PROJECT_ID = os.environ.get(
    "BASECONNECT_WALLETCONNECT_PROJECT_ID", PLACEHOLDER_PROJECT_ID
).strip()

_PROJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{32}$")

# =============================================================================
# RPC endpoints (optional overrides, become the primary endpoint for a chain)
# =============================================================================

BASE_RPC_URL = os.environ.get("BASECONNECT_BASE_RPC_URL", "").strip() or None
BASE_SEPOLIA_RPC_URL = os.environ.get("BASECONNECT_BASE_SEPOLIA_RPC_URL", "").strip() or None

RPC_TIMEOUT = 10.0              # seconds per balance query, per endpoint

# =============================================================================
# Injected provider
# =============================================================================

# Local wallet JSON-RPC endpoint standing in for window.ethereum (unset = none present)
INJECTED_PROVIDER_URL = os.environ.get("BASECONNECT_INJECTED_PROVIDER_URL", "").strip() or None
INJECTED_REQUEST_TIMEOUT = 120.0    # user may need to approve in the wallet UI
INJECTED_PROBE_TIMEOUT = 2.0        # detection probe
INJECTED_POLL_INTERVAL = 4.0        # seconds between account/chain polls
INJECTED_FAILURE_THRESHOLD = 3      # failed polls before treating the wallet as gone

# =============================================================================
# Relay pairing
# =============================================================================

RELAY_APPROVAL_TIMEOUT = 300.0      # seconds to wait for the remote wallet to approve


def _rpc_overrides(base_url: Optional[str], sepolia_url: Optional[str]) -> dict[int, str]:
    overrides: dict[int, str] = {}
    if base_url:
        overrides[8453] = base_url
    if sepolia_url:
        overrides[84532] = sepolia_url
    return overrides


def is_valid_project_id(project_id: Optional[str]) -> bool:
    """A usable relay project id: 32 hex chars and not the all-zero placeholder."""
    if not project_id:
        return False
    if project_id == PLACEHOLDER_PROJECT_ID:
        return False
    return bool(_PROJECT_ID_RE.match(project_id))


@dataclass
class WalletConfig:
    """Configuration handed to adapters and the resolver at construction."""
    project_id: str = WALLETCONNECT_PROJECT_ID
    rpc_overrides: dict[int, str] = field(
        default_factory=lambda: _rpc_overrides(BASE_RPC_URL, BASE_SEPOLIA_RPC_URL))
    injected_provider_url: Optional[str] = INJECTED_PROVIDER_URL
    rpc_timeout: float = RPC_TIMEOUT
    injected_request_timeout: float = INJECTED_REQUEST_TIMEOUT
    injected_poll_interval: float = INJECTED_POLL_INTERVAL
    relay_approval_timeout: float = RELAY_APPROVAL_TIMEOUT
    app_name: str = APP_NAME
    app_description: str = APP_DESCRIPTION
    app_url: str = APP_URL

    @property
    def has_valid_project_id(self) -> bool:
        return is_valid_project_id(self.project_id)

    @property
    def metadata(self) -> dict:
        """App metadata shown to the user by the remote wallet."""
        return {
            "name": self.app_name,
            "description": self.app_description,
            "url": self.app_url,
            "icons": list(APP_ICONS),
        }

    @classmethod
    def from_env(cls) -> "WalletConfig":
        """Build a config from the current environment (re-read, not the import-time constants)."""
        overrides = _rpc_overrides(
            os.environ.get("BASECONNECT_BASE_RPC_URL", "").strip(),
            os.environ.get("BASECONNECT_BASE_SEPOLIA_RPC_URL", "").strip(),
        )
        return cls(
            project_id=os.environ.get(
                "BASECONNECT_WALLETCONNECT_PROJECT_ID", PLACEHOLDER_PROJECT_ID
            ).strip(),
            rpc_overrides=overrides,
            injected_provider_url=os.environ.get("BASECONNECT_INJECTED_PROVIDER_URL", "").strip() or None,
            app_url=os.environ.get("BASECONNECT_APP_URL", APP_URL),
        )
