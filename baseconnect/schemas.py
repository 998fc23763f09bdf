"""
Pydantic input models for the wallet HTTP routes.

Depends on: (nothing — leaf module)
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ConnectMethod(str, Enum):
    AGGREGATOR = "aggregator"
    INJECTED = "injected"
    RELAY = "relay"


class ConnectInput(BaseModel):
    """Start a wallet connection through one of the adapters."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")
    method: ConnectMethod = Field(default=ConnectMethod.AGGREGATOR,
                                  description="'aggregator' (modal), 'injected' (browser wallet) or 'relay' (QR / deep link)")


class SwitchChainInput(BaseModel):
    """Ask the connected wallet to move to another supported network."""
    model_config = ConfigDict(extra="forbid")
    chain_id: int = Field(..., gt=0, description="Target chain id, e.g. 8453 or 84532")
