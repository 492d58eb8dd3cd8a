"""Balance contracts for agent accounts.

Balances come from the external token indexer, never from local state.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agent_withdraw.web.contracts.withdrawals import ADDRESS_PATTERN


class TokenBalance(BaseModel):
    """Balance of a single token/asset held by an agent account."""

    model_config = ConfigDict(populate_by_name=True)

    network: str = Field(..., description="Network identifier")
    token_address: str = Field(
        ..., alias="tokenAddress", description="Token contract (zero address for native)"
    )
    token_balance: str = Field(
        ..., alias="tokenBalance", description="Raw balance in smallest units"
    )
    decimals: int = Field(..., description="Token decimals")
    symbol: str = Field(..., description="Token symbol")
    name: Optional[str] = Field(None, description="Token name")
    balance: Decimal = Field(..., description="Balance in human-readable units")


class AgentFundsRequest(BaseModel):
    """Request for the funds held by a user's agent account."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    user_controller_address: str = Field(
        ...,
        alias="userControllerAddress",
        pattern=ADDRESS_PATTERN,
        description="EOA controlling the user's wallet, used to derive the agent account",
    )
    networks: list[str] = Field(..., min_length=1, description="Networks to query")

    @field_validator("networks")
    @classmethod
    def normalize_networks(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(n.strip().lower() for n in value))


class AgentFundsResponse(BaseModel):
    """Agent account address and the balances it holds."""

    model_config = ConfigDict(populate_by_name=True)

    agent_address: str = Field(..., alias="agentAddress")
    tokens: list[TokenBalance] = Field(default_factory=list)
