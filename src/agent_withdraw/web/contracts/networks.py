"""Network contracts."""

from pydantic import BaseModel, ConfigDict, Field


class NetworkConfig(BaseModel):
    """Chain metadata and endpoints for one supported network."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    network: str = Field(..., description="Network identifier (base-mainnet, etc.)")
    name: str = Field(..., description="Display name")
    chain_id: int = Field(..., alias="chainId", description="EVM chain ID")
    native_symbol: str = Field(..., alias="nativeSymbol", description="Native coin symbol")
    rpc_url: str = Field(..., alias="rpcUrl", description="JSON-RPC endpoint")
    bundler_url: str = Field(..., alias="bundlerUrl", description="ERC-4337 bundler endpoint")
    is_testnet: bool = Field(default=False, alias="isTestnet")


class NetworkSummary(BaseModel):
    """Public view of a network (no endpoints)."""

    model_config = ConfigDict(populate_by_name=True)

    network: str
    name: str
    chain_id: int = Field(..., alias="chainId")
    native_symbol: str = Field(..., alias="nativeSymbol")
    is_testnet: bool = Field(..., alias="isTestnet")


class NetworkListResponse(BaseModel):
    """Response listing supported networks."""

    networks: list[NetworkSummary] = Field(default_factory=list)
    total: int = Field(..., description="Number of supported networks")
