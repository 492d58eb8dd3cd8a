"""Supported network API endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from agent_withdraw.api.dependencies import get_registry
from agent_withdraw.web.contracts.networks import NetworkListResponse, NetworkSummary
from agent_withdraw.web.services.chain_service import NetworkRegistry

router = APIRouter(prefix="/networks", tags=["networks"])


@router.get("", response_model=NetworkListResponse)
async def get_networks(registry: NetworkRegistry = Depends(get_registry)) -> NetworkListResponse:
    """Get the networks withdrawals can be requested on."""
    return registry.list_networks()


@router.get("/{network}", response_model=NetworkSummary)
async def get_network(
    network: str,
    registry: NetworkRegistry = Depends(get_registry),
) -> NetworkSummary:
    """Get chain metadata for one supported network."""
    for summary in registry.list_networks().networks:
        if summary.network == network.lower():
            return summary
    raise HTTPException(status_code=404, detail=f"Network not supported: {network}")
