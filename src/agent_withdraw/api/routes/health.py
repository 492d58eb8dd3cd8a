"""Health check endpoints."""

from fastapi import APIRouter, Depends

from agent_withdraw import __version__
from agent_withdraw.api.dependencies import get_app_settings, get_registry
from agent_withdraw.config import Settings
from agent_withdraw.web.services.chain_service import NetworkRegistry

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "agent-withdraw"}


@router.get("/health/detailed")
async def detailed_health(
    settings: Settings = Depends(get_app_settings),
    registry: NetworkRegistry = Depends(get_registry),
):
    """Detailed health check with configuration info."""
    return {
        "status": "healthy" if settings.has_bundler else "degraded",
        "service": "agent-withdraw",
        "version": __version__,
        "networks": registry.networks,
        "config": settings.get_safe_dict(),
    }
