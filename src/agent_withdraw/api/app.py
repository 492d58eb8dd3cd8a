"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agent_withdraw import __version__
from agent_withdraw.config import Settings, get_settings
from agent_withdraw.utils.rpc import JsonRpcClient
from agent_withdraw.web.services.balance_service import BalanceService
from agent_withdraw.web.services.chain_service import NetworkRegistry
from agent_withdraw.web.services.withdrawal_service import WithdrawalService
from agent_withdraw.withdrawal.builder import OperationBuilder
from agent_withdraw.withdrawal.submitter import OperationSubmitter

logger = logging.getLogger(__name__)


def build_withdrawal_service(
    settings: Settings,
    http: httpx.AsyncClient,
    registry: NetworkRegistry,
) -> WithdrawalService:
    """Wire the withdrawal service from settings and a shared HTTP client."""
    rpc = JsonRpcClient(http)
    return WithdrawalService(
        registry=registry,
        balances=BalanceService(http, settings.alchemy_api_key, settings.alchemy_portfolio_url),
        builder=OperationBuilder(rpc),
        submitter=OperationSubmitter(
            rpc,
            poll_interval=settings.receipt_poll_interval,
            poll_attempts=settings.receipt_poll_attempts,
        ),
        sponsor_gas=settings.sponsor_withdraw_gas,
        paymaster_url=settings.zerodev_paymaster_url,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings

    # Startup
    http = httpx.AsyncClient(timeout=settings.http_timeout)
    registry = NetworkRegistry.from_settings(settings)
    app.state.http = http
    app.state.registry = registry
    app.state.withdrawal_service = build_withdrawal_service(settings, http, registry)

    if not settings.has_bundler:
        logger.warning("ZERODEV_BUNDLER_URL not set - withdrawals disabled")

    yield

    # Shutdown
    await http.aclose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Agent Withdraw API",
        description="Non-custodial withdrawals from agent smart accounts",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    from agent_withdraw.api.routes import health
    from agent_withdraw.web.controllers import networks, withdrawals

    app.include_router(health.router, tags=["Health"])
    app.include_router(networks.router, prefix="/api/v1")
    app.include_router(withdrawals.router, prefix="/api/v1")

    return app


# Default app instance
app = create_app()
