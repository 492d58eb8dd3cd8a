"""Request-scoped access to services created in the app lifespan."""

from fastapi import Request

from agent_withdraw.config import Settings
from agent_withdraw.web.services.chain_service import NetworkRegistry
from agent_withdraw.web.services.withdrawal_service import WithdrawalService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> NetworkRegistry:
    return request.app.state.registry


def get_withdrawal_service(request: Request) -> WithdrawalService:
    return request.app.state.withdrawal_service
