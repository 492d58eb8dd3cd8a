"""Withdrawal API endpoints for agent accounts.

request-withdraw returns UNSIGNED user operations and their hashes.
The owner signs each hash off-box and posts the signatures to
complete-withdraw, which relays them to the bundler.

SECURITY: Private keys are NEVER accessed server-side.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path

from agent_withdraw.api.dependencies import get_withdrawal_service
from agent_withdraw.web.contracts.balances import AgentFundsRequest, AgentFundsResponse
from agent_withdraw.web.contracts.withdrawals import (
    CompleteWithdrawRequest,
    CompleteWithdrawResult,
    RequestWithdrawRequest,
    RequestWithdrawResult,
)
from agent_withdraw.web.services.withdrawal_service import WithdrawalService
from agent_withdraw.withdrawal.base import (
    BalanceOracleUnavailableError,
    OperationBuildFailedError,
    WithdrawalError,
)
from agent_withdraw.withdrawal.kernel import MAX_APP_ID

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/apps/{app_id}", tags=["withdrawals"])

# Whole-request failures caused by upstream/config problems, not by the caller
UNAVAILABLE_ERRORS = (BalanceOracleUnavailableError, OperationBuildFailedError)


def _error_response(error: WithdrawalError) -> HTTPException:
    status_code = 503 if isinstance(error, UNAVAILABLE_ERRORS) else 400
    return HTTPException(
        status_code=status_code,
        detail={"error": error.kind, "message": str(error)},
    )


@router.post(
    "/request-withdraw",
    response_model=RequestWithdrawResult,
    response_model_exclude_none=True,
)
async def request_withdraw(
    request: RequestWithdrawRequest,
    app_id: int = Path(..., ge=0, le=MAX_APP_ID),
    service: WithdrawalService = Depends(get_withdrawal_service),
) -> RequestWithdrawResult:
    """Prepare unsigned withdrawals from the agent account.

    Assets on the same network are batched into one user operation.
    Each returned userOpHash must be signed by userControllerAddress.
    """
    try:
        return await service.request_withdraw(
            request.user_controller_address, app_id, request.assets
        )
    except WithdrawalError as e:
        logger.warning("Withdrawal request for app %s failed: %s", app_id, e)
        raise _error_response(e) from e


@router.post(
    "/complete-withdraw",
    response_model=CompleteWithdrawResult,
    response_model_exclude_none=True,
)
async def complete_withdraw(
    request: CompleteWithdrawRequest,
    app_id: int = Path(..., ge=0, le=MAX_APP_ID),
    service: WithdrawalService = Depends(get_withdrawal_service),
) -> CompleteWithdrawResult:
    """Submit signed withdrawals and wait for their receipts."""
    try:
        return await service.complete_withdraw(request.withdrawals)
    except WithdrawalError as e:
        logger.warning("Withdrawal completion for app %s failed: %s", app_id, e)
        raise _error_response(e) from e


@router.post(
    "/agent-funds",
    response_model=AgentFundsResponse,
    response_model_exclude_none=True,
)
async def get_agent_funds(
    request: AgentFundsRequest,
    app_id: int = Path(..., ge=0, le=MAX_APP_ID),
    service: WithdrawalService = Depends(get_withdrawal_service),
) -> AgentFundsResponse:
    """Get the agent account address and the funds it holds."""
    try:
        return await service.get_agent_funds(
            request.user_controller_address, app_id, request.networks
        )
    except WithdrawalError as e:
        raise _error_response(e) from e
