"""Request and response contracts for the web layer.

These Pydantic models define the API interface for web clients.
Field names are camelCase on the wire.
"""

from agent_withdraw.web.contracts.balances import (
    AgentFundsRequest,
    AgentFundsResponse,
    TokenBalance,
)
from agent_withdraw.web.contracts.networks import (
    NetworkConfig,
    NetworkListResponse,
    NetworkSummary,
)
from agent_withdraw.web.contracts.withdrawals import (
    Asset,
    CompleteWithdrawRequest,
    CompleteWithdrawResult,
    ErrorEntry,
    RequestWithdrawRequest,
    RequestWithdrawResult,
    SignedWithdrawal,
    UnsignedWithdrawal,
    WithdrawalResult,
)

__all__ = [
    # Balance contracts
    "AgentFundsRequest",
    "AgentFundsResponse",
    "TokenBalance",
    # Network contracts
    "NetworkConfig",
    "NetworkListResponse",
    "NetworkSummary",
    # Withdrawal contracts
    "Asset",
    "CompleteWithdrawRequest",
    "CompleteWithdrawResult",
    "ErrorEntry",
    "RequestWithdrawRequest",
    "RequestWithdrawResult",
    "SignedWithdrawal",
    "UnsignedWithdrawal",
    "WithdrawalResult",
]
