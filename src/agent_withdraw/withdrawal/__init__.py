"""Withdrawal module for agent (smart) accounts.

This module handles address derivation, building unsigned user operations and
relaying signed user operations to the bundler. It never signs.
"""

from agent_withdraw.withdrawal.base import TransferCall, WithdrawalError
from agent_withdraw.withdrawal.builder import OperationBuilder
from agent_withdraw.withdrawal.kernel import derive_account_index, derive_agent_address
from agent_withdraw.withdrawal.submitter import OperationSubmitter
from agent_withdraw.withdrawal.user_operation import UserOperation

__all__ = [
    "TransferCall",
    "WithdrawalError",
    "OperationBuilder",
    "OperationSubmitter",
    "UserOperation",
    "derive_account_index",
    "derive_agent_address",
]
