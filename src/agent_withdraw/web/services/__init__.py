"""Web services for agent account withdrawals.

SECURITY: These services MUST NOT:
- Access private keys or seed phrases
- Sign user operations

These services CAN:
- Query blockchain state (balances, nonces, gas)
- Prepare unsigned user operations for off-box signing
- Relay user operations that were signed by their owner
"""

from agent_withdraw.web.services.balance_service import BalanceService
from agent_withdraw.web.services.chain_service import NetworkRegistry
from agent_withdraw.web.services.transaction_builder import TransferBatcher
from agent_withdraw.web.services.withdrawal_service import WithdrawalService

__all__ = [
    "BalanceService",
    "NetworkRegistry",
    "TransferBatcher",
    "WithdrawalService",
]
