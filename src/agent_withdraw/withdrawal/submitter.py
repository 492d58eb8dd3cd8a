"""User operation submitter.

Attaches the caller-supplied signature, sends the operation to the network's
bundler and waits for its receipt with a bounded number of polls. Nothing
keeps running after the wait gives up; the caller must resubmit to retry.
"""

import asyncio
import logging
from typing import Any, Optional

from agent_withdraw.utils.rpc import JsonRpcClient, RpcError
from agent_withdraw.web.contracts.networks import NetworkConfig
from agent_withdraw.web.contracts.withdrawals import SignedWithdrawal, WithdrawalResult
from agent_withdraw.withdrawal.base import (
    OperationNotConfirmedError,
    WithdrawalError,
)
from agent_withdraw.withdrawal.kernel import ENTRYPOINT_V07_ADDRESS
from agent_withdraw.withdrawal.user_operation import UserOperation

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_POLL_ATTEMPTS = 5


def _is_receipt_pending(error: RpcError) -> bool:
    """Bundlers report a not-yet-included operation as a "not found" error."""
    return "not found" in str(error).lower()


class OperationSubmitter:
    """Submits signed user operations and waits for inclusion."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        poll_attempts: int = DEFAULT_POLL_ATTEMPTS,
        entry_point: str = ENTRYPOINT_V07_ADDRESS,
    ):
        """Initialize submitter.

        Args:
            rpc: Shared JSON-RPC client
            poll_interval: Seconds between receipt polls
            poll_attempts: Maximum number of receipt polls
            entry_point: EntryPoint contract address
        """
        if poll_attempts < 1:
            raise ValueError("poll_attempts must be at least 1")
        self.rpc = rpc
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.entry_point = entry_point

    async def submit(self, network: NetworkConfig, withdrawal: SignedWithdrawal) -> WithdrawalResult:
        """Submit one signed withdrawal and wait for its receipt.

        Args:
            network: Network the operation was built for
            withdrawal: Signed user operation for that network

        Returns:
            WithdrawalResult with the on-chain transaction hash

        Raises:
            OperationNotConfirmedError: If no receipt appears within the budget
            WithdrawalError: If the bundler rejects the operation
        """
        try:
            user_op = UserOperation.from_rpc_dict(withdrawal.user_op)
        except ValueError as e:
            raise WithdrawalError(f"Invalid user operation: {e}") from e
        user_op = user_op.with_signature(withdrawal.signature)

        if not network.bundler_url:
            raise WithdrawalError(f"No bundler endpoint configured for {network.network}")

        try:
            user_op_hash = await self.rpc.call(
                network.bundler_url,
                "eth_sendUserOperation",
                [user_op.to_rpc_dict(), self.entry_point],
            )
        except RpcError as e:
            raise WithdrawalError(f"Bundler rejected user operation: {e}") from e

        if not isinstance(user_op_hash, str):
            raise WithdrawalError("Bundler returned no user operation hash")

        if withdrawal.user_op_hash and withdrawal.user_op_hash.lower() != user_op_hash.lower():
            logger.warning(
                "Bundler hash %s differs from requested hash %s on %s",
                user_op_hash,
                withdrawal.user_op_hash,
                network.network,
            )

        logger.info("Submitted user operation %s on %s", user_op_hash, network.network)

        receipt = await self.wait_for_receipt(network.bundler_url, user_op_hash)

        if receipt.get("success") is False:
            raise WithdrawalError(
                f"User operation {user_op_hash} reverted: {receipt.get('reason') or 'no reason given'}"
            )

        transaction_hash = (receipt.get("receipt") or {}).get("transactionHash")
        if not transaction_hash:
            raise WithdrawalError(f"Receipt for {user_op_hash} has no transaction hash")

        logger.info(
            "User operation %s included in %s on %s",
            user_op_hash,
            transaction_hash,
            network.network,
        )

        return WithdrawalResult(
            network=network.network,
            transaction_hash=transaction_hash,
            user_op_hash=user_op_hash,
        )

    async def wait_for_receipt(self, bundler_url: str, user_op_hash: str) -> dict[str, Any]:
        """Poll for a user operation receipt.

        Polls exactly poll_attempts times, sleeping poll_interval between polls.

        Raises:
            OperationNotConfirmedError: When the attempts run out
            WithdrawalError: On any non-retryable bundler error
        """
        for attempt in range(1, self.poll_attempts + 1):
            receipt = await self._get_receipt(bundler_url, user_op_hash)
            if receipt is not None:
                return receipt

            logger.debug(
                "Receipt for %s not available (attempt %d/%d)",
                user_op_hash,
                attempt,
                self.poll_attempts,
            )
            if attempt < self.poll_attempts:
                await asyncio.sleep(self.poll_interval)

        raise OperationNotConfirmedError(
            user_op_hash, self.poll_interval * (self.poll_attempts - 1)
        )

    async def _get_receipt(self, bundler_url: str, user_op_hash: str) -> Optional[dict[str, Any]]:
        try:
            receipt = await self.rpc.call(
                bundler_url, "eth_getUserOperationReceipt", [user_op_hash]
            )
        except RpcError as e:
            if _is_receipt_pending(e):
                return None
            raise WithdrawalError(f"Failed to fetch receipt for {user_op_hash}: {e}") from e

        return receipt if isinstance(receipt, dict) else None
