"""User operation builder.

Turns one network's call batch into an unsigned ERC-4337 user operation for
the agent account, fills nonce/fee/gas fields from the chain and the bundler,
optionally attaches paymaster sponsorship, and computes the hash that must be
signed off-box.

NO signing happens here.
"""

import logging
from typing import Any, Optional, Sequence

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_bytes

from agent_withdraw.utils.rpc import JsonRpcClient, RpcError
from agent_withdraw.web.contracts.networks import NetworkConfig
from agent_withdraw.web.contracts.withdrawals import UnsignedWithdrawal
from agent_withdraw.withdrawal.base import (
    OperationBuildFailedError,
    SponsorConfig,
    TransferCall,
)
from agent_withdraw.withdrawal.kernel import (
    ECDSA_DUMMY_SIGNATURE,
    ENTRYPOINT_V07_ADDRESS,
    KernelAccount,
)
from agent_withdraw.withdrawal.user_operation import UserOperation, parse_quantity

logger = logging.getLogger(__name__)

GET_NONCE_SELECTOR = function_signature_to_4byte_selector("getNonce(address,uint192)")

# Root validator nonce key
DEFAULT_NONCE_KEY = 0

# maxFeePerGas = baseFee * 1.2 + maxPriorityFeePerGas
BASE_FEE_MULTIPLIER_NUM = 12
BASE_FEE_MULTIPLIER_DEN = 10


class OperationBuilder:
    """Prepares unsigned user operations for Kernel agent accounts.

    Example:
        builder = OperationBuilder(rpc)
        withdrawal = await builder.build(config, agent, index, calls, owner=controller)
        # UnsignedWithdrawal(network=..., user_op={...}, user_op_hash="0x...")
    """

    def __init__(self, rpc: JsonRpcClient, entry_point: str = ENTRYPOINT_V07_ADDRESS):
        self.rpc = rpc
        self.entry_point = entry_point

    async def build(
        self,
        network: NetworkConfig,
        agent_address: str,
        account_index: int,
        calls: Sequence[TransferCall],
        sponsor: Optional[SponsorConfig] = None,
        *,
        owner: str,
    ) -> UnsignedWithdrawal:
        """Build the unsigned user operation for one network.

        Args:
            network: Target network configuration
            agent_address: Derived agent account address
            account_index: Derived account index
            calls: Transfer calls to batch
            sponsor: Paymaster sponsorship, None to pay gas from the account
            owner: Controller address owning the account's root validator

        Returns:
            UnsignedWithdrawal with the serialized operation and its hash

        Raises:
            OperationBuildFailedError: If chain, bundler or paymaster calls fail
        """
        account = KernelAccount.connect(owner, agent_address, account_index)

        try:
            call_data = account.encode_calls(calls)
        except ValueError as e:
            raise OperationBuildFailedError("encode calls", str(e)) from e

        user_op = await self._prepare(network, account, call_data)

        if sponsor is not None:
            user_op = await self._sponsor(network, sponsor, user_op)

        if not user_op.call_gas_limit or not user_op.verification_gas_limit:
            raise OperationBuildFailedError("estimate gas", "no gas limits returned")

        user_op_hash = user_op.hash(network.chain_id, self.entry_point)

        logger.info(
            "Built user operation for %s on %s (calls=%d, sponsored=%s, hash=%s)",
            account.address,
            network.network,
            len(calls),
            sponsor is not None,
            user_op_hash,
        )

        return UnsignedWithdrawal(
            network=network.network,
            user_op=user_op.to_rpc_dict(),
            user_op_hash=user_op_hash,
        )

    async def _prepare(
        self,
        network: NetworkConfig,
        account: KernelAccount,
        call_data: str,
    ) -> UserOperation:
        """Fill nonce, deployment, fee and gas fields."""
        deployed = await self._is_deployed(network, account.address)
        nonce = await self._get_nonce(network, account.address)
        max_fee, max_priority_fee = await self._get_fees(network)

        user_op = UserOperation(
            sender=account.address,
            nonce=nonce,
            call_data=call_data,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=max_priority_fee,
            factory=None if deployed else account.factory,
            factory_data=None if deployed else account.factory_data(),
            signature=ECDSA_DUMMY_SIGNATURE,
        )

        estimate = await self._call(
            "estimate gas",
            network.bundler_url,
            "eth_estimateUserOperationGas",
            [user_op.to_rpc_dict(), self.entry_point],
        )
        return self._merge(user_op, estimate, "estimate gas")

    async def _sponsor(
        self,
        network: NetworkConfig,
        sponsor: SponsorConfig,
        user_op: UserOperation,
    ) -> UserOperation:
        """Request paymaster sponsorship and merge it into the operation."""
        sponsored = await self._call(
            "sponsor user operation",
            sponsor.paymaster_url,
            "zd_sponsorUserOperation",
            [
                {
                    "chainId": network.chain_id,
                    "userOp": user_op.to_rpc_dict(),
                    "entryPointAddress": self.entry_point,
                    "shouldOverrideFee": False,
                    "shouldConsume": True,
                }
            ],
        )
        user_op = self._merge(user_op, sponsored, "sponsor user operation")
        if not user_op.paymaster:
            raise OperationBuildFailedError("sponsor user operation", "paymaster returned no sponsor")
        return user_op

    async def _is_deployed(self, network: NetworkConfig, address: str) -> bool:
        code = await self._call(
            "read account code", network.rpc_url, "eth_getCode", [address, "latest"]
        )
        return bool(code) and code not in ("0x", "0x0")

    async def _get_nonce(self, network: NetworkConfig, address: str) -> int:
        data = GET_NONCE_SELECTOR + encode(
            ["address", "uint192"], [to_bytes(hexstr=address), DEFAULT_NONCE_KEY]
        )
        result = await self._call(
            "read nonce",
            network.rpc_url,
            "eth_call",
            [{"to": self.entry_point, "data": "0x" + data.hex()}, "latest"],
        )
        return self._quantity(result, "read nonce")

    async def _get_fees(self, network: NetworkConfig) -> tuple[int, int]:
        block = await self._call(
            "read fees", network.rpc_url, "eth_getBlockByNumber", ["latest", False]
        )
        priority = await self._call(
            "read fees", network.rpc_url, "eth_maxPriorityFeePerGas", []
        )

        if not isinstance(block, dict):
            raise OperationBuildFailedError("read fees", "latest block unavailable")

        base_fee = self._quantity(block.get("baseFeePerGas"), "read fees")
        max_priority_fee = self._quantity(priority, "read fees")
        max_fee = base_fee * BASE_FEE_MULTIPLIER_NUM // BASE_FEE_MULTIPLIER_DEN + max_priority_fee
        return max_fee, max_priority_fee

    async def _call(self, stage: str, url: str, method: str, params: list) -> Any:
        if not url:
            raise OperationBuildFailedError(stage, f"no endpoint configured for {method}")
        try:
            return await self.rpc.call(url, method, params)
        except RpcError as e:
            raise OperationBuildFailedError(stage, str(e)) from e

    @staticmethod
    def _quantity(value: Any, stage: str) -> int:
        try:
            return parse_quantity(value)
        except ValueError as e:
            raise OperationBuildFailedError(stage, str(e)) from e

    @staticmethod
    def _merge(user_op: UserOperation, values: Any, stage: str) -> UserOperation:
        if not isinstance(values, dict):
            raise OperationBuildFailedError(stage, "empty response")
        try:
            return user_op.merge(values)
        except ValueError as e:
            raise OperationBuildFailedError(stage, str(e)) from e
