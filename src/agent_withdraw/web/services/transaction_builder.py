"""Transfer batcher for agent account withdrawals.

Turns the requested assets of ONE network into an ordered list of calls for
the agent account to execute. NO signing or broadcasting happens here.
"""

import logging

from agent_withdraw.utils.amounts import format_amount, to_human_amount, to_raw_amount
from agent_withdraw.web.contracts.withdrawals import Asset
from agent_withdraw.withdrawal.base import (
    BalanceSnapshot,
    InsufficientBalanceError,
    TokenNotFoundError,
    TransferCall,
    WithdrawalError,
    is_native_token,
)

logger = logging.getLogger(__name__)


# ERC-20 ABI fragment
ERC20_TRANSFER_SELECTOR = "0xa9059cbb"  # transfer(address,uint256)


def encode_erc20_transfer(to_address: str, amount: int) -> str:
    """Encode transfer(address to, uint256 amount) calldata."""
    to_padded = to_address.lower().replace("0x", "").zfill(64)
    amount_hex = hex(amount)[2:].zfill(64)
    return f"{ERC20_TRANSFER_SELECTOR}{to_padded}{amount_hex}"


class TransferBatcher:
    """Builds the call batch for one network's withdrawal.

    The batch is all-or-nothing: one invalid asset fails the whole network.
    Call order follows asset order so the operation hash is reproducible.
    """

    def build_calls(
        self,
        assets: list[Asset],
        recipient: str,
        balances: BalanceSnapshot,
    ) -> list[TransferCall]:
        """Validate assets against balances and build transfer calls.

        Args:
            assets: Assets of a single network, in request order
            recipient: Address receiving the funds
            balances: Balance snapshot of the agent account

        Returns:
            One TransferCall per asset

        Raises:
            TokenNotFoundError: If a token is absent from the snapshot
            InsufficientBalanceError: If a balance is too low
            WithdrawalError: If the batch is empty or an amount is invalid
        """
        if not assets:
            raise WithdrawalError("No valid transfers for this network")

        calls = []
        for asset in assets:
            holding = balances.get(asset.network, asset.token_address)
            if holding is None:
                raise TokenNotFoundError(asset.token_address, asset.network)

            try:
                raw_amount = to_raw_amount(asset.amount, holding.decimals)
            except ValueError as e:
                raise WithdrawalError(f"Invalid amount for {holding.symbol} on {asset.network}: {e}") from e

            if holding.raw_balance < raw_amount:
                raise InsufficientBalanceError(
                    symbol=holding.symbol,
                    network=asset.network,
                    requested=format_amount(asset.amount),
                    available=format_amount(to_human_amount(holding.raw_balance, holding.decimals)),
                )

            if is_native_token(asset.token_address):
                # Native transfer - value only, no contract call
                calls.append(TransferCall(to=recipient, value=raw_amount, data="0x"))
            else:
                calls.append(
                    TransferCall(
                        to=asset.token_address,
                        value=0,
                        data=encode_erc20_transfer(recipient, raw_amount),
                    )
                )

        logger.debug("Built %d transfer calls for %s", len(calls), assets[0].network)
        return calls
