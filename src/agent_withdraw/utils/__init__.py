"""Utility modules for agent_withdraw."""

from agent_withdraw.utils.amounts import format_amount, to_human_amount, to_raw_amount
from agent_withdraw.utils.rpc import JsonRpcClient, RpcError

__all__ = [
    "JsonRpcClient",
    "RpcError",
    "format_amount",
    "to_human_amount",
    "to_raw_amount",
]
