"""ERC-4337 v0.7 UserOperation model, serialization and hashing."""

from dataclasses import dataclass, fields, replace
from typing import Any, Optional

from eth_abi import encode
from eth_utils import keccak, to_bytes

from agent_withdraw.withdrawal.kernel import ENTRYPOINT_V07_ADDRESS

# Python attribute -> JSON-RPC field name
_RPC_NAMES = {
    "sender": "sender",
    "nonce": "nonce",
    "factory": "factory",
    "factory_data": "factoryData",
    "call_data": "callData",
    "call_gas_limit": "callGasLimit",
    "verification_gas_limit": "verificationGasLimit",
    "pre_verification_gas": "preVerificationGas",
    "max_fee_per_gas": "maxFeePerGas",
    "max_priority_fee_per_gas": "maxPriorityFeePerGas",
    "paymaster": "paymaster",
    "paymaster_verification_gas_limit": "paymasterVerificationGasLimit",
    "paymaster_post_op_gas_limit": "paymasterPostOpGasLimit",
    "paymaster_data": "paymasterData",
    "signature": "signature",
}

_INT_FIELDS = {
    "nonce",
    "call_gas_limit",
    "verification_gas_limit",
    "pre_verification_gas",
    "max_fee_per_gas",
    "max_priority_fee_per_gas",
    "paymaster_verification_gas_limit",
    "paymaster_post_op_gas_limit",
}


def parse_quantity(value: Any) -> int:
    """Parse a JSON-RPC quantity (hex string or integer)."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid quantity: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith(("0x", "0X")) else int(value)
    raise ValueError(f"Invalid quantity: {value!r}")


def _uint128_pair(high: int, low: int) -> bytes:
    return high.to_bytes(16, "big") + low.to_bytes(16, "big")


@dataclass(frozen=True)
class UserOperation:
    """ERC-4337 v0.7 user operation.

    Integer values are raw units (wei / gas units); they are hex-encoded only
    when serialized.
    """
    sender: str
    nonce: int
    call_data: str
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    factory: Optional[str] = None
    factory_data: Optional[str] = None
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: Optional[int] = None
    paymaster_post_op_gas_limit: Optional[int] = None
    paymaster_data: Optional[str] = None
    signature: str = "0x"

    @property
    def init_code(self) -> bytes:
        if not self.factory:
            return b""
        return to_bytes(hexstr=self.factory) + to_bytes(hexstr=self.factory_data or "0x")

    @property
    def paymaster_and_data(self) -> bytes:
        if not self.paymaster:
            return b""
        return (
            to_bytes(hexstr=self.paymaster)
            + (self.paymaster_verification_gas_limit or 0).to_bytes(16, "big")
            + (self.paymaster_post_op_gas_limit or 0).to_bytes(16, "big")
            + to_bytes(hexstr=self.paymaster_data or "0x")
        )

    def pack(self) -> bytes:
        """ABI-encode the fields covered by the operation hash (signature excluded)."""
        return encode(
            ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
            [
                to_bytes(hexstr=self.sender),
                self.nonce,
                keccak(self.init_code),
                keccak(to_bytes(hexstr=self.call_data)),
                _uint128_pair(self.verification_gas_limit, self.call_gas_limit),
                self.pre_verification_gas,
                _uint128_pair(self.max_priority_fee_per_gas, self.max_fee_per_gas),
                keccak(self.paymaster_and_data),
            ],
        )

    def hash(self, chain_id: int, entry_point: str = ENTRYPOINT_V07_ADDRESS) -> str:
        """Canonical EntryPoint v0.7 user operation hash.

        Args:
            chain_id: EVM chain ID of the target network
            entry_point: EntryPoint contract address

        Returns:
            0x-prefixed 32-byte hash that the owner must sign
        """
        digest = keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [keccak(self.pack()), to_bytes(hexstr=entry_point), chain_id],
            )
        )
        return "0x" + digest.hex()

    def with_signature(self, signature: str) -> "UserOperation":
        return replace(self, signature=signature)

    def merge(self, values: dict[str, Any]) -> "UserOperation":
        """Return a copy updated from JSON-RPC style fields (unknown keys ignored)."""
        updates = {}
        for attr, rpc_name in _RPC_NAMES.items():
            if rpc_name in values and values[rpc_name] is not None:
                value = values[rpc_name]
                updates[attr] = parse_quantity(value) if attr in _INT_FIELDS else value
        return replace(self, **updates)

    def to_rpc_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict: integers as hex strings, None fields omitted."""
        serialized = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            serialized[_RPC_NAMES[f.name]] = hex(value) if f.name in _INT_FIELDS else value
        return serialized

    @classmethod
    def from_rpc_dict(cls, data: dict[str, Any]) -> "UserOperation":
        """Parse a serialized operation.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        missing = [name for name in ("sender", "nonce", "callData") if name not in data]
        if missing:
            raise ValueError(f"User operation missing fields: {', '.join(missing)}")

        base = cls(
            sender=data["sender"],
            nonce=parse_quantity(data["nonce"]),
            call_data=data["callData"],
        )
        return base.merge(data)
