"""Kernel v3.3 smart account helpers.

Agent accounts are Kernel smart accounts whose root (sudo) validator is the
ECDSA validator owned by the user's controller address. Their address is
computed counterfactually from owner + index, so it is known before the
account is deployed and no chain call is needed.

Derivation:
    index   = keccak256("vincent_app_id_" || uint40(app_id))
    init    = Kernel.initialize(0x01 || validator, 0x0, owner, "", [])
    salt    = keccak256(init || uint256(index))
    address = CREATE2(factory, salt, keccak256(ERC1967 proxy init code))
"""

from dataclasses import dataclass
from typing import Sequence

from eth_abi import encode
from eth_utils import (
    function_signature_to_4byte_selector,
    keccak,
    to_bytes,
    to_checksum_address,
)

from agent_withdraw.withdrawal.base import TransferCall

# ERC-4337 EntryPoint v0.7
ENTRYPOINT_V07_ADDRESS = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
ENTRYPOINT_VERSION = "0.7"

# Kernel v3.3 deployment
KERNEL_V3_3_IMPLEMENTATION = "0xd6CEDDe84be40893d153Be9d467CD6aD37875b28"
KERNEL_V3_3_FACTORY = "0x2577507b78c2008Ff367261CB6285d44ba5eF2E9"
KERNEL_META_FACTORY = "0xd703aaE79538628d27099B8c4f621bE4CCd142d5"
ECDSA_VALIDATOR_ADDRESS = "0x845ADb2C711129d4f3966735eD98a9F09fC4cE57"

ACCOUNT_INDEX_PREFIX = b"vincent_app_id_"
MAX_APP_ID = 2**40 - 1  # uint40

VALIDATION_TYPE_VALIDATOR = b"\x01"

# ERC-7579 execution modes
CALLTYPE_SINGLE = b"\x00"
CALLTYPE_BATCH = b"\x01"

INITIALIZE_SELECTOR = function_signature_to_4byte_selector(
    "initialize(bytes21,address,bytes,bytes,bytes[])"
)
DEPLOY_WITH_FACTORY_SELECTOR = function_signature_to_4byte_selector(
    "deployWithFactory(address,bytes,bytes32)"
)
EXECUTE_SELECTOR = function_signature_to_4byte_selector("execute(bytes32,bytes)")

# Solady LibClone ERC1967 proxy creation code around the implementation address
_ERC1967_PREFIX = bytes.fromhex("603d3d8160223d3973")
_ERC1967_SUFFIX = bytes.fromhex(
    "60095155f3363d3d373d3d363d7f360894a13ba1a3210667c828492db98dca3e2076"
    "cc3735a920a3ca505d382bbc545af43d6000803e6038573d6000fd5b3d6000f3"
)

# Signature with the shape of an ECDSA signature, used for gas estimation only
ECDSA_DUMMY_SIGNATURE = (
    "0x" + "ff" * 15 + "f0" + "00" * 15 + "07" + "aa" * 32 + "1c"
)


def _address_bytes(address: str) -> bytes:
    raw = to_bytes(hexstr=address)
    if len(raw) != 20:
        raise ValueError(f"Invalid address: {address}")
    return raw


def _hex(data: bytes) -> str:
    return "0x" + data.hex()


def derive_account_index(app_id: int) -> int:
    """Derive the smart account index for an application.

    Args:
        app_id: Application identifier (uint40)

    Returns:
        Account index as a uint256 integer
    """
    if app_id < 0 or app_id > MAX_APP_ID:
        raise ValueError(f"Application id out of range: {app_id}")
    return int.from_bytes(keccak(ACCOUNT_INDEX_PREFIX + app_id.to_bytes(5, "big")), "big")


def erc1967_init_code_hash(implementation: str = KERNEL_V3_3_IMPLEMENTATION) -> bytes:
    """Hash of the ERC1967 proxy init code deployed by the Kernel factory."""
    return keccak(_ERC1967_PREFIX + _address_bytes(implementation) + _ERC1967_SUFFIX)


def create2_address(deployer: str, salt: bytes, init_code_hash: bytes) -> str:
    """Compute a CREATE2 contract address."""
    digest = keccak(b"\xff" + _address_bytes(deployer) + salt + init_code_hash)
    return to_checksum_address(digest[12:])


@dataclass(frozen=True)
class ValidatorContext:
    """Root validator of a Kernel account: an ECDSA validator and its owner.

    This is metadata only; it holds no key material.
    """
    owner: str
    validator_address: str = ECDSA_VALIDATOR_ADDRESS

    @property
    def root_validator(self) -> bytes:
        """bytes21 validation id: type byte followed by the validator address."""
        return VALIDATION_TYPE_VALIDATOR + _address_bytes(self.validator_address)

    @property
    def validator_data(self) -> bytes:
        return _address_bytes(self.owner)


def initialization_data(validator: ValidatorContext) -> bytes:
    """Encode Kernel.initialize(rootValidator, hook, validatorData, hookData, initConfig)."""
    return INITIALIZE_SELECTOR + encode(
        ["bytes21", "address", "bytes", "bytes", "bytes[]"],
        [
            validator.root_validator,
            b"\x00" * 20,
            validator.validator_data,
            b"",
            [],
        ],
    )


def account_salt(validator: ValidatorContext, index: int) -> bytes:
    return keccak(initialization_data(validator) + index.to_bytes(32, "big"))


def derive_agent_address(controlling_address: str, app_id: int) -> str:
    """Derive the agent smart account address for a controller and application.

    Pure and deterministic: the same inputs always give the same address and
    no network access happens.

    Args:
        controlling_address: EOA that owns the agent account
        app_id: Application identifier

    Returns:
        Checksummed counterfactual account address
    """
    validator = ValidatorContext(owner=controlling_address)
    index = derive_account_index(app_id)
    return create2_address(
        KERNEL_V3_3_FACTORY,
        account_salt(validator, index),
        erc1967_init_code_hash(),
    )


def encode_calls(calls: Sequence[TransferCall]) -> str:
    """Encode calls into Kernel execute(bytes32 mode, bytes executionCalldata).

    One call uses single mode with packed (to, value, data); several calls use
    batch mode with ABI-encoded (address,uint256,bytes)[].
    """
    if not calls:
        raise ValueError("At least one call is required")

    if len(calls) == 1:
        call = calls[0]
        mode = CALLTYPE_SINGLE.ljust(32, b"\x00")
        execution = (
            _address_bytes(call.to)
            + call.value.to_bytes(32, "big")
            + to_bytes(hexstr=call.data)
        )
    else:
        mode = CALLTYPE_BATCH.ljust(32, b"\x00")
        execution = encode(
            ["(address,uint256,bytes)[]"],
            [[(_address_bytes(c.to), c.value, to_bytes(hexstr=c.data)) for c in calls]],
        )

    return _hex(EXECUTE_SELECTOR + encode(["bytes32", "bytes"], [mode, execution]))


@dataclass(frozen=True)
class KernelAccount:
    """Handle on a (possibly undeployed) Kernel agent account."""
    address: str
    index: int
    validator: ValidatorContext

    @classmethod
    def connect(cls, owner: str, address: str, index: int) -> "KernelAccount":
        return cls(address=to_checksum_address(address), index=index, validator=ValidatorContext(owner))

    @property
    def factory(self) -> str:
        return KERNEL_META_FACTORY

    def factory_data(self) -> str:
        """Calldata deploying this account through the meta factory."""
        return _hex(
            DEPLOY_WITH_FACTORY_SELECTOR
            + encode(
                ["address", "bytes", "bytes32"],
                [
                    _address_bytes(KERNEL_V3_3_FACTORY),
                    initialization_data(self.validator),
                    self.index.to_bytes(32, "big"),
                ],
            )
        )

    def encode_calls(self, calls: Sequence[TransferCall]) -> str:
        return encode_calls(calls)
