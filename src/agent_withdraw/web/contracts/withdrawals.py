"""Withdrawal contracts for agent accounts.

Request phase returns UNSIGNED user operations and the hash to sign.
Completion phase accepts the signed operations back. The backend NEVER signs.
"""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"
HEX_PATTERN = r"^0x[a-fA-F0-9]*$"


class Asset(BaseModel):
    """One asset to withdraw."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    network: str = Field(..., description="Network identifier (e.g. base-mainnet)")
    token_address: str = Field(
        ...,
        alias="tokenAddress",
        pattern=ADDRESS_PATTERN,
        description="ERC-20 contract address, zero address for the native coin",
    )
    amount: Decimal = Field(..., gt=0, description="Amount in human-readable units")

    @field_validator("network")
    @classmethod
    def normalize_network(cls, value: str) -> str:
        return value.strip().lower()


class RequestWithdrawRequest(BaseModel):
    """Request to prepare withdrawals from an agent account."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    user_controller_address: str = Field(
        ...,
        alias="userControllerAddress",
        pattern=ADDRESS_PATTERN,
        description="EOA controlling the user's wallet; also the withdrawal recipient",
    )
    assets: list[Asset] = Field(
        ...,
        min_length=1,
        description="Assets to withdraw; assets on the same network share one user operation",
    )


class ErrorEntry(BaseModel):
    """Failure of one network or one withdrawal."""

    network: str = Field(..., description="Network where the error occurred")
    error: str = Field(..., description="Error message")


class UnsignedWithdrawal(BaseModel):
    """Unsigned user operation for one network."""

    model_config = ConfigDict(populate_by_name=True)

    network: str = Field(..., description="Network identifier")
    user_op: dict[str, Any] = Field(
        ..., alias="userOp", description="User operation with hex-encoded integer fields"
    )
    user_op_hash: str = Field(..., alias="userOpHash", description="Hash the owner must sign")


class RequestWithdrawResult(BaseModel):
    """Result of the request phase."""

    withdrawals: list[UnsignedWithdrawal] = Field(default_factory=list)
    errors: Optional[list[ErrorEntry]] = Field(
        None, description="Networks that failed to prepare"
    )


class SignedWithdrawal(UnsignedWithdrawal):
    """User operation returned by the request phase plus the owner's signature."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    user_op_hash: Optional[str] = Field(None, alias="userOpHash")
    signature: str = Field(
        ..., min_length=4, pattern=HEX_PATTERN, description="Owner signature of userOpHash"
    )


class CompleteWithdrawRequest(BaseModel):
    """Signed withdrawals to submit to the bundler."""

    model_config = ConfigDict(extra="forbid")

    withdrawals: list[SignedWithdrawal] = Field(..., min_length=1)


class WithdrawalResult(BaseModel):
    """Confirmed withdrawal on one network."""

    model_config = ConfigDict(populate_by_name=True)

    network: str = Field(..., description="Network identifier")
    transaction_hash: str = Field(..., alias="transactionHash")
    user_op_hash: str = Field(..., alias="userOpHash")


class CompleteWithdrawResult(BaseModel):
    """Result of the completion phase."""

    transactions: list[WithdrawalResult] = Field(default_factory=list)
    errors: Optional[list[ErrorEntry]] = Field(
        None, description="Withdrawals that failed to complete"
    )
