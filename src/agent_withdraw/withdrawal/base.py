"""Base types and errors for agent account withdrawals.

Withdrawal flow:
1. Caller requests a withdrawal (controller address, app id, assets)
2. Agent account address is derived counterfactually
3. Balances are validated against a fresh snapshot
4. Transfers are batched into one user operation per network
5. Unsigned operations and their hashes are returned for signing
6. Signed operations are submitted to the bundler
7. Receipts are polled until inclusion
"""

from dataclasses import dataclass
from typing import Iterator, Optional

# Token address used to mean "native coin of the network"
NATIVE_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_native_token(token_address: str) -> bool:
    """Check whether a token address is the native coin sentinel."""
    return token_address.lower() == NATIVE_TOKEN_ADDRESS


class WithdrawalError(Exception):
    """Base exception for withdrawal processing."""

    kind = "WithdrawalError"


class UnsupportedNetworkError(WithdrawalError):
    """Raised when a network identifier is not configured."""

    kind = "UnsupportedNetwork"

    def __init__(self, network: str):
        self.network = network
        super().__init__(f"Unsupported network: {network}")


class BalanceOracleUnavailableError(WithdrawalError):
    """Raised when the token balance indexer cannot be queried."""

    kind = "BalanceOracleUnavailable"


class TokenNotFoundError(WithdrawalError):
    """Raised when a requested token is absent from the balance snapshot."""

    kind = "TokenNotFound"

    def __init__(self, token_address: str, network: str):
        self.token_address = token_address
        self.network = network
        super().__init__(
            f"Token {token_address} not found in agent balance on network {network}"
        )


class InsufficientBalanceError(WithdrawalError):
    """Raised when the agent holds less than the requested amount."""

    kind = "InsufficientBalance"

    def __init__(self, symbol: str, network: str, requested: str, available: str):
        self.symbol = symbol
        self.network = network
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient balance for {symbol} on {network}: "
            f"requested {requested}, available {available}"
        )


class OperationBuildFailedError(WithdrawalError):
    """Raised when a user operation cannot be prepared."""

    kind = "OperationBuildFailed"

    def __init__(self, stage: str, reason: str):
        self.stage = stage
        self.reason = reason
        super().__init__(f"Failed to {stage}: {reason}")


class OperationNotConfirmedError(WithdrawalError):
    """Raised when no receipt shows up within the polling budget."""

    kind = "OperationNotConfirmed"

    def __init__(self, user_op_hash: str, waited_seconds: float):
        self.user_op_hash = user_op_hash
        self.waited_seconds = waited_seconds
        super().__init__(
            f"User operation {user_op_hash} not confirmed after {waited_seconds:g}s"
        )


class NoSupportedNetworksError(WithdrawalError):
    """Raised when none of the requested networks is supported."""

    kind = "NoSupportedNetworks"

    def __init__(self, supported: list[str]):
        self.supported = supported
        super().__init__(
            f"No supported networks in request. Supported: {', '.join(supported)}"
        )


class AllNetworksFailedError(WithdrawalError):
    """Raised when every network of a withdrawal request failed."""

    kind = "AllNetworksFailed"

    def __init__(self, errors: list):
        self.errors = errors
        details = "; ".join(f"{e.network}: {e.error}" for e in errors)
        super().__init__(f"All withdrawal requests failed: {details}")


class AllWithdrawalsFailedError(WithdrawalError):
    """Raised when every signed withdrawal failed to complete."""

    kind = "AllWithdrawalsFailed"

    def __init__(self, errors: list):
        self.errors = errors
        details = "; ".join(f"{e.network}: {e.error}" for e in errors)
        super().__init__(f"All withdrawals failed: {details}")


@dataclass(frozen=True)
class TransferCall:
    """A single call executed by the agent account."""
    to: str
    value: int
    data: str = "0x"


@dataclass(frozen=True)
class SponsorConfig:
    """Gas sponsorship through a paymaster endpoint."""
    paymaster_url: str


@dataclass(frozen=True)
class TokenHolding:
    """Balance of one token held by the agent account."""
    network: str
    token_address: str
    raw_balance: int
    decimals: int
    symbol: str
    name: Optional[str] = None


class BalanceSnapshot:
    """Point-in-time balances keyed by (network, token address).

    Built fresh for every request; never cached. Networks the indexer could
    not read are kept in failed_networks with the indexer's error.
    """

    def __init__(
        self,
        holdings: Optional[list[TokenHolding]] = None,
        failed_networks: Optional[dict[str, str]] = None,
    ):
        self._holdings: dict[tuple[str, str], TokenHolding] = {}
        for holding in holdings or []:
            self._holdings[(holding.network, holding.token_address.lower())] = holding
        self.failed_networks = dict(failed_networks or {})

    def network_error(self, network: str) -> Optional[str]:
        return self.failed_networks.get(network)

    def get(self, network: str, token_address: str) -> Optional[TokenHolding]:
        return self._holdings.get((network, token_address.lower()))

    def __iter__(self) -> Iterator[TokenHolding]:
        return iter(self._holdings.values())

    def __len__(self) -> int:
        return len(self._holdings)

    def __contains__(self, key: tuple[str, str]) -> bool:
        network, token_address = key
        return (network, token_address.lower()) in self._holdings
