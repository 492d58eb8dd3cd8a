"""Withdrawal service for agent accounts.

Two-phase, non-custodial flow:
- request_withdraw returns UNSIGNED user operations and the hashes to sign
- complete_withdraw submits operations signed by the owner off-box

SECURITY: This service does NOT:
- Access private keys
- Sign user operations

It ONLY:
- Derives the agent account address
- Validates requested amounts against live balances
- Builds unsigned user operations
- Relays signed user operations to the bundler
"""

import asyncio
import logging
from typing import Optional, Union

from agent_withdraw.web.contracts.balances import AgentFundsResponse
from agent_withdraw.web.contracts.withdrawals import (
    Asset,
    CompleteWithdrawResult,
    ErrorEntry,
    RequestWithdrawResult,
    SignedWithdrawal,
    UnsignedWithdrawal,
    WithdrawalResult,
)
from agent_withdraw.web.services.balance_service import BalanceService
from agent_withdraw.web.services.chain_service import NetworkRegistry
from agent_withdraw.web.services.transaction_builder import TransferBatcher
from agent_withdraw.withdrawal.base import (
    AllNetworksFailedError,
    AllWithdrawalsFailedError,
    BalanceOracleUnavailableError,
    BalanceSnapshot,
    NoSupportedNetworksError,
    OperationBuildFailedError,
    SponsorConfig,
    UnsupportedNetworkError,
    WithdrawalError,
)
from agent_withdraw.withdrawal.builder import OperationBuilder
from agent_withdraw.withdrawal.kernel import derive_account_index, derive_agent_address
from agent_withdraw.withdrawal.submitter import OperationSubmitter

logger = logging.getLogger(__name__)

# Outcome of one network's request pipeline
NetworkOutcome = Union[UnsignedWithdrawal, ErrorEntry]


def group_by_network(assets: list[Asset]) -> dict[str, list[Asset]]:
    """Group assets by network, keeping first-seen network order."""
    grouped: dict[str, list[Asset]] = {}
    for asset in assets:
        grouped.setdefault(asset.network, []).append(asset)
    return grouped


class WithdrawalService:
    """Orchestrates both withdrawal phases across networks.

    Networks are independent: one network failing never aborts the others.
    Only a request where EVERY network failed raises.
    """

    def __init__(
        self,
        registry: NetworkRegistry,
        balances: BalanceService,
        builder: OperationBuilder,
        submitter: OperationSubmitter,
        batcher: Optional[TransferBatcher] = None,
        sponsor_gas: bool = False,
        paymaster_url: Optional[str] = None,
    ):
        """Initialize service.

        Args:
            registry: Supported networks
            balances: Balance oracle
            builder: User operation builder
            submitter: User operation submitter
            batcher: Transfer batcher
            sponsor_gas: Attach paymaster sponsorship to built operations
            paymaster_url: Paymaster base URL, the network's bundler URL when unset
        """
        self.registry = registry
        self.balances = balances
        self.builder = builder
        self.submitter = submitter
        self.batcher = batcher or TransferBatcher()
        self.sponsor_gas = sponsor_gas
        self.paymaster_url = paymaster_url.rstrip("/") if paymaster_url else None

    def sponsor_for(self, network: str) -> Optional[SponsorConfig]:
        """Sponsorship settings for a network, None when gas is not sponsored."""
        if not self.sponsor_gas:
            return None
        config = self.registry.resolve(network)
        if self.paymaster_url:
            return SponsorConfig(paymaster_url=f"{self.paymaster_url}/chain/{config.chain_id}")
        return SponsorConfig(paymaster_url=config.bundler_url)

    # ======================
    # Request phase
    # ======================

    async def request_withdraw(
        self,
        controller: str,
        app_id: int,
        assets: list[Asset],
    ) -> RequestWithdrawResult:
        """Prepare one unsigned user operation per requested network.

        Args:
            controller: Controller address; owner of the agent account and recipient
            app_id: Application id the agent account belongs to
            assets: Assets to withdraw

        Returns:
            RequestWithdrawResult with unsigned withdrawals and per-network errors

        Raises:
            NoSupportedNetworksError: If no requested network is supported
            AllNetworksFailedError: If no network produced a withdrawal
        """
        grouped = group_by_network(assets)
        supported = [n for n in grouped if self.registry.is_supported(n)]

        logger.info(
            "Withdrawal requested for app %s by %s on %s",
            app_id,
            controller,
            ", ".join(grouped),
        )

        if not supported:
            raise NoSupportedNetworksError(self.registry.networks)

        for network in supported:
            if not self.registry.resolve(network).bundler_url:
                raise OperationBuildFailedError(
                    "prepare withdrawal", "bundler endpoint is not configured"
                )

        agent_address, account_index = self._derive_account(controller, app_id)

        snapshot: Optional[BalanceSnapshot] = None
        snapshot_error: Optional[WithdrawalError] = None
        try:
            snapshot = await self.balances.fetch_balances(agent_address, supported)
        except WithdrawalError as e:
            logger.warning("Balance snapshot unavailable for %s: %s", agent_address, e)
            snapshot_error = e

        outcomes = await asyncio.gather(
            *(
                self._prepare_network(
                    network,
                    network_assets,
                    controller,
                    agent_address,
                    account_index,
                    snapshot,
                    snapshot_error,
                )
                for network, network_assets in grouped.items()
            )
        )

        withdrawals = [o for o in outcomes if isinstance(o, UnsignedWithdrawal)]
        errors = [o for o in outcomes if isinstance(o, ErrorEntry)]

        if not withdrawals:
            raise AllNetworksFailedError(errors)

        logger.info(
            "Prepared %d withdrawal(s) for %s (%d network(s) failed)",
            len(withdrawals),
            agent_address,
            len(errors),
        )

        return RequestWithdrawResult(withdrawals=withdrawals, errors=errors or None)

    async def _prepare_network(
        self,
        network: str,
        assets: list[Asset],
        controller: str,
        agent_address: str,
        account_index: int,
        snapshot: Optional[BalanceSnapshot],
        snapshot_error: Optional[WithdrawalError],
    ) -> NetworkOutcome:
        """Run one network's pipeline; every failure becomes an ErrorEntry."""
        try:
            config = self.registry.resolve(network)
            if snapshot is None:
                return ErrorEntry(
                    network=network,
                    error=str(snapshot_error or "Balance snapshot unavailable"),
                )
            oracle_error = snapshot.network_error(network)
            if oracle_error is not None:
                raise BalanceOracleUnavailableError(
                    f"Balance oracle failed on {network}: {oracle_error}"
                )

            calls = self.batcher.build_calls(assets, controller, snapshot)
            return await self.builder.build(
                config,
                agent_address,
                account_index,
                calls,
                self.sponsor_for(network),
                owner=controller,
            )
        except UnsupportedNetworkError as e:
            return ErrorEntry(network=network, error=str(e))
        except WithdrawalError as e:
            logger.warning("Withdrawal preparation failed on %s: %s", network, e)
            return ErrorEntry(network=network, error=str(e))
        except Exception as e:
            logger.exception("Unexpected error preparing withdrawal on %s", network)
            return ErrorEntry(network=network, error=str(e) or type(e).__name__)

    # ======================
    # Completion phase
    # ======================

    async def complete_withdraw(
        self,
        withdrawals: list[SignedWithdrawal],
    ) -> CompleteWithdrawResult:
        """Submit signed user operations one at a time, in input order.

        Args:
            withdrawals: Signed withdrawals from the request phase

        Returns:
            CompleteWithdrawResult with confirmed transactions and errors

        Raises:
            AllWithdrawalsFailedError: If no withdrawal was confirmed
        """
        transactions: list[WithdrawalResult] = []
        errors: list[ErrorEntry] = []

        logger.info("Completing %d withdrawal(s)", len(withdrawals))

        # Serial on purpose: submissions share bundler rate limits
        for withdrawal in withdrawals:
            try:
                network = self.registry.resolve(withdrawal.network)
                transactions.append(await self.submitter.submit(network, withdrawal))
            except WithdrawalError as e:
                logger.warning("Withdrawal on %s failed: %s", withdrawal.network, e)
                errors.append(ErrorEntry(network=withdrawal.network, error=str(e)))
            except Exception as e:
                logger.exception("Unexpected error completing withdrawal on %s", withdrawal.network)
                errors.append(
                    ErrorEntry(network=withdrawal.network, error=str(e) or type(e).__name__)
                )

        if not transactions:
            raise AllWithdrawalsFailedError(errors)

        return CompleteWithdrawResult(transactions=transactions, errors=errors or None)

    # ======================
    # Agent funds
    # ======================

    async def get_agent_funds(
        self,
        controller: str,
        app_id: int,
        networks: list[str],
    ) -> AgentFundsResponse:
        """Get the agent account address and its token balances.

        Unsupported networks are ignored.

        Raises:
            NoSupportedNetworksError: If none of the networks is supported
            BalanceOracleUnavailableError: If the balance oracle fails
        """
        supported = [n for n in networks if self.registry.is_supported(n)]
        if not supported:
            raise NoSupportedNetworksError(self.registry.networks)

        agent_address, _ = self._derive_account(controller, app_id)
        tokens = await self.balances.fetch_token_balances(agent_address, supported)
        return AgentFundsResponse(agent_address=agent_address, tokens=tokens)

    @staticmethod
    def _derive_account(controller: str, app_id: int) -> tuple[str, int]:
        try:
            return derive_agent_address(controller, app_id), derive_account_index(app_id)
        except ValueError as e:
            raise WithdrawalError(f"Cannot derive agent account: {e}") from e
