"""Balance service for agent accounts.

Fetches token and native balances from the Alchemy Portfolio API
("tokens by address"). One upstream query per request covers every requested
network; results are normalized into a BalanceSnapshot.

SECURITY: This service:
- Only queries public blockchain data
- Never accesses private keys
- Never signs transactions
"""

import logging
from typing import Any, Optional

import httpx

from agent_withdraw.utils.amounts import to_human_amount
from agent_withdraw.web.contracts.balances import TokenBalance
from agent_withdraw.web.services.chain_service import KNOWN_NETWORKS
from agent_withdraw.withdrawal.base import (
    NATIVE_TOKEN_ADDRESS,
    BalanceOracleUnavailableError,
    BalanceSnapshot,
    TokenHolding,
)
from agent_withdraw.withdrawal.user_operation import parse_quantity

logger = logging.getLogger(__name__)

NATIVE_DECIMALS = 18

# Safety cap on pageKey pagination
MAX_PAGES = 20


class BalanceService:
    """Balance oracle backed by the Alchemy Portfolio API."""

    def __init__(self, http: httpx.AsyncClient, api_key: str, base_url: str):
        """Initialize service.

        Args:
            http: Shared HTTP client
            api_key: Alchemy API key
            base_url: Portfolio API base URL
        """
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/{self._api_key}/assets/tokens/by-address"

    async def fetch_balances(self, address: str, networks: list[str]) -> BalanceSnapshot:
        """Fetch a balance snapshot for an address across networks.

        Args:
            address: Wallet address to query
            networks: Network identifiers

        Returns:
            BalanceSnapshot keyed by (network, token address)

        Raises:
            BalanceOracleUnavailableError: If the indexer call fails
        """
        tokens, failed = await self._fetch(address, networks)
        return BalanceSnapshot(
            [
                TokenHolding(
                    network=t.network,
                    token_address=t.token_address,
                    raw_balance=int(t.token_balance),
                    decimals=t.decimals,
                    symbol=t.symbol,
                    name=t.name,
                )
                for t in tokens
            ],
            failed_networks=failed,
        )

    async def fetch_token_balances(self, address: str, networks: list[str]) -> list[TokenBalance]:
        """Fetch the flat token balance list for an address across networks.

        Raises:
            BalanceOracleUnavailableError: If the indexer call fails or any
                requested network could not be read
        """
        tokens, failed = await self._fetch(address, networks)
        if failed:
            details = "; ".join(f"{n}: {e}" for n, e in failed.items())
            raise BalanceOracleUnavailableError(f"Balance oracle failed for {details}")
        return tokens

    async def _fetch(
        self, address: str, networks: list[str]
    ) -> tuple[list[TokenBalance], dict[str, str]]:
        """Query the indexer; returns balances and per-network failures."""
        if not networks:
            return [], {}

        logger.info("Fetching balances for %s on %s", address, ", ".join(networks))

        body: dict[str, Any] = {
            "addresses": [{"address": address, "networks": networks}],
            "withMetadata": True,
            "withPrices": False,
            "includeNativeTokens": True,
        }

        balances: list[TokenBalance] = []
        failed: dict[str, str] = {}
        for _ in range(MAX_PAGES):
            data = await self._post(body)
            for entry in data.get("tokens") or []:
                if entry and entry.get("error") and entry.get("network"):
                    failed.setdefault(entry["network"], str(entry["error"]))
                    continue
                balance = self._parse_entry(entry)
                if balance is not None:
                    balances.append(balance)

            page_key = data.get("pageKey")
            if not page_key:
                break
            body["pageKey"] = page_key
        else:
            logger.warning("Balance pagination stopped after %d pages for %s", MAX_PAGES, address)

        if failed:
            logger.warning("Balance oracle failed for %s on %s", address, ", ".join(failed))

        return balances, failed

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.post(self.endpoint, json=body)
        except httpx.HTTPError as e:
            raise BalanceOracleUnavailableError(f"Balance oracle request failed: {e}") from e

        if not response.is_success:
            raise BalanceOracleUnavailableError(
                f"Balance oracle returned HTTP {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise BalanceOracleUnavailableError("Balance oracle returned invalid JSON") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise BalanceOracleUnavailableError("Balance oracle response missing data")
        return data

    def _parse_entry(self, entry: Optional[dict[str, Any]]) -> Optional[TokenBalance]:
        """Normalize one indexer entry; unusable entries are skipped."""
        if not entry or not entry.get("network"):
            return None

        network = entry["network"]
        token_address = entry.get("tokenAddress") or NATIVE_TOKEN_ADDRESS
        is_native = token_address.lower() == NATIVE_TOKEN_ADDRESS

        try:
            raw_balance = parse_quantity(entry.get("tokenBalance"))
        except ValueError:
            logger.debug("Skipping %s on %s: unreadable balance", token_address, network)
            return None

        metadata = entry.get("tokenMetadata") or {}
        decimals = metadata.get("decimals")
        symbol = metadata.get("symbol")

        if is_native:
            spec = KNOWN_NETWORKS.get(network)
            decimals = decimals if decimals is not None else NATIVE_DECIMALS
            symbol = symbol or (spec.native_symbol if spec else "ETH")

        if decimals is None:
            logger.debug("Skipping %s on %s: no token metadata", token_address, network)
            return None

        return TokenBalance(
            network=network,
            token_address=token_address,
            token_balance=str(raw_balance),
            decimals=int(decimals),
            symbol=symbol or token_address,
            name=metadata.get("name"),
            balance=to_human_amount(raw_balance, int(decimals)),
        )
