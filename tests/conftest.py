"""Pytest configuration and fixtures."""

import hashlib
import json
import os
from typing import Any, Callable, Optional

import httpx
import pytest
from eth_account import Account

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["SUPPORTED_NETWORKS"] = "base-mainnet,base-sepolia"
os.environ["ALCHEMY_API_KEY"] = "test-key"
os.environ["ZERODEV_BUNDLER_URL"] = "https://rpc.zerodev.test/api/v3/test-project"
os.environ["RECEIPT_POLL_INTERVAL"] = "0"

from agent_withdraw.config import Settings
from agent_withdraw.web.contracts.networks import NetworkConfig
from agent_withdraw.web.services.chain_service import KNOWN_NETWORKS, NetworkRegistry
from agent_withdraw.withdrawal.base import NATIVE_TOKEN_ADDRESS, BalanceSnapshot, TokenHolding
from agent_withdraw.withdrawal.user_operation import UserOperation

# Well-known throwaway test key, never holds funds
CONTROLLER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CONTROLLER_ADDRESS = Account.from_key(CONTROLLER_KEY).address

APP_ID = 42
BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
SEPOLIA_USDC = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"

BUNDLER_BASE = "https://rpc.zerodev.test/api/v3/test-project"


def make_network(network: str, bundler_base: str = BUNDLER_BASE) -> NetworkConfig:
    """Network config for a known network with test endpoints."""
    spec = KNOWN_NETWORKS[network]
    return NetworkConfig(
        network=network,
        name=spec.name,
        chain_id=spec.chain_id,
        native_symbol=spec.native_symbol,
        rpc_url=f"https://{network}.rpc.test",
        bundler_url=f"{bundler_base}/chain/{spec.chain_id}" if bundler_base else "",
        is_testnet=spec.is_testnet,
    )


def make_registry(*networks: str, bundler_base: str = BUNDLER_BASE) -> NetworkRegistry:
    return NetworkRegistry({n: make_network(n, bundler_base) for n in networks})


def holding(
    network: str,
    token_address: str,
    raw_balance: int,
    decimals: int = 18,
    symbol: str = "ETH",
) -> TokenHolding:
    return TokenHolding(
        network=network,
        token_address=token_address,
        raw_balance=raw_balance,
        decimals=decimals,
        symbol=symbol,
    )


class FakeUpstream:
    """In-memory stand-in for chain RPC, bundler and portfolio endpoints.

    JSON-RPC handlers are registered per method; every request is recorded.
    """

    def __init__(self):
        self.handlers: dict[str, Callable[[str, list], Any]] = {}
        self.calls: list[tuple[str, str, list]] = []
        self.portfolio: Optional[Callable[[dict], httpx.Response]] = None

    def on(self, method: str, handler: Callable[[str, list], Any]) -> None:
        self.handlers[method] = handler

    def methods(self) -> list[str]:
        return [method for _, method, _ in self.calls]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        url = str(request.url)

        if url.endswith("/assets/tokens/by-address"):
            assert self.portfolio is not None, "unexpected portfolio call"
            return self.portfolio(body)

        method, params = body["method"], body["params"]
        self.calls.append((url, method, params))

        handler = self.handlers.get(method)
        if handler is None:
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": body["id"],
                    "error": {"code": -32601, "message": f"Method {method} is not supported"},
                },
            )

        try:
            result = handler(url, params)
        except RpcFailure as e:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": e.code, "message": e.message}},
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


GAS_ESTIMATE = {
    "preVerificationGas": hex(50_000),
    "verificationGasLimit": hex(100_000),
    "callGasLimit": hex(200_000),
}

BASE_FEE = 10**9
PRIORITY_FEE = 10**8


def install_chain(upstream: FakeUpstream, code: str = "0x", nonce: int = 0) -> None:
    """Answer the chain RPC and gas estimation calls made while building."""
    upstream.on("eth_getCode", lambda url, params: code)
    upstream.on("eth_call", lambda url, params: "0x" + nonce.to_bytes(32, "big").hex())
    upstream.on(
        "eth_getBlockByNumber",
        lambda url, params: {"number": "0x10", "baseFeePerGas": hex(BASE_FEE)},
    )
    upstream.on("eth_maxPriorityFeePerGas", lambda url, params: hex(PRIORITY_FEE))
    upstream.on("eth_estimateUserOperationGas", lambda url, params: dict(GAS_ESTIMATE))


def chain_id_from_url(url: str) -> int:
    return int(url.rsplit("/chain/", 1)[1])


def transaction_hash_for(user_op_hash: str) -> str:
    return "0x" + hashlib.sha256(user_op_hash.encode()).hexdigest()


def install_bundler(upstream: FakeUpstream) -> None:
    """Accept any operation and include it immediately."""

    def send(url, params):
        return UserOperation.from_rpc_dict(params[0]).hash(chain_id_from_url(url), params[1])

    def receipt(url, params):
        return {
            "userOpHash": params[0],
            "success": True,
            "receipt": {"transactionHash": transaction_hash_for(params[0])},
        }

    upstream.on("eth_sendUserOperation", send)
    upstream.on("eth_getUserOperationReceipt", receipt)


class RpcFailure(Exception):
    """Raised by FakeUpstream handlers to return a JSON-RPC error."""

    def __init__(self, message: str, code: int = -32000):
        self.message = message
        self.code = code
        super().__init__(message)


@pytest.fixture
def settings() -> Settings:
    """Settings with test endpoints and instant polling."""
    return Settings(
        supported_networks="base-mainnet,base-sepolia",
        alchemy_api_key="test-key",
        zerodev_bundler_url=BUNDLER_BASE,
        receipt_poll_interval=0,
        receipt_poll_attempts=3,
    )


@pytest.fixture
def registry() -> NetworkRegistry:
    return make_registry("base-mainnet", "base-sepolia")


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
async def http_client(upstream):
    """httpx client whose requests are answered by the fake upstream."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield client


@pytest.fixture
def snapshot() -> BalanceSnapshot:
    """Agent balances: 0.05 ETH on base-mainnet, 10 USDC on each network."""
    return BalanceSnapshot(
        [
            holding("base-mainnet", NATIVE_TOKEN_ADDRESS, 5 * 10**16),
            holding("base-mainnet", BASE_USDC, 10 * 10**6, decimals=6, symbol="USDC"),
            holding("base-sepolia", SEPOLIA_USDC, 10 * 10**6, decimals=6, symbol="USDC"),
        ]
    )
