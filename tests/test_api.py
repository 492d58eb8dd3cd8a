"""Tests for the FastAPI endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from agent_withdraw.api.app import create_app
from agent_withdraw.web.contracts.balances import AgentFundsResponse
from agent_withdraw.web.contracts.withdrawals import (
    CompleteWithdrawResult,
    ErrorEntry,
    RequestWithdrawResult,
    UnsignedWithdrawal,
    WithdrawalResult,
)
from agent_withdraw.withdrawal.base import (
    AllNetworksFailedError,
    AllWithdrawalsFailedError,
    BalanceOracleUnavailableError,
    NoSupportedNetworksError,
    OperationBuildFailedError,
)

from conftest import APP_ID, CONTROLLER_ADDRESS, SEPOLIA_USDC

USER_OP = {"sender": "0x" + "33" * 20, "nonce": "0x0", "callData": "0x"}
USER_OP_HASH = "0x" + "01" * 32


@pytest.fixture
def withdrawal_service():
    service = MagicMock()
    service.request_withdraw = AsyncMock()
    service.complete_withdraw = AsyncMock()
    service.get_agent_funds = AsyncMock()
    return service


@pytest.fixture
def test_app(settings, registry, withdrawal_service):
    """Create test application with injected services."""
    app = create_app(settings)
    app.state.registry = registry
    app.state.withdrawal_service = withdrawal_service
    return app


@pytest.fixture
async def client(test_app):
    """Create async test client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def request_body(**overrides):
    body = {
        "userControllerAddress": CONTROLLER_ADDRESS,
        "assets": [{"network": "base-sepolia", "tokenAddress": SEPOLIA_USDC, "amount": "5"}],
    }
    body.update(overrides)
    return body


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        """Test basic health check."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "agent-withdraw"

    @pytest.mark.asyncio
    async def test_detailed_health(self, client):
        """Test detailed health check redacts secrets."""
        response = await client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["networks"] == ["base-mainnet", "base-sepolia"]
        assert data["config"]["alchemy_api_key"] == "***"
        assert "test-project" not in data["config"]["bundler"]


class TestNetworkEndpoints:
    """Tests for network listing endpoints."""

    @pytest.mark.asyncio
    async def test_list_networks(self, client):
        """Test supported networks are listed without endpoints."""
        response = await client.get("/api/v1/networks")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["networks"][0]["chainId"] == 8453
        assert "rpcUrl" not in data["networks"][0]

    @pytest.mark.asyncio
    async def test_unknown_network(self, client):
        """Test an unsupported network is a 404."""
        response = await client.get("/api/v1/networks/eth-mainnet")

        assert response.status_code == 404


class TestRequestWithdraw:
    """Tests for POST /api/v1/apps/{app_id}/request-withdraw."""

    @pytest.mark.asyncio
    async def test_returns_unsigned_withdrawals(self, client, withdrawal_service):
        """Test camelCase output and omitted errors on full success."""
        withdrawal_service.request_withdraw.return_value = RequestWithdrawResult(
            withdrawals=[
                UnsignedWithdrawal(network="base-sepolia", user_op=USER_OP, user_op_hash=USER_OP_HASH)
            ]
        )

        response = await client.post(f"/api/v1/apps/{APP_ID}/request-withdraw", json=request_body())

        assert response.status_code == 200
        data = response.json()
        assert data["withdrawals"][0]["userOpHash"] == USER_OP_HASH
        assert data["withdrawals"][0]["userOp"] == USER_OP
        assert "errors" not in data

        controller, app_id, assets = withdrawal_service.request_withdraw.await_args.args
        assert controller == CONTROLLER_ADDRESS
        assert app_id == APP_ID
        assert assets[0].token_address == SEPOLIA_USDC

    @pytest.mark.asyncio
    async def test_partial_failure_reports_errors(self, client, withdrawal_service):
        """Test per-network errors are returned next to the withdrawals."""
        withdrawal_service.request_withdraw.return_value = RequestWithdrawResult(
            withdrawals=[
                UnsignedWithdrawal(network="base-sepolia", user_op=USER_OP, user_op_hash=USER_OP_HASH)
            ],
            errors=[ErrorEntry(network="base-mainnet", error="Insufficient balance")],
        )

        response = await client.post(f"/api/v1/apps/{APP_ID}/request-withdraw", json=request_body())

        assert response.status_code == 200
        assert response.json()["errors"] == [
            {"network": "base-mainnet", "error": "Insufficient balance"}
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            NoSupportedNetworksError(["base-mainnet"]),
            AllNetworksFailedError([ErrorEntry(network="base-sepolia", error="boom")]),
        ],
    )
    async def test_whole_request_failure(self, client, withdrawal_service, error):
        """Test total failures map to 400 with the error kind."""
        withdrawal_service.request_withdraw.side_effect = error

        response = await client.post(f"/api/v1/apps/{APP_ID}/request-withdraw", json=request_body())

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == error.kind
        assert detail["message"] == str(error)

    @pytest.mark.asyncio
    async def test_missing_bundler_is_unavailable(self, client, withdrawal_service):
        """Test configuration problems map to 503."""
        withdrawal_service.request_withdraw.side_effect = OperationBuildFailedError(
            "prepare withdrawal", "bundler endpoint is not configured"
        )

        response = await client.post(f"/api/v1/apps/{APP_ID}/request-withdraw", json=request_body())

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "OperationBuildFailed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            request_body(userControllerAddress="0x1234"),
            request_body(assets=[]),
            request_body(
                assets=[{"network": "base-sepolia", "tokenAddress": SEPOLIA_USDC, "amount": "0"}]
            ),
            request_body(
                assets=[{"network": "base-sepolia", "tokenAddress": "usdc", "amount": "1"}]
            ),
        ],
    )
    async def test_invalid_body(self, client, withdrawal_service, body):
        """Test malformed requests are rejected before reaching the service."""
        response = await client.post(f"/api/v1/apps/{APP_ID}/request-withdraw", json=body)

        assert response.status_code == 422
        withdrawal_service.request_withdraw.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_app_id_out_of_range(self, client):
        """Test app ids beyond uint40 are rejected."""
        response = await client.post(f"/api/v1/apps/{2**40}/request-withdraw", json=request_body())

        assert response.status_code == 422


class TestCompleteWithdraw:
    """Tests for POST /api/v1/apps/{app_id}/complete-withdraw."""

    def body(self):
        return {
            "withdrawals": [
                {
                    "network": "base-sepolia",
                    "userOp": USER_OP,
                    "userOpHash": USER_OP_HASH,
                    "signature": "0x" + "ab" * 65,
                }
            ]
        }

    @pytest.mark.asyncio
    async def test_returns_transactions(self, client, withdrawal_service):
        """Test confirmed transactions are returned in camelCase."""
        withdrawal_service.complete_withdraw.return_value = CompleteWithdrawResult(
            transactions=[
                WithdrawalResult(
                    network="base-sepolia",
                    transaction_hash="0x" + "cd" * 32,
                    user_op_hash=USER_OP_HASH,
                )
            ]
        )

        response = await client.post(f"/api/v1/apps/{APP_ID}/complete-withdraw", json=self.body())

        assert response.status_code == 200
        data = response.json()
        assert data["transactions"][0]["transactionHash"] == "0x" + "cd" * 32
        assert "errors" not in data

        (withdrawals,) = withdrawal_service.complete_withdraw.await_args.args
        assert withdrawals[0].signature == "0x" + "ab" * 65

    @pytest.mark.asyncio
    async def test_all_failed(self, client, withdrawal_service):
        """Test total failure maps to 400."""
        withdrawal_service.complete_withdraw.side_effect = AllWithdrawalsFailedError(
            [ErrorEntry(network="base-sepolia", error="rejected")]
        )

        response = await client.post(f"/api/v1/apps/{APP_ID}/complete-withdraw", json=self.body())

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "AllWithdrawalsFailed"

    @pytest.mark.asyncio
    async def test_signature_required(self, client, withdrawal_service):
        """Test unsigned operations are rejected."""
        body = self.body()
        del body["withdrawals"][0]["signature"]

        response = await client.post(f"/api/v1/apps/{APP_ID}/complete-withdraw", json=body)

        assert response.status_code == 422
        withdrawal_service.complete_withdraw.assert_not_awaited()


class TestAgentFunds:
    """Tests for POST /api/v1/apps/{app_id}/agent-funds."""

    @pytest.mark.asyncio
    async def test_returns_agent_address(self, client, withdrawal_service):
        """Test the agent address is returned in camelCase."""
        withdrawal_service.get_agent_funds.return_value = AgentFundsResponse(
            agent_address="0x" + "44" * 20, tokens=[]
        )

        response = await client.post(
            f"/api/v1/apps/{APP_ID}/agent-funds",
            json={"userControllerAddress": CONTROLLER_ADDRESS, "networks": ["Base-Sepolia"]},
        )

        assert response.status_code == 200
        assert response.json()["agentAddress"] == "0x" + "44" * 20
        _, _, networks = withdrawal_service.get_agent_funds.await_args.args
        assert networks == ["base-sepolia"]

    @pytest.mark.asyncio
    async def test_oracle_unavailable(self, client, withdrawal_service):
        """Test balance oracle failures map to 503."""
        withdrawal_service.get_agent_funds.side_effect = BalanceOracleUnavailableError("down")

        response = await client.post(
            f"/api/v1/apps/{APP_ID}/agent-funds",
            json={"userControllerAddress": CONTROLLER_ADDRESS, "networks": ["base-sepolia"]},
        )

        assert response.status_code == 503
        assert response.json()["detail"] == {"error": "BalanceOracleUnavailable", "message": "down"}
