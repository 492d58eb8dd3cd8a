"""Tests for the user operation builder."""

import pytest

from agent_withdraw.utils.rpc import JsonRpcClient
from agent_withdraw.withdrawal.base import OperationBuildFailedError, SponsorConfig, TransferCall
from agent_withdraw.withdrawal.builder import OperationBuilder
from agent_withdraw.withdrawal.kernel import (
    ECDSA_DUMMY_SIGNATURE,
    ENTRYPOINT_V07_ADDRESS,
    KERNEL_META_FACTORY,
    derive_account_index,
    derive_agent_address,
    encode_calls,
)
from agent_withdraw.withdrawal.user_operation import UserOperation

from conftest import (
    APP_ID,
    BASE_FEE,
    CONTROLLER_ADDRESS,
    PRIORITY_FEE,
    RpcFailure,
    install_chain,
    make_network,
)

PAYMASTER = "0x7777777777777777777777777777777777777777"
PAYMASTER_URL = "https://paymaster.test/chain/8453"


@pytest.fixture
def network():
    return make_network("base-mainnet")


@pytest.fixture
def builder(http_client):
    return OperationBuilder(JsonRpcClient(http_client))


@pytest.fixture
def calls():
    return [TransferCall(to=CONTROLLER_ADDRESS, value=10**16, data="0x")]


async def build(builder, network, calls, sponsor=None):
    return await builder.build(
        network,
        derive_agent_address(CONTROLLER_ADDRESS, APP_ID),
        derive_account_index(APP_ID),
        calls,
        sponsor,
        owner=CONTROLLER_ADDRESS,
    )


class TestOperationBuilder:
    """Tests for OperationBuilder.build."""

    @pytest.mark.asyncio
    async def test_builds_undeployed_account_operation(self, builder, network, calls, upstream):
        """Test an undeployed account gets factory fields, fees and gas limits."""
        install_chain(upstream, code="0x", nonce=0)

        withdrawal = await build(builder, network, calls)
        user_op = withdrawal.user_op

        assert withdrawal.network == "base-mainnet"
        assert user_op["sender"] == derive_agent_address(CONTROLLER_ADDRESS, APP_ID)
        assert user_op["nonce"] == "0x0"
        assert user_op["factory"] == KERNEL_META_FACTORY
        assert user_op["factoryData"].startswith("0x")
        assert user_op["callData"] == encode_calls(calls)
        assert user_op["maxFeePerGas"] == hex(BASE_FEE * 12 // 10 + PRIORITY_FEE)
        assert user_op["maxPriorityFeePerGas"] == hex(PRIORITY_FEE)
        assert user_op["callGasLimit"] == hex(200_000)
        assert "paymaster" not in user_op

    @pytest.mark.asyncio
    async def test_hash_matches_serialized_operation(self, builder, network, calls, upstream):
        """Test the returned hash is the v0.7 hash of the returned operation."""
        install_chain(upstream)

        withdrawal = await build(builder, network, calls)

        parsed = UserOperation.from_rpc_dict(withdrawal.user_op)
        assert withdrawal.user_op_hash == parsed.hash(network.chain_id, ENTRYPOINT_V07_ADDRESS)

    @pytest.mark.asyncio
    async def test_identical_inputs_identical_hash(self, builder, network, calls, upstream):
        """Test building twice against the same chain state gives the same hash."""
        install_chain(upstream)

        first = await build(builder, network, calls)
        second = await build(builder, network, calls)

        assert first.user_op_hash == second.user_op_hash
        assert first.user_op == second.user_op

    @pytest.mark.asyncio
    async def test_deployed_account_has_no_factory(self, builder, network, calls, upstream):
        """Test a deployed account omits factory fields and uses the chain nonce."""
        install_chain(upstream, code="0x6080604052", nonce=3)

        withdrawal = await build(builder, network, calls)

        assert "factory" not in withdrawal.user_op
        assert "factoryData" not in withdrawal.user_op
        assert withdrawal.user_op["nonce"] == "0x3"

    @pytest.mark.asyncio
    async def test_estimation_uses_dummy_signature(self, builder, network, calls, upstream):
        """Test gas is estimated on the bundler with the dummy ECDSA signature."""
        install_chain(upstream)

        await build(builder, network, calls)

        (url, _, params), = [c for c in upstream.calls if c[1] == "eth_estimateUserOperationGas"]
        assert url == network.bundler_url
        assert params[0]["signature"] == ECDSA_DUMMY_SIGNATURE
        assert params[1] == ENTRYPOINT_V07_ADDRESS

    @pytest.mark.asyncio
    async def test_chain_reads_use_network_rpc(self, builder, network, calls, upstream):
        """Test nonce, code and fee reads go to the network's RPC endpoint."""
        install_chain(upstream)

        await build(builder, network, calls)

        chain_calls = [c for c in upstream.calls if c[1] != "eth_estimateUserOperationGas"]
        assert {c[0] for c in chain_calls} == {network.rpc_url}
        assert upstream.methods()[-1] == "eth_estimateUserOperationGas"

    @pytest.mark.asyncio
    async def test_sponsored_operation(self, builder, network, calls, upstream):
        """Test paymaster fields are merged and covered by the hash."""
        install_chain(upstream)
        upstream.on(
            "zd_sponsorUserOperation",
            lambda url, params: {
                "paymaster": PAYMASTER,
                "paymasterVerificationGasLimit": hex(30_000),
                "paymasterPostOpGasLimit": hex(1),
                "paymasterData": "0xbeef",
                "callGasLimit": hex(210_000),
            },
        )

        withdrawal = await build(builder, network, calls, SponsorConfig(paymaster_url=PAYMASTER_URL))

        (url, _, params), = [c for c in upstream.calls if c[1] == "zd_sponsorUserOperation"]
        assert url == PAYMASTER_URL
        assert params[0]["chainId"] == network.chain_id
        assert params[0]["entryPointAddress"] == ENTRYPOINT_V07_ADDRESS

        assert withdrawal.user_op["paymaster"] == PAYMASTER
        assert withdrawal.user_op["callGasLimit"] == hex(210_000)
        parsed = UserOperation.from_rpc_dict(withdrawal.user_op)
        assert withdrawal.user_op_hash == parsed.hash(network.chain_id)

    @pytest.mark.asyncio
    async def test_paymaster_without_sponsor_fails(self, builder, network, calls, upstream):
        """Test a sponsorship response without a paymaster is a build failure."""
        install_chain(upstream)
        upstream.on("zd_sponsorUserOperation", lambda url, params: {"callGasLimit": "0x1"})

        with pytest.raises(OperationBuildFailedError, match="sponsor"):
            await build(builder, network, calls, SponsorConfig(paymaster_url=PAYMASTER_URL))

    @pytest.mark.asyncio
    async def test_estimation_failure(self, builder, network, calls, upstream):
        """Test bundler errors become OperationBuildFailedError naming the stage."""
        install_chain(upstream)

        def reject(url, params):
            raise RpcFailure("AA21 didn't pay prefund")

        upstream.on("eth_estimateUserOperationGas", reject)

        with pytest.raises(OperationBuildFailedError) as exc_info:
            await build(builder, network, calls)

        assert "estimate gas" in str(exc_info.value)
        assert "AA21" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_bundler_endpoint(self, builder, calls, upstream):
        """Test a network without bundler endpoint fails before estimation."""
        install_chain(upstream)
        network = make_network("base-mainnet", bundler_base="")

        with pytest.raises(OperationBuildFailedError, match="no endpoint configured"):
            await build(builder, network, calls)

        assert "eth_estimateUserOperationGas" not in upstream.methods()

    @pytest.mark.asyncio
    async def test_no_calls(self, builder, network, upstream):
        """Test an empty batch fails without touching the chain."""
        with pytest.raises(OperationBuildFailedError, match="encode calls"):
            await build(builder, network, [])

        assert upstream.calls == []
