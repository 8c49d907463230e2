"""
Conversion Planner Tests
========================
Swap legs against a mock router and mock RPC.
"""

import pytest

from tests.mocks import MockJupiterRouter, MockRpcClient, NoRouteRouter


USDT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
BONK = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


@pytest.fixture
def rpc():
    return MockRpcClient()


@pytest.fixture
def make_planner(rpc, solver_keypair):
    from src.settlement.conversion_planner import ConversionPlanner

    def _create(router=None):
        return ConversionPlanner(router or MockJupiterRouter(), rpc, solver_keypair, slippage_bps=50)

    return _create


class TestNeedsConversion:

    def test_same_mint(self):
        from src.settlement.conversion_planner import ConversionPlanner
        assert not ConversionPlanner.needs_conversion(USDT, USDT)

    def test_case_insensitive(self):
        from src.settlement.conversion_planner import ConversionPlanner
        assert not ConversionPlanner.needs_conversion(USDT.lower(), USDT)

    def test_different_mint(self):
        from src.settlement.conversion_planner import ConversionPlanner
        assert ConversionPlanner.needs_conversion(BONK, USDT)


class TestExecute:

    @pytest.mark.asyncio
    async def test_exact_out_leg(self, make_planner, rpc, solver_keypair):
        from src.shared.execution.jupiter_router import SwapMode

        router = MockJupiterRouter()
        planner = make_planner(router)

        signature = await planner.execute(USDT, BONK, 990_000, SwapMode.EXACT_OUT)

        assert signature == str(rpc.signature)
        memo, mode = router.built[0]
        assert mode is SwapMode.EXACT_OUT
        assert memo.amount == 990_000
        assert memo.user_account == str(solver_keypair.pubkey())
        assert memo.slippage_bps == 50
        assert rpc.calls == ["simulate_transaction", "send_transaction", "confirm_transaction"]

    @pytest.mark.asyncio
    async def test_signed_by_solver(self, make_planner, rpc, solver_keypair):
        from solders.signature import Signature

        from src.shared.execution.jupiter_router import SwapMode

        await make_planner().execute(BONK, USDT, 1_000_000, SwapMode.EXACT_IN)

        sent = rpc.sent[0]
        assert sent.message.account_keys[0] == solver_keypair.pubkey()
        assert sent.signatures[0] != Signature.default()

    @pytest.mark.asyncio
    async def test_no_route(self, make_planner, rpc):
        from src.settlement.errors import QuoteUnavailable
        from src.shared.execution.jupiter_router import SwapMode

        with pytest.raises(QuoteUnavailable):
            await make_planner(NoRouteRouter()).execute(USDT, BONK, 1, SwapMode.EXACT_OUT)
        assert rpc.calls == []

    @pytest.mark.asyncio
    async def test_simulation_error_stops_send(self, make_planner, rpc):
        from src.settlement.errors import ConversionExecutionError
        from src.shared.execution.jupiter_router import SwapMode

        rpc.sim_err = "InsufficientFundsForRent"

        with pytest.raises(ConversionExecutionError, match="simulation"):
            await make_planner().execute(USDT, BONK, 1, SwapMode.EXACT_OUT)
        assert "send_transaction" not in rpc.calls

    @pytest.mark.asyncio
    async def test_on_chain_failure(self, make_planner, rpc):
        from src.settlement.errors import ConversionExecutionError
        from src.shared.execution.jupiter_router import SwapMode

        rpc.confirm_err = "SlippageToleranceExceeded"

        with pytest.raises(ConversionExecutionError, match="failed on-chain"):
            await make_planner().execute(BONK, USDT, 1, SwapMode.EXACT_IN)


class TestSimulateOutput:

    @pytest.mark.asyncio
    async def test_returns_out_amount(self, make_planner, user_pubkey):
        planner = make_planner(MockJupiterRouter(out_amount=4242))

        assert await planner.simulate_output(user_pubkey, BONK, USDT, 1_000_000) == "4242"

    @pytest.mark.asyncio
    async def test_zero_without_route(self, make_planner, user_pubkey):
        planner = make_planner(NoRouteRouter())

        assert await planner.simulate_output(user_pubkey, BONK, USDT, 1_000_000) == "0"
