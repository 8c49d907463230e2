"""
Jupiter Router Tests
====================
Quote and swap-transaction handling against a mocked httpx client.
"""

import base64
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from solders.keypair import Keypair

from tests.mocks import unsigned_swap_tx


USDT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
BONK = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"

QUOTE_RESPONSE = {
    "inputMint": USDT,
    "outputMint": BONK,
    "inAmount": "1000000",
    "outAmount": "45000000000",
    "otherAmountThreshold": "44775000000",
    "swapMode": "ExactIn",
    "priceImpactPct": "0.01",
    "routePlan": [],
}


def _client(get_response=None, post_response=None):
    client = MagicMock()
    client.get = AsyncMock(return_value=get_response)
    client.post = AsyncMock(return_value=post_response)
    return client


@pytest.fixture
def make_router():
    from src.shared.execution.jupiter_router import JupiterRouter

    def _create(client):
        return JupiterRouter("https://quote-api.example/v6/", client=client)

    return _create


class TestQuoteConfig:

    def test_params(self):
        from src.shared.execution.jupiter_router import QuoteConfig, SwapMode

        params = QuoteConfig(slippage_bps=50, swap_mode=SwapMode.EXACT_OUT, only_direct_routes=True).to_params()

        assert params == {"slippageBps": 50, "swapMode": "ExactOut", "onlyDirectRoutes": "true"}

    def test_slippage_bounds(self):
        from pydantic import ValidationError

        from src.shared.execution.jupiter_router import QuoteConfig

        with pytest.raises(ValidationError):
            QuoteConfig(slippage_bps=20_000)


class TestQuote:

    @pytest.mark.asyncio
    async def test_parses_quote(self, make_router):
        from src.shared.execution.jupiter_router import QuoteConfig, SwapMode

        client = _client(get_response=httpx.Response(200, json=QUOTE_RESPONSE))
        router = make_router(client)

        quote = await router.quote(USDT, BONK, 1_000_000, QuoteConfig())

        assert quote.in_amount == 1_000_000
        assert quote.out_amount == 45_000_000_000
        assert quote.swap_mode is SwapMode.EXACT_IN
        assert quote.raw == QUOTE_RESPONSE

        url = client.get.call_args.args[0]
        params = client.get.call_args.kwargs["params"]
        assert url == "https://quote-api.example/v6/quote"
        assert params["amount"] == "1000000"
        assert params["inputMint"] == USDT

    @pytest.mark.asyncio
    async def test_error_payload_is_no_route(self, make_router):
        from src.settlement.errors import QuoteUnavailable
        from src.shared.execution.jupiter_router import QuoteConfig

        client = _client(get_response=httpx.Response(200, json={"error": "Could not find any route"}))

        with pytest.raises(QuoteUnavailable, match="No route"):
            await make_router(client).quote(USDT, BONK, 1, QuoteConfig())

    @pytest.mark.asyncio
    async def test_http_error_status(self, make_router):
        from src.settlement.errors import QuoteUnavailable
        from src.shared.execution.jupiter_router import QuoteConfig

        client = _client(get_response=httpx.Response(400, json={}))

        with pytest.raises(QuoteUnavailable, match="HTTP 400"):
            await make_router(client).quote(USDT, BONK, 1, QuoteConfig())

    @pytest.mark.asyncio
    async def test_unreachable(self, make_router):
        from src.settlement.errors import QuoteUnavailable
        from src.shared.execution.jupiter_router import QuoteConfig

        client = MagicMock()
        client.get = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(QuoteUnavailable, match="unreachable"):
            await make_router(client).quote(USDT, BONK, 1, QuoteConfig())


class TestBuildSwap:

    @pytest.mark.asyncio
    async def test_returns_quote_and_transaction(self, make_router):
        from src.shared.execution.jupiter_router import SwapMemo, SwapMode

        payer = Keypair().pubkey()
        encoded = base64.b64encode(bytes(unsigned_swap_tx(payer))).decode()
        client = _client(
            get_response=httpx.Response(200, json=QUOTE_RESPONSE),
            post_response=httpx.Response(200, json={"swapTransaction": encoded}),
        )
        memo = SwapMemo(user_account=str(payer), token_in=USDT, token_out=BONK, amount=1_000_000)

        quote, tx = await make_router(client).build_swap(memo, SwapMode.EXACT_IN)

        assert quote.out_amount == 45_000_000_000
        assert tx.message.account_keys[0] == payer

        payload = client.post.call_args.kwargs["json"]
        assert payload["quoteResponse"] == QUOTE_RESPONSE
        assert payload["userPublicKey"] == str(payer)

    @pytest.mark.asyncio
    async def test_missing_transaction(self, make_router):
        from src.settlement.errors import ConversionExecutionError
        from src.shared.execution.jupiter_router import SwapMemo, SwapMode

        client = _client(
            get_response=httpx.Response(200, json=QUOTE_RESPONSE),
            post_response=httpx.Response(200, json={}),
        )
        memo = SwapMemo(user_account=str(Keypair().pubkey()), token_in=USDT, token_out=BONK, amount=1)

        with pytest.raises(ConversionExecutionError, match="No swap transaction"):
            await make_router(client).build_swap(memo, SwapMode.EXACT_IN)
