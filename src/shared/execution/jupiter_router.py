"""
Jupiter Router Client
=====================
HTTP client for the Jupiter v6 aggregator (quote + swap transaction).

Pure I/O: this module never signs or sends. Signing, simulation and
submission belong to the ConversionPlanner, which owns the keypair.
"""

from __future__ import annotations

import base64
import json
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from solders.transaction import VersionedTransaction

from src.settlement.errors import ConversionExecutionError, QuoteUnavailable
from src.shared.system.logging import Logger


class SwapMode(str, Enum):
    """Which side of the swap the amount pins."""
    EXACT_IN = "ExactIn"
    EXACT_OUT = "ExactOut"


class QuoteConfig(BaseModel):
    """Quote request knobs."""
    slippage_bps: int = Field(default=100, ge=0, le=10_000)
    swap_mode: SwapMode = SwapMode.EXACT_IN
    only_direct_routes: bool = False

    def to_params(self) -> Dict[str, Any]:
        return {
            "slippageBps": self.slippage_bps,
            "swapMode": self.swap_mode.value,
            "onlyDirectRoutes": str(self.only_direct_routes).lower(),
        }


class SwapMemo(BaseModel):
    """
    Structured swap request.

    `amount` is the input quantity for ExactIn and the output quantity
    for ExactOut.
    """
    model_config = ConfigDict(frozen=True)

    user_account: str
    token_in: str
    token_out: str
    amount: int = Field(..., ge=0)
    slippage_bps: int = Field(default=100, ge=0, le=10_000)


class Quote(BaseModel):
    """Subset of the Jupiter quote response the solver reads; `raw` is echoed back to /swap."""
    model_config = ConfigDict(populate_by_name=True)

    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    in_amount: int = Field(alias="inAmount")
    out_amount: int = Field(alias="outAmount")
    other_amount_threshold: int = Field(default=0, alias="otherAmountThreshold")
    swap_mode: SwapMode = Field(default=SwapMode.EXACT_IN, alias="swapMode")
    price_impact_pct: float = Field(default=0.0, alias="priceImpactPct")
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)


class JupiterRouter:
    """
    Executes the router protocol against Jupiter.

    Usage:
        router = JupiterRouter("https://quote-api.jup.ag/v6")
        quote = await router.quote(USDT, BONK, 1_000_000, QuoteConfig())
        quote, tx = await router.build_swap(memo, SwapMode.EXACT_OUT)
    """

    def __init__(
        self,
        api_url: str = "https://quote-api.jup.ag/v6",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _get(self, path: str, params: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(f"{self.api_url}{path}", params=params, timeout=self.timeout)
        async with httpx.AsyncClient() as client:
            return await client.get(f"{self.api_url}{path}", params=params, timeout=self.timeout)

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(f"{self.api_url}{path}", json=payload, timeout=self.timeout)
        async with httpx.AsyncClient() as client:
            return await client.post(f"{self.api_url}{path}", json=payload, timeout=self.timeout)

    async def quote(self, input_mint: str, output_mint: str, amount: int, config: QuoteConfig) -> Quote:
        """
        Fetch the best route quote.

        Raises:
            QuoteUnavailable: router unreachable, non-200, or no route.
        """
        params = {"inputMint": input_mint, "outputMint": output_mint, "amount": str(amount), **config.to_params()}

        try:
            resp = await self._get("/quote", params)
        except httpx.HTTPError as e:
            raise QuoteUnavailable(f"Jupiter unreachable: {e}") from e

        if resp.status_code != 200:
            raise QuoteUnavailable(f"Quote failed for {input_mint} -> {output_mint}: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except json.JSONDecodeError as e:
            raise QuoteUnavailable(f"Malformed quote response: {e}") from e

        if not isinstance(data, dict) or "error" in data:
            error = data.get("error") if isinstance(data, dict) else data
            raise QuoteUnavailable(f"No route for {input_mint} -> {output_mint}: {error}")

        try:
            quote = Quote.model_validate(data)
        except ValidationError as e:
            raise QuoteUnavailable(f"Malformed quote response: {e}") from e

        Logger.debug(
            f"[JUPITER] Quote {config.swap_mode.value}: {quote.in_amount} -> {quote.out_amount} "
            f"(impact: {quote.price_impact_pct}%)"
        )
        return quote.model_copy(update={"raw": data})

    async def swap_transaction(self, quote: Quote, user_public_key: str) -> VersionedTransaction:
        """
        Ask Jupiter to build the (unsigned) swap transaction for a quote.

        Raises:
            ConversionExecutionError: router rejected the request or returned garbage.
        """
        payload = {
            "quoteResponse": quote.raw,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto",
        }

        try:
            resp = await self._post("/swap", payload)
        except httpx.HTTPError as e:
            raise ConversionExecutionError(f"Jupiter swap request failed: {e}") from e

        if resp.status_code != 200:
            raise ConversionExecutionError(f"Swap API error: HTTP {resp.status_code}")

        try:
            swap_tx = resp.json().get("swapTransaction")
        except (json.JSONDecodeError, AttributeError) as e:
            raise ConversionExecutionError(f"Malformed swap response: {e}") from e
        if not swap_tx:
            raise ConversionExecutionError("No swap transaction returned")

        try:
            return VersionedTransaction.from_bytes(base64.b64decode(swap_tx))
        except Exception as e:
            raise ConversionExecutionError(f"Undecodable swap transaction: {e}") from e

    async def build_swap(
        self,
        memo: SwapMemo,
        mode: SwapMode,
        only_direct_routes: bool = False,
    ) -> Tuple[Quote, VersionedTransaction]:
        """Quote + swap transaction for a memo. Quote failures surface as QuoteUnavailable."""
        config = QuoteConfig(slippage_bps=memo.slippage_bps, swap_mode=mode, only_direct_routes=only_direct_routes)
        quote = await self.quote(memo.token_in, memo.token_out, memo.amount, config)
        tx = await self.swap_transaction(quote, memo.user_account)
        return quote, tx
