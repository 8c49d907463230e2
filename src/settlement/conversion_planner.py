"""
Conversion Planner
==================
Inventory conversion legs via Jupiter.

A leg is atomic from the caller's point of view: `execute` returns a
confirmed signature or raises. There is no partially-landed return value.
"""

from __future__ import annotations

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import TransactionExpiredBlockheightExceededError, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from src.settlement.balance_oracle import RPC_ERRORS
from src.settlement.errors import ConversionExecutionError, QuoteUnavailable
from src.shared.execution.jupiter_router import JupiterRouter, Quote, QuoteConfig, SwapMemo, SwapMode
from src.shared.system.logging import Logger

SEND_ERRORS = RPC_ERRORS + (UnconfirmedTxError, TransactionExpiredBlockheightExceededError)


class ConversionPlanner:
    """
    Decides on and executes conversion legs.

    Usage:
        planner = ConversionPlanner(router, rpc_client, keypair)
        if planner.needs_conversion(token_out, reference_mint):
            sig = await planner.execute(reference_mint, token_out, amount_out, SwapMode.EXACT_OUT)
    """

    def __init__(
        self,
        router: JupiterRouter,
        client: AsyncClient,
        keypair: Keypair,
        slippage_bps: int = 100,
        only_direct_routes: bool = False,
    ):
        self.router = router
        self.client = client
        self.keypair = keypair
        self.slippage_bps = slippage_bps
        self.only_direct_routes = only_direct_routes

    @property
    def owner(self) -> str:
        return str(self.keypair.pubkey())

    @staticmethod
    def needs_conversion(asset: str, target: str) -> bool:
        """True when the two mints differ (case-insensitive)."""
        return asset.lower() != target.lower()

    async def quote(self, asset_in: str, asset_out: str, amount: int, mode: SwapMode) -> Quote:
        config = QuoteConfig(
            slippage_bps=self.slippage_bps,
            swap_mode=mode,
            only_direct_routes=self.only_direct_routes,
        )
        return await self.router.quote(asset_in, asset_out, amount, config)

    async def simulate_output(self, user: str, asset_in: str, asset_out: str, amount_in: int) -> str:
        """
        Exact-in out-amount for bidding, as a decimal string.

        Returns "0" when no quote can be obtained.
        """
        memo = SwapMemo(
            user_account=user,
            token_in=asset_in,
            token_out=asset_out,
            amount=amount_in,
            slippage_bps=self.slippage_bps,
        )
        try:
            quote = await self.quote(memo.token_in, memo.token_out, memo.amount, SwapMode.EXACT_IN)
        except QuoteUnavailable as e:
            Logger.debug(f"[JUPITER] Simulated swap unavailable: {e}")
            return "0"
        return str(quote.out_amount)

    async def execute(self, asset_in: str, asset_out: str, amount: int, mode: SwapMode) -> str:
        """
        Quote, sign, simulate, send and confirm one swap.

        Raises:
            QuoteUnavailable: no route.
            ConversionExecutionError: router rejection, simulation error, send or confirm failure.
        """
        memo = SwapMemo(
            user_account=self.owner,
            token_in=asset_in,
            token_out=asset_out,
            amount=amount,
            slippage_bps=self.slippage_bps,
        )
        Logger.info(f"[JUPITER] {mode.value} swap {asset_in[:6]}... -> {asset_out[:6]}... amount={amount}")

        quote, unsigned = await self.router.build_swap(memo, mode, self.only_direct_routes)
        tx = VersionedTransaction(unsigned.message, [self.keypair])

        try:
            sim = await self.client.simulate_transaction(tx)
        except RPC_ERRORS as e:
            raise ConversionExecutionError(f"Swap simulation request failed: {e}") from e
        if sim.value.err is not None:
            raise ConversionExecutionError(f"Swap simulation failed: {sim.value.err}")

        try:
            resp = await self.client.send_transaction(
                tx, opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
            )
            signature = resp.value
            confirmation = await self.client.confirm_transaction(signature, commitment=Confirmed)
        except SEND_ERRORS as e:
            raise ConversionExecutionError(f"Swap submission failed: {e}") from e

        statuses = confirmation.value or []
        if statuses and statuses[0] is not None and statuses[0].err is not None:
            raise ConversionExecutionError(f"Swap {signature} failed on-chain: {statuses[0].err}")

        Logger.success(f"[JUPITER] Swap confirmed: {signature} ({quote.in_amount} -> {quote.out_amount})")
        return str(signature)
