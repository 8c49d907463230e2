"""
Balance Oracle
==============
Token balance reads for the solver's associated token accounts.

`sample_delta` does exactly one fixed-delay re-read when nothing moved,
to ride out RPC read-after-write lag. It never polls beyond that.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from src.settlement.errors import ProviderError
from src.shared.system.logging import Logger

RPC_ERRORS = (SolanaRpcException, RPCException, httpx.HTTPError, OSError)


@dataclass(frozen=True)
class BalanceSnapshot:
    """Before/after reading of one owner+mint balance (UI units)."""

    owner: str
    mint: str
    baseline: Decimal
    current: Optional[Decimal] = None

    @property
    def delta(self) -> Decimal:
        if self.current is None:
            return Decimal(0)
        return self.current - self.baseline


class BalanceOracle:
    """Reads balances through an injected solana-py AsyncClient."""

    def __init__(self, client: AsyncClient):
        self.client = client

    @staticmethod
    def token_account(owner: str, mint: str) -> Pubkey:
        return get_associated_token_address(Pubkey.from_string(owner), Pubkey.from_string(mint))

    async def get_balance(self, owner: str, mint: str) -> Decimal:
        """
        UI balance of owner's ATA for mint.

        Raises:
            ProviderError: RPC failure or unreadable account.
        """
        ata = self.token_account(owner, mint)
        try:
            resp = await self.client.get_token_account_balance(ata)
        except RPC_ERRORS as e:
            raise ProviderError(f"Failed to get token account balance for {ata}: {e}") from e

        value = getattr(resp, "value", None)
        if value is None:
            raise ProviderError(f"No balance returned for token account {ata}")
        try:
            return Decimal(value.ui_amount_string)
        except (InvalidOperation, TypeError) as e:
            raise ProviderError(f"Unreadable balance {value.ui_amount_string!r} for {ata}") from e

    async def snapshot(self, owner: str, mint: str) -> BalanceSnapshot:
        return BalanceSnapshot(owner=owner, mint=mint, baseline=await self.get_balance(owner, mint))

    async def sample_delta(self, owner: str, mint: str, baseline: Decimal, retry_delay: float) -> Decimal:
        """current - baseline, re-reading once after retry_delay when unchanged."""
        current = await self.get_balance(owner, mint)
        if current == baseline:
            Logger.debug(f"[BALANCE] No change on {mint[:6]}..., re-reading in {retry_delay}s")
            await asyncio.sleep(retry_delay)
            current = await self.get_balance(owner, mint)
        return current - baseline

    async def account_exists(self, address: Pubkey) -> bool:
        try:
            resp = await self.client.get_account_info(address)
        except RPC_ERRORS as e:
            raise ProviderError(f"Failed to read account {address}: {e}") from e
        return resp.value is not None

    async def get_token_decimals(self, mint: str) -> int:
        try:
            resp = await self.client.get_token_supply(Pubkey.from_string(mint))
        except RPC_ERRORS as e:
            raise ProviderError(f"Token information not available for {mint}: {e}") from e
        return int(resp.value.decimals)
