"""
Settlement Coordinator
======================
Drives the single authoritative send_funds_to_user call against the
bridge-escrow program.

Responsibilities:
- Derive the PDAs / ATAs the program expects (per call, never cached)
- Create the solver's token_in ATA when missing
- Submit compute budget + send_funds_to_user in one transaction

At-most-once per intent_id is enforced by the program's intent state
account. A repeated call surfaces as EscrowCallError, never as success.

The send path is blocking (sync solana-py Client) and runs in a worker
thread so the orchestrator's event loop keeps serving other intents.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from typing import Callable, Optional

from solana.rpc.api import Client
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed, Processed
from solana.rpc.core import TransactionExpiredBlockheightExceededError, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.token.instructions import create_associated_token_account, get_associated_token_address

from src.settlement import address_book as ab
from src.settlement.address_book import AddressBook
from src.settlement.balance_oracle import RPC_ERRORS, BalanceOracle
from src.settlement.errors import EscrowCallError, IntentValidationError, ProviderError
from src.settlement.instructions import SettlementAddressSet, build_settlement_instructions
from src.settlement.intent import MAX_SEED_LEN, DomainMode
from src.shared.system.logging import Logger

SEND_ERRORS = RPC_ERRORS + (UnconfirmedTxError, TransactionExpiredBlockheightExceededError)

_CUSTOM_CODE_PATTERNS = (
    re.compile(r"Custom\((\d+)\)"),
    re.compile(r"custom program error: 0x([0-9a-fA-F]+)"),
)


def extract_program_error_code(error: object) -> Optional[int]:
    """Pull the custom program error code out of an RPC / transaction error."""
    text = str(error)
    match = _CUSTOM_CODE_PATTERNS[0].search(text)
    if match:
        return int(match.group(1))
    match = _CUSTOM_CODE_PATTERNS[1].search(text)
    if match:
        return int(match.group(1), 16)
    return None


class SettlementCoordinator:
    """
    Usage:
        coordinator = SettlementCoordinator(rpc_url, keypair, address_book, oracle)
        sig = await coordinator.settle(intent_id, token_in, token_out, user, solver_out, DomainMode.SINGLE)
    """

    def __init__(
        self,
        rpc_url: str,
        keypair: Keypair,
        address_book: AddressBook,
        oracle: BalanceOracle,
        compute_unit_limit: int = 1_000_000,
        heap_frame_bytes: int = 128 * 1024,
        client_factory: Optional[Callable[[str], Client]] = None,
    ):
        self.rpc_url = rpc_url
        self.keypair = keypair
        self.address_book = address_book
        self.oracle = oracle
        self.compute_unit_limit = compute_unit_limit
        self.heap_frame_bytes = heap_frame_bytes
        factory = client_factory or (lambda url: Client(url, commitment=Processed))
        # One blocking client shared by every settle() worker thread
        self._sync_client = factory(rpc_url)

    @property
    def async_client(self) -> AsyncClient:
        return self.oracle.client

    # ═══════════════════════════════════════════════════════════════════════
    # ADDRESS DERIVATION
    # ═══════════════════════════════════════════════════════════════════════

    def derive_addresses(
        self,
        intent_id: str,
        program_id: Pubkey,
        token_in: str,
        token_out: str,
        user: str,
        domain_mode: DomainMode,
    ) -> SettlementAddressSet:
        """
        Compute the account set for one send_funds_to_user call.

        Single domain: token_in + auctioneer/solver token_in escrow ATAs.
        Cross domain: solana-ibc bridge accounts, token_in side left unset.
        """
        if len(intent_id.encode()) > MAX_SEED_LEN:
            raise IntentValidationError(f"intent_id longer than {MAX_SEED_LEN} bytes: {intent_id!r}")

        try:
            user_pk = Pubkey.from_string(user)
            token_out_pk = Pubkey.from_string(token_out)
        except ValueError as e:
            raise IntentValidationError(f"Invalid settlement address: {e}") from e

        solver = self.keypair.pubkey()
        intent_state, _ = Pubkey.find_program_address([b"intent", intent_id.encode()], program_id)
        auctioneer_state, _ = Pubkey.find_program_address([b"auctioneer"], program_id)

        common = dict(
            domain_mode=domain_mode,
            intent=intent_state,
            auctioneer_state=auctioneer_state,
            solver=solver,
            auctioneer=self.address_book.auctioneer_pubkey,
            token_out=token_out_pk,
            solver_token_out_account=get_associated_token_address(solver, token_out_pk),
            user_token_out_account=get_associated_token_address(user_pk, token_out_pk),
        )

        if domain_mode is DomainMode.SINGLE:
            try:
                token_in_pk = Pubkey.from_string(token_in)
            except ValueError as e:
                raise IntentValidationError(f"Invalid token_in address: {e}") from e
            return SettlementAddressSet(
                **common,
                token_in=token_in_pk,
                auctioneer_token_in_account=get_associated_token_address(auctioneer_state, token_in_pk),
                solver_token_in_account=get_associated_token_address(solver, token_in_pk),
            )

        ibc = self.address_book.ibc_program
        storage, _ = Pubkey.find_program_address([ab.SOLANA_IBC_STORAGE_SEED], ibc)
        trie, _ = Pubkey.find_program_address([ab.TRIE_SEED], ibc)
        chain, _ = Pubkey.find_program_address([ab.CHAIN_SEED], ibc)
        mint_authority, _ = Pubkey.find_program_address([ab.MINT_ESCROW_SEED], ibc)
        dummy_mint, _ = Pubkey.find_program_address([b"dummy"], program_id)
        hashed_denom = hashlib.sha256(str(dummy_mint).encode()).digest()
        escrow_account, _ = Pubkey.find_program_address([ab.ESCROW_SEED, hashed_denom], ibc)
        fee_collector, _ = Pubkey.find_program_address([ab.FEE_SEED], ibc)

        return SettlementAddressSet(
            **common,
            ibc_program=ibc,
            receiver=user_pk,
            storage=storage,
            trie=trie,
            chain=chain,
            mint_authority=mint_authority,
            token_mint=dummy_mint,
            escrow_account=escrow_account,
            receiver_token_account=get_associated_token_address(solver, dummy_mint),
            fee_collector=fee_collector,
        )

    # ═══════════════════════════════════════════════════════════════════════
    # ACCOUNT PREREQUISITES
    # ═══════════════════════════════════════════════════════════════════════

    async def ensure_input_account(self, owner: str, mint: str) -> Pubkey:
        """
        Create owner's ATA for mint if it does not exist. Idempotent.

        Raises:
            ProviderError: lookup or creation failed.
        """
        owner_pk = Pubkey.from_string(owner)
        mint_pk = Pubkey.from_string(mint)
        ata = get_associated_token_address(owner_pk, mint_pk)

        if await self.oracle.account_exists(ata):
            return ata

        Logger.info(f"[ACCOUNT] Creating token account {ata} for mint {mint[:6]}...")
        payer = self.keypair.pubkey()
        ix = create_associated_token_account(payer=payer, owner=owner_pk, mint=mint_pk)

        client = self.async_client
        try:
            blockhash = (await client.get_latest_blockhash()).value.blockhash
            msg = MessageV0.try_compile(
                payer=payer,
                instructions=[ix],
                address_lookup_table_accounts=[],
                recent_blockhash=blockhash,
            )
            tx = VersionedTransaction(msg, [self.keypair])
            resp = await client.send_transaction(tx, opts=TxOpts(preflight_commitment=Confirmed))
            await client.confirm_transaction(resp.value, commitment=Confirmed)
        except SEND_ERRORS as e:
            raise ProviderError(f"Failed to create token account {ata}: {e}") from e

        Logger.success(f"[ACCOUNT] Token account {ata} created")
        return ata

    # ═══════════════════════════════════════════════════════════════════════
    # SETTLEMENT
    # ═══════════════════════════════════════════════════════════════════════

    async def settle(
        self,
        intent_id: str,
        token_in: str,
        token_out: str,
        user: str,
        solver_out: Optional[str],
        domain_mode: DomainMode,
    ) -> str:
        """
        Submit send_funds_to_user and wait for confirmation.

        Raises:
            EscrowCallError: program rejected the call (duplicates included)
                or the transaction could not be landed.
        """
        program_id = self.address_book.escrow_program
        addresses = self.derive_addresses(intent_id, program_id, token_in, token_out, user, domain_mode)
        instructions = build_settlement_instructions(
            program_id,
            addresses,
            intent_id,
            solver_out,
            compute_unit_limit=self.compute_unit_limit,
            heap_frame_bytes=self.heap_frame_bytes,
        )

        Logger.info(f"[SETTLE] send_funds_to_user intent={intent_id} mode={domain_mode.value}")
        return await asyncio.to_thread(self._send_blocking, instructions)

    def _send_blocking(self, instructions) -> str:
        """Worker-thread body: sign, send (skip preflight), confirm."""
        client = self._sync_client
        payer = self.keypair.pubkey()

        try:
            blockhash = client.get_latest_blockhash().value.blockhash
            msg = MessageV0.try_compile(
                payer=payer,
                instructions=instructions,
                address_lookup_table_accounts=[],
                recent_blockhash=blockhash,
            )
            tx = VersionedTransaction(msg, [self.keypair])
            signature = client.send_transaction(tx, opts=TxOpts(skip_preflight=True)).value
            confirmation = client.confirm_transaction(signature, commitment=Confirmed)
        except SEND_ERRORS as e:
            raise EscrowCallError(f"Transaction failed: {e}", code=extract_program_error_code(e)) from e

        statuses = confirmation.value or []
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise EscrowCallError(
                f"Transaction {signature} failed: {status.err}",
                code=extract_program_error_code(status.err),
            )

        Logger.success(f"[SETTLE] Settlement confirmed: {signature}")
        return str(signature)
