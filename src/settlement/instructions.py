"""
Settlement Instruction Builder
==============================
Pure, deterministic construction of the bridge-escrow
`send_funds_to_user` instruction.

No RPC, no keypair. 100% testable offline.

Account order follows the program's SplTokenTransfer accounts struct.
Optional accounts left unset are passed as the escrow program id, the
Anchor convention for `None`.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, fields
from typing import List, Optional

from solders.compute_budget import request_heap_frame, set_compute_unit_limit
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from src.settlement.intent import DomainMode

SINGLE_DOMAIN_FIELDS = ("token_in", "auctioneer_token_in_account", "solver_token_in_account")
CROSS_DOMAIN_FIELDS = (
    "ibc_program",
    "receiver",
    "storage",
    "trie",
    "chain",
    "mint_authority",
    "token_mint",
    "escrow_account",
    "receiver_token_account",
    "fee_collector",
)


def anchor_discriminator(name: str) -> bytes:
    """First 8 bytes of sha256("global:<name>")."""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


SEND_FUNDS_TO_USER_DISCRIMINATOR = anchor_discriminator("send_funds_to_user")


# ═══════════════════════════════════════════════════════════════════════════════
# BORSH
# ═══════════════════════════════════════════════════════════════════════════════

def borsh_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def borsh_option_string(value: Optional[str]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + borsh_string(value)


def borsh_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def encode_send_funds_to_user(intent_id: str, solver_out: Optional[str], single_domain: bool) -> bytes:
    return (
        SEND_FUNDS_TO_USER_DISCRIMINATOR
        + borsh_string(intent_id)
        + borsh_option_string(solver_out)
        + borsh_bool(single_domain)
    )


# ═══════════════════════════════════════════════════════════════════════════════
# ACCOUNT SET
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SettlementAddressSet:
    """
    Accounts for one send_funds_to_user call. Recomputed per call.

    Exactly one of the same-domain group (token_in + escrow token accounts)
    or the cross-domain group (ibc accounts) is populated.
    """

    domain_mode: DomainMode
    intent: Pubkey
    auctioneer_state: Pubkey
    solver: Pubkey
    auctioneer: Pubkey
    token_out: Pubkey
    solver_token_out_account: Pubkey
    user_token_out_account: Pubkey

    # Same-domain only
    token_in: Optional[Pubkey] = None
    auctioneer_token_in_account: Optional[Pubkey] = None
    solver_token_in_account: Optional[Pubkey] = None

    # Cross-domain only
    ibc_program: Optional[Pubkey] = None
    receiver: Optional[Pubkey] = None
    storage: Optional[Pubkey] = None
    trie: Optional[Pubkey] = None
    chain: Optional[Pubkey] = None
    mint_authority: Optional[Pubkey] = None
    token_mint: Optional[Pubkey] = None
    escrow_account: Optional[Pubkey] = None
    receiver_token_account: Optional[Pubkey] = None
    fee_collector: Optional[Pubkey] = None

    def __post_init__(self):
        single = [name for name in SINGLE_DOMAIN_FIELDS if getattr(self, name) is not None]
        cross = [name for name in CROSS_DOMAIN_FIELDS if getattr(self, name) is not None]

        if self.domain_mode is DomainMode.SINGLE:
            if cross:
                raise ValueError(f"single-domain address set carries cross-domain accounts: {cross}")
            if len(single) != len(SINGLE_DOMAIN_FIELDS):
                raise ValueError("single-domain address set is missing token_in escrow accounts")
        else:
            if single:
                raise ValueError(f"cross-domain address set carries same-domain accounts: {single}")
            if len(cross) != len(CROSS_DOMAIN_FIELDS):
                raise ValueError("cross-domain address set is missing bridge accounts")

    def populated(self) -> List[str]:
        return [f.name for f in fields(self) if f.name != "domain_mode" and getattr(self, f.name) is not None]


def _meta(pubkey: Optional[Pubkey], program_id: Pubkey, writable: bool = False, signer: bool = False) -> AccountMeta:
    if pubkey is None:
        return AccountMeta(program_id, is_signer=False, is_writable=False)
    return AccountMeta(pubkey, is_signer=signer, is_writable=writable)


def build_send_funds_to_user_ix(
    program_id: Pubkey,
    addresses: SettlementAddressSet,
    intent_id: str,
    solver_out: Optional[str],
) -> Instruction:
    """Build the send_funds_to_user instruction for the given account layout."""
    a = addresses
    accounts = [
        _meta(a.intent, program_id, writable=True),
        _meta(a.auctioneer_state, program_id, writable=True),
        _meta(a.solver, program_id, writable=True, signer=True),
        _meta(a.auctioneer, program_id, writable=True),
        _meta(a.token_in, program_id),
        _meta(a.token_out, program_id),
        _meta(a.auctioneer_token_in_account, program_id, writable=True),
        _meta(a.solver_token_in_account, program_id, writable=True),
        _meta(a.solver_token_out_account, program_id, writable=True),
        _meta(a.user_token_out_account, program_id, writable=True),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        _meta(a.ibc_program, program_id),
        _meta(a.receiver, program_id, writable=True),
        _meta(a.storage, program_id, writable=True),
        _meta(a.trie, program_id, writable=True),
        _meta(a.chain, program_id, writable=True),
        _meta(a.mint_authority, program_id, writable=True),
        _meta(a.token_mint, program_id, writable=True),
        _meta(a.escrow_account, program_id, writable=True),
        _meta(a.receiver_token_account, program_id, writable=True),
        _meta(a.fee_collector, program_id, writable=True),
    ]
    data = encode_send_funds_to_user(intent_id, solver_out, a.domain_mode is DomainMode.SINGLE)
    return Instruction(program_id=program_id, accounts=accounts, data=data)


def build_settlement_instructions(
    program_id: Pubkey,
    addresses: SettlementAddressSet,
    intent_id: str,
    solver_out: Optional[str],
    compute_unit_limit: int = 1_000_000,
    heap_frame_bytes: int = 128 * 1024,
) -> List[Instruction]:
    """
    Ordered bundle:
    1. SetComputeUnitLimit
    2. RequestHeapFrame
    3. send_funds_to_user
    """
    return [
        set_compute_unit_limit(compute_unit_limit),
        request_heap_frame(heap_frame_bytes),
        build_send_funds_to_user_ix(program_id, addresses, intent_id, solver_out),
    ]
