"""
Address Book
============
Well-known accounts the settlement pipeline talks to.

Reference mint, program ids, the auctioneer and per-chain solver payout
addresses live here and are injected into the coordinator and the
orchestrator instead of being literals in their logic.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from solders.pubkey import Pubkey

from src.settlement.errors import ConfigurationError, IntentValidationError

# Mainnet defaults
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
SOLANA_IBC_PROGRAM_ID = "2HLLVco5HvwWriNbUhmVwA2pCetRkpgrqwnjcsZdyTKT"
AUCTIONEER = "5zCZ3jk8EZnJyG7fhDqD6tmqiYTLZjik5HUpGMnHrZfC"

# solana-ibc PDA seeds
SOLANA_IBC_STORAGE_SEED = b"private"
TRIE_SEED = b"trie"
CHAIN_SEED = b"chain"
MINT_ESCROW_SEED = b"mint_escrow"
ESCROW_SEED = b"escrow"
FEE_SEED = b"fee"


@dataclass(frozen=True)
class AddressBook:
    """Immutable set of counterpart addresses."""

    bridge_escrow_program_id: str
    solver_addresses: Dict[str, str] = field(default_factory=dict)
    reference_mint: str = USDT_MINT
    solana_ibc_program_id: str = SOLANA_IBC_PROGRAM_ID
    auctioneer: str = AUCTIONEER

    def __post_init__(self):
        for name in ("bridge_escrow_program_id", "reference_mint", "solana_ibc_program_id", "auctioneer"):
            value = getattr(self, name)
            try:
                Pubkey.from_string(value)
            except Exception as e:
                raise ConfigurationError(f"AddressBook.{name} is not a valid address: {value!r}") from e

    @property
    def escrow_program(self) -> Pubkey:
        return Pubkey.from_string(self.bridge_escrow_program_id)

    @property
    def ibc_program(self) -> Pubkey:
        return Pubkey.from_string(self.solana_ibc_program_id)

    @property
    def auctioneer_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.auctioneer)

    def solver_out_for(self, src_chain: str) -> str:
        """Solver payout reference on the intent's source chain."""
        try:
            return self.solver_addresses[src_chain]
        except KeyError:
            raise IntentValidationError(f"No solver payout address for chain {src_chain!r}") from None

    @classmethod
    def from_env(cls, solver_pubkey: str, environ: Optional[Mapping[str, str]] = None) -> "AddressBook":
        """
        Build from environment overrides.

        BRIDGE_ESCROW_PROGRAM_ID is required. The Solana payout address
        defaults to the solver's own wallet.
        """
        environ = os.environ if environ is None else environ

        program_id = environ.get("BRIDGE_ESCROW_PROGRAM_ID", "").strip()
        if not program_id:
            raise ConfigurationError("BRIDGE_ESCROW_PROGRAM_ID must be set")

        solver_addresses = {"solana": environ.get("SOLVER_ADDRESS_SOLANA", solver_pubkey)}
        eth = environ.get("SOLVER_ADDRESS_ETHEREUM", "").strip()
        if eth:
            solver_addresses["ethereum"] = eth

        return cls(
            bridge_escrow_program_id=program_id,
            solver_addresses=solver_addresses,
            reference_mint=environ.get("REFERENCE_MINT", USDT_MINT),
            solana_ibc_program_id=environ.get("SOLANA_IBC_PROGRAM_ID", SOLANA_IBC_PROGRAM_ID),
            auctioneer=environ.get("AUCTIONEER", AUCTIONEER),
        )
