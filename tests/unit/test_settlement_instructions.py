"""
Settlement Instruction Tests
============================
Offline checks on send_funds_to_user encoding and account layout.
"""

import hashlib
import struct

import pytest
from solders.pubkey import Pubkey


def _single_set(**overrides):
    from src.settlement.instructions import SettlementAddressSet
    from src.settlement.intent import DomainMode

    fields = dict(
        domain_mode=DomainMode.SINGLE,
        intent=Pubkey.new_unique(),
        auctioneer_state=Pubkey.new_unique(),
        solver=Pubkey.new_unique(),
        auctioneer=Pubkey.new_unique(),
        token_out=Pubkey.new_unique(),
        solver_token_out_account=Pubkey.new_unique(),
        user_token_out_account=Pubkey.new_unique(),
        token_in=Pubkey.new_unique(),
        auctioneer_token_in_account=Pubkey.new_unique(),
        solver_token_in_account=Pubkey.new_unique(),
    )
    fields.update(overrides)
    return SettlementAddressSet(**fields)


class TestEncoding:

    def test_discriminator_is_anchor_global_hash(self):
        from src.settlement.instructions import SEND_FUNDS_TO_USER_DISCRIMINATOR

        expected = hashlib.sha256(b"global:send_funds_to_user").digest()[:8]
        assert SEND_FUNDS_TO_USER_DISCRIMINATOR == expected

    def test_args_layout(self):
        from src.settlement.instructions import SEND_FUNDS_TO_USER_DISCRIMINATOR, encode_send_funds_to_user

        data = encode_send_funds_to_user("42", "solver", single_domain=True)

        body = data[8:]
        assert data[:8] == SEND_FUNDS_TO_USER_DISCRIMINATOR
        assert body[:4] == struct.pack("<I", 2)
        assert body[4:6] == b"42"
        assert body[6:7] == b"\x01"
        assert body[7:11] == struct.pack("<I", 6)
        assert body[11:17] == b"solver"
        assert body[17:] == b"\x01"

    def test_none_solver_out_and_cross_flag(self):
        from src.settlement.instructions import encode_send_funds_to_user

        data = encode_send_funds_to_user("7", None, single_domain=False)

        assert data[8:] == struct.pack("<I", 1) + b"7" + b"\x00" + b"\x00"


class TestAddressSet:
    """Exactly one of the same-domain or cross-domain groups is populated."""

    def test_single_set_is_valid(self):
        address_set = _single_set()
        assert "token_in" in address_set.populated()
        assert "ibc_program" not in address_set.populated()

    def test_single_set_rejects_cross_accounts(self):
        with pytest.raises(ValueError, match="cross-domain"):
            _single_set(ibc_program=Pubkey.new_unique())

    def test_single_set_requires_token_in_accounts(self):
        with pytest.raises(ValueError, match="missing"):
            _single_set(solver_token_in_account=None)

    def test_cross_set_rejects_token_in(self):
        from src.settlement.intent import DomainMode

        with pytest.raises(ValueError, match="same-domain"):
            _single_set(domain_mode=DomainMode.CROSS)


class TestInstructionBuilder:

    def test_unset_accounts_become_program_id(self):
        from solders.system_program import ID as SYSTEM_PROGRAM_ID
        from spl.token.constants import TOKEN_PROGRAM_ID

        from src.settlement.instructions import build_send_funds_to_user_ix

        program_id = Pubkey.new_unique()
        address_set = _single_set()
        ix = build_send_funds_to_user_ix(program_id, address_set, "42", None)

        assert ix.program_id == program_id
        assert len(ix.accounts) == 23
        assert ix.accounts[0].pubkey == address_set.intent
        assert ix.accounts[2].pubkey == address_set.solver
        assert ix.accounts[2].is_signer
        assert ix.accounts[4].pubkey == address_set.token_in
        assert ix.accounts[10].pubkey == TOKEN_PROGRAM_ID
        assert ix.accounts[12].pubkey == SYSTEM_PROGRAM_ID

        for meta in ix.accounts[13:]:
            assert meta.pubkey == program_id
            assert not meta.is_writable
            assert not meta.is_signer

    def test_compute_budget_precedes_settlement(self):
        from solders.compute_budget import ID as COMPUTE_BUDGET_ID

        from src.settlement.instructions import build_settlement_instructions

        program_id = Pubkey.new_unique()
        instructions = build_settlement_instructions(program_id, _single_set(), "42", None)

        assert len(instructions) == 3
        assert instructions[0].program_id == COMPUTE_BUDGET_ID
        assert instructions[1].program_id == COMPUTE_BUDGET_ID
        assert instructions[2].program_id == program_id
