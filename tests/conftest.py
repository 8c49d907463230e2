"""
Intent Solver Test Configuration
================================
Shared fixtures and pytest markers for the test suite.
"""

import pytest
import os
import sys

from solders.keypair import Keypair
from solders.pubkey import Pubkey

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import Settings
from src.settlement.address_book import AddressBook, USDT_MINT
from src.shared.system.logging import Logger


USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
ESCROW_PROGRAM_ID = str(Pubkey.new_unique())


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep Rich console output out of test logs."""
    Logger.set_silent(True)
    yield
    Logger.set_silent(False)


@pytest.fixture
def solver_keypair():
    return Keypair()


@pytest.fixture
def settings(solver_keypair):
    """Settings with zero retry delay and no file logging."""
    return Settings(
        keypair=solver_keypair,
        rpc_url="http://localhost:8899",
        balance_retry_delay_sec=0,
        log_dir="",
    )


@pytest.fixture
def address_book(solver_keypair):
    return AddressBook(
        bridge_escrow_program_id=ESCROW_PROGRAM_ID,
        solver_addresses={
            "solana": str(solver_keypair.pubkey()),
            "ethereum": "0x7ab8eD4A1d3c6b0bD3f2c9c0B2e5B5a6f1f0C0dE",
        },
        reference_mint=USDT_MINT,
    )


@pytest.fixture
def user_pubkey():
    return str(Keypair().pubkey())


@pytest.fixture
def intent_payload(user_pubkey):
    """Factory for intent payloads in the auctioneer's externally-tagged JSON shape."""

    def _create(
        user: str = user_pubkey,
        src_chain: str = "solana",
        dst_chain: str = "solana",
        token_in: str = BONK_MINT,
        token_out: str = USDT_MINT,
        amount_in: str = "1000000",
        amount_out: str = "990000",
        intent_id: str = "42",
        function_name: str = "swap",
    ) -> dict:
        return {
            "intent_id": intent_id,
            "src_chain": src_chain,
            "dst_chain": dst_chain,
            "function_name": function_name,
            "inputs": {"SwapTransfer": {"user_account": user, "token_in": token_in, "amount_in": amount_in}},
            "outputs": {"SwapTransfer": {"token_out": token_out, "amount_out": amount_out, "dst_chain_user": user}},
        }

    return _create
