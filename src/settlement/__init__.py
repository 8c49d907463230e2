"""
Intent Settlement
=================
Settles won cross-chain intents on Solana.

Components (import from their modules):
- balance_oracle.BalanceOracle: token balance reads + single-retry delta sampling
- conversion_planner.ConversionPlanner: Jupiter conversion legs (exact-in / exact-out)
- coordinator.SettlementCoordinator: bridge-escrow send_funds_to_user
- orchestrator.SettlementOrchestrator: per-intent state machine

Only leaf types are re-exported here: src.shared.execution imports the
error taxonomy from this package.
"""

from src.settlement.errors import (
    SolverError,
    ConfigurationError,
    IntentValidationError,
    ParseError,
    ProviderError,
    QuoteUnavailable,
    ConversionExecutionError,
    EscrowCallError,
)

from src.settlement.intent import (
    Intent,
    IntentOperation,
    DomainMode,
    parse_amount,
)

from src.settlement.address_book import AddressBook


__all__ = [
    # Errors
    "SolverError",
    "ConfigurationError",
    "IntentValidationError",
    "ParseError",
    "ProviderError",
    "QuoteUnavailable",
    "ConversionExecutionError",
    "EscrowCallError",
    # Intent
    "Intent",
    "IntentOperation",
    "DomainMode",
    "parse_amount",
    "AddressBook",
]
