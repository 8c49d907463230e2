"""
Settlement Errors
=================
Exception taxonomy for the intent settlement pipeline.

Every error aborts only the intent it was raised for. Nothing here
triggers a retry or a compensating transaction; the message is the
diagnostic handed back to the operator.
"""

from __future__ import annotations

from typing import Optional


class SolverError(Exception):
    """Base class for all solver failures."""


class ConfigurationError(SolverError):
    """Missing or malformed keypair / RPC endpoint. Fatal before any run starts."""


class IntentValidationError(SolverError):
    """Intent rejected at ingestion (unknown variant, unsupported chain, bad address)."""


class ParseError(SolverError):
    """Raised when an untrusted amount string is not a non-negative integer."""

    def __init__(self, field: str, value: str, reason: str = ""):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(str(self))

    def __str__(self) -> str:
        msg = f"Failed to parse {self.field}: {self.value!r}"
        return f"{msg} ({self.reason})" if self.reason else msg


class ProviderError(SolverError):
    """Ledger / network failure on a read or simulation."""


class QuoteUnavailable(SolverError):
    """Router has no route for the pair, or the router is unreachable."""


class ConversionExecutionError(SolverError):
    """
    Conversion leg failed (simulation error, router rejection, send failure).

    The solver inventory may already be partially adjusted when this
    surfaces; reconcile manually.
    """


class EscrowCallError(SolverError):
    """
    The settlement program rejected send_funds_to_user.

    `code` is the custom program error code when the RPC error carried one
    (duplicate settlement of an intent_id included), otherwise None.
    """

    def __init__(self, message: str, code: Optional[int] = None):
        self.message = message
        self.code = code
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.code is None:
            return f"Escrow call failed: {self.message}"
        return f"Escrow call failed (program error {self.code} / {hex(self.code)}): {self.message}"
