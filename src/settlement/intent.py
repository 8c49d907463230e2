"""
Intent Schemas
==============
Pydantic models for won intents handed over by the auction side.

An intent is read-only to the solver. Validation happens here, at the
ingestion boundary: unknown operations, unknown payload variants,
unsupported chains and malformed Solana addresses are rejected before
any orchestration starts.

Amounts stay untrusted strings on the model and are parsed with
`parse_amount` only where arithmetic needs them.

Example:
    intent = Intent.from_payload({
        "intent_id": "42",
        "src_chain": "solana",
        "dst_chain": "solana",
        "function_name": "swap",
        "inputs": {"SwapTransfer": {"user_account": "...", "token_in": "...", "amount_in": "1000000"}},
        "outputs": {"SwapTransfer": {"token_out": "...", "amount_out": "990000", "dst_chain_user": "..."}},
    })
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from solders.pubkey import Pubkey

from src.settlement.errors import IntentValidationError, ParseError

SUPPORTED_CHAINS = ("solana", "ethereum")
_DIGITS = re.compile(r"[0-9]+")
MAX_SEED_LEN = 32
U64_MAX = 2**64 - 1
UINT256_MAX = 2**256 - 1


class DomainMode(str, Enum):
    """Same-chain or cross-chain settlement."""
    SINGLE = "single"
    CROSS = "cross"


class IntentOperation(str, Enum):
    """Operations a won intent can request."""
    SWAP = "swap"
    TRANSFER = "transfer"


def _unwrap_variant(value: Any) -> Any:
    """Accept both {"SwapTransfer": {...}} and {"type": "SwapTransfer", ...}."""
    if isinstance(value, dict) and len(value) == 1:
        (tag, body), = value.items()
        if isinstance(body, dict):
            return {"type": tag, **body}
    return value


class SwapTransferInput(BaseModel):
    """Source-side leg: what the user pays."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Literal["SwapTransfer"] = "SwapTransfer"
    user_account: str = ""
    token_in: str = Field(..., min_length=1)
    amount_in: str = Field(..., description="Raw amount in smallest units, unparsed")


class SwapTransferOutput(BaseModel):
    """Destination-side leg: what the user receives."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Literal["SwapTransfer"] = "SwapTransfer"
    token_out: str = Field(..., min_length=1)
    amount_out: str = Field(..., description="Raw amount in smallest units, unparsed")
    dst_chain_user: str = Field(..., min_length=1)


class Intent(BaseModel):
    """A won intent. Immutable."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    intent_id: str = Field(..., min_length=1)
    src_chain: str
    dst_chain: str
    function_name: IntentOperation
    inputs: SwapTransferInput
    outputs: SwapTransferOutput
    solver_out: Optional[str] = Field(default=None, description="Override for the solver payout reference")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("inputs", "outputs"):
            if key in data:
                data[key] = _unwrap_variant(data[key])
        for key in ("src_chain", "dst_chain", "function_name"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip().lower()
        return data

    @model_validator(mode="after")
    def _check_chains_and_addresses(self) -> "Intent":
        if len(self.intent_id.encode()) > MAX_SEED_LEN:
            raise ValueError(f"intent_id longer than {MAX_SEED_LEN} bytes")
        for chain in (self.src_chain, self.dst_chain):
            if chain not in SUPPORTED_CHAINS:
                raise ValueError(f"chain not supported: {chain}")

        if self.dst_chain == "solana":
            _require_pubkey("token_out", self.outputs.token_out)
            _require_pubkey("dst_chain_user", self.outputs.dst_chain_user)
        if self.src_chain == "solana":
            _require_pubkey("token_in", self.inputs.token_in)
        return self

    # ─────────────────────────────────────────────────────────────────────

    @classmethod
    def from_payload(cls, payload: Any) -> "Intent":
        """Validate a raw payload, raising IntentValidationError on rejection."""
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise IntentValidationError(f"Invalid intent: {e}") from e

    @property
    def domain_mode(self) -> DomainMode:
        return DomainMode.SINGLE if self.src_chain == self.dst_chain else DomainMode.CROSS

    @property
    def token_in(self) -> str:
        return self.inputs.token_in

    @property
    def token_out(self) -> str:
        return self.outputs.token_out

    @property
    def user(self) -> str:
        return self.outputs.dst_chain_user

    def parsed_amount_in(self) -> int:
        return parse_amount("amount_in", self.inputs.amount_in, bounded=self.src_chain == "solana")

    def parsed_amount_out(self) -> int:
        return parse_amount("amount_out", self.outputs.amount_out, bounded=self.dst_chain == "solana")


def _require_pubkey(field: str, value: str) -> None:
    try:
        Pubkey.from_string(value)
    except Exception as e:
        raise ValueError(f"{field} is not a valid Solana address: {value!r}") from e


def parse_amount(field: str, value: str, bounded: bool = True) -> int:
    """
    Parse an untrusted raw-unit amount string into an int.

    `bounded` enforces the SPL token u64 limit; EVM-side amounts are held
    to uint256 instead. The digit count is checked before conversion.

    Raises:
        ParseError: not a base-10 integer, negative, or out of range.
    """
    text = value.strip() if isinstance(value, str) else value
    if not isinstance(text, str) or not _DIGITS.fullmatch(text):
        raise ParseError(field, str(value), "expected a non-negative integer")

    limit, label = (U64_MAX, "exceeds u64") if bounded else (UINT256_MAX, "exceeds uint256")
    significant = text.lstrip("0") or "0"
    if len(significant) > len(str(limit)):
        raise ParseError(field, _abbreviate(text), label)

    amount = int(significant)
    if amount > limit:
        raise ParseError(field, text, label)
    return amount


def _abbreviate(text: str, keep: int = 24) -> str:
    return text if len(text) <= keep else f"{text[:keep]}...({len(text)} digits)"
