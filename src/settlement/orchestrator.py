"""
Settlement Orchestrator
=======================
Per-intent sequencing for a won intent on Solana.

    START -> PRE_CONVERSION? -> SETTLED -> POST_CONVERSION? -> RECONCILED
      \\___________\\________________\\_______________________-> FAILED

Rules:
- Domain mode comes only from intent.domain_mode (src_chain == dst_chain).
- A conversion leg must land before the next step runs.
- Exactly one settlement attempt, never retried here.
- Nothing is unwound: failures after settlement become report warnings.
- P&L is computed for single-domain intents only.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed

from src.settlement.address_book import AddressBook
from src.settlement.balance_oracle import BalanceOracle, BalanceSnapshot
from src.settlement.conversion_planner import ConversionPlanner
from src.settlement.coordinator import SettlementCoordinator
from src.settlement.errors import (
    ConversionExecutionError,
    EscrowCallError,
    IntentValidationError,
    ParseError,
    ProviderError,
    QuoteUnavailable,
)
from src.settlement.intent import DomainMode, Intent
from src.shared.execution.jupiter_router import JupiterRouter, SwapMode
from src.shared.system.logging import Logger

if TYPE_CHECKING:
    from config.settings import Settings

EXECUTION_CHAIN = "solana"


class SettlementStage(str, Enum):
    START = "START"
    PRE_CONVERSION = "PRE_CONVERSION"
    SETTLED = "SETTLED"
    POST_CONVERSION = "POST_CONVERSION"
    RECONCILED = "RECONCILED"
    FAILED = "FAILED"


@dataclass
class SettlementReport:
    """Outcome of one orchestration run."""

    intent_id: str
    domain_mode: DomainMode
    stage: SettlementStage = SettlementStage.START
    failed_stage: Optional[SettlementStage] = None

    pre_conversion_tx: Optional[str] = None
    settlement_tx: Optional[str] = None
    post_conversion_tx: Optional[str] = None

    # Reference-asset reconciliation, single domain only
    balance: Optional[BalanceSnapshot] = None
    pnl: Optional[Decimal] = None

    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.stage == SettlementStage.RECONCILED

    @property
    def won(self) -> Optional[bool]:
        if self.pnl is None:
            return None
        return self.pnl >= 0

    def summary(self) -> str:
        if self.stage == SettlementStage.FAILED:
            return f"intent {self.intent_id}: FAILED at {self.failed_stage.value if self.failed_stage else '?'}: {self.error}"
        if self.pnl is not None:
            verb = "won" if self.won else "lost"
            return f"intent {self.intent_id}: {verb} {abs(self.pnl)}"
        return f"intent {self.intent_id}: {self.stage.value} ({self.domain_mode.value})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent_id": self.intent_id,
            "domain_mode": self.domain_mode.value,
            "stage": self.stage.value,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "pre_conversion_tx": self.pre_conversion_tx,
            "settlement_tx": self.settlement_tx,
            "post_conversion_tx": self.post_conversion_tx,
            "baseline": str(self.balance.baseline) if self.balance else None,
            "pnl": str(self.pnl) if self.pnl is not None else None,
            "warnings": list(self.warnings),
            "error": self.error,
        }


class SettlementOrchestrator:
    """
    Composes BalanceOracle, ConversionPlanner and SettlementCoordinator
    for one intent at a time. Holds no per-intent state between runs.

    Usage:
        async with SettlementOrchestrator.from_settings(settings, book) as orch:
            report = await orch.run(intent)
    """

    def __init__(
        self,
        settings: Settings,
        address_book: AddressBook,
        oracle: BalanceOracle,
        planner: ConversionPlanner,
        coordinator: SettlementCoordinator,
    ):
        self.settings = settings
        self.address_book = address_book
        self.oracle = oracle
        self.planner = planner
        self.coordinator = coordinator
        self._owned_client: Optional[AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings, address_book: AddressBook) -> "SettlementOrchestrator":
        client = AsyncClient(settings.rpc_url, commitment=Confirmed)
        oracle = BalanceOracle(client)
        router = JupiterRouter(settings.jupiter_api_url, timeout=settings.http_timeout_sec)
        planner = ConversionPlanner(
            router,
            client,
            settings.keypair,
            slippage_bps=settings.slippage_bps,
            only_direct_routes=settings.only_direct_routes,
        )
        coordinator = SettlementCoordinator(
            settings.rpc_url,
            settings.keypair,
            address_book,
            oracle,
            compute_unit_limit=settings.compute_unit_limit,
            heap_frame_bytes=settings.heap_frame_bytes,
        )
        orchestrator = cls(settings, address_book, oracle, planner, coordinator)
        orchestrator._owned_client = client
        return orchestrator

    async def close(self) -> None:
        if self._owned_client is not None:
            await self._owned_client.close()
            self._owned_client = None

    async def __aenter__(self) -> "SettlementOrchestrator":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ═══════════════════════════════════════════════════════════════════════
    # RUN
    # ═══════════════════════════════════════════════════════════════════════

    async def run(self, intent: Intent) -> SettlementReport:
        """
        Settle one intent.

        Raises:
            ParseError: amount_in / amount_out not parseable (no ledger call made).
            IntentValidationError: intent not executable on Solana.

        Every other failure is returned in the report.
        """
        if intent.dst_chain != EXECUTION_CHAIN:
            raise IntentValidationError(f"dst_chain {intent.dst_chain!r} is not executable here")

        amount_out = intent.parsed_amount_out()
        amount_in = intent.parsed_amount_in()
        solver_out = intent.solver_out or self.address_book.solver_out_for(intent.src_chain)

        mode = intent.domain_mode
        reference = self.address_book.reference_mint
        solver = self.settings.solver_pubkey
        report = SettlementReport(intent_id=intent.intent_id, domain_mode=mode)

        Logger.section(f"Intent {intent.intent_id} ({intent.function_name.value}, {intent.src_chain} -> {intent.dst_chain})")

        # START
        snapshot: Optional[BalanceSnapshot] = None
        if mode is DomainMode.SINGLE:
            try:
                snapshot = await self.oracle.snapshot(solver, reference)
            except ProviderError as e:
                return self._fail(report, f"Could not read reference balance: {e}")
            Logger.debug(f"[BALANCE] Baseline {snapshot.baseline} on intent {intent.intent_id}")

        # PRE_CONVERSION: reference -> token_out, exactly amount_out
        if self.planner.needs_conversion(intent.token_out, reference):
            report.stage = SettlementStage.PRE_CONVERSION
            try:
                report.pre_conversion_tx = await self.planner.execute(
                    reference, intent.token_out, amount_out, SwapMode.EXACT_OUT
                )
            except (QuoteUnavailable, ConversionExecutionError) as e:
                return self._fail(
                    report,
                    f"Error occurred on Solana swap reference -> token_out (manual swap required): {e}",
                )

        # SETTLED
        if mode is DomainMode.SINGLE:
            try:
                await self.coordinator.ensure_input_account(solver, intent.token_in)
            except ProviderError as e:
                Logger.error(f"[ACCOUNT] Failed to create token account: {e}")

        report.stage = SettlementStage.SETTLED
        try:
            report.settlement_tx = await self.coordinator.settle(
                intent.intent_id,
                intent.token_in,
                intent.token_out,
                intent.user,
                solver_out,
                mode,
            )
        except EscrowCallError as e:
            message = f"Error occurred on send token_out -> user & user sends token_in -> solver: {e}"
            if report.pre_conversion_tx:
                message += (
                    f". Solver now holds {amount_out} raw units of {intent.token_out} "
                    f"from pre-conversion {report.pre_conversion_tx}; reconcile inventory manually"
                )
                Logger.critical(f"[SETTLE] intent {intent.intent_id}: pre-converted {intent.token_out} left in solver inventory")
            return self._fail(report, message)

        if mode is DomainMode.CROSS:
            Logger.info(
                f"[SOLVER] You sent token_out to user for intent_id {intent.intent_id}. "
                f"You will receive token_in from user on {intent.src_chain}"
            )
            report.stage = SettlementStage.RECONCILED
            return report

        # POST_CONVERSION: token_in -> reference, exactly amount_in
        if self.planner.needs_conversion(intent.token_in, reference):
            report.stage = SettlementStage.POST_CONVERSION
            try:
                report.post_conversion_tx = await self.planner.execute(
                    intent.token_in, reference, amount_in, SwapMode.EXACT_IN
                )
            except (QuoteUnavailable, ConversionExecutionError) as e:
                self._warn(report, f"Error on Solana swap token_in -> reference: {e}")

        # RECONCILED
        report.stage = SettlementStage.RECONCILED
        try:
            delta = await self.oracle.sample_delta(
                snapshot.owner, snapshot.mint, snapshot.baseline, self.settings.balance_retry_delay_sec
            )
        except ProviderError as e:
            self._warn(report, f"Could not reconcile reference balance: {e}")
            return report

        report.balance = replace(snapshot, current=snapshot.baseline + delta)
        report.pnl = report.balance.delta

        verb = "won" if report.pnl >= 0 else "lost"
        Logger.info(f"[PNL] You have {verb} {abs(report.pnl)} of the reference asset on intent {intent.intent_id}")
        return report

    async def run_many(self, intents: Iterable[Intent]) -> List[SettlementReport]:
        """Run intents concurrently; ingestion errors become FAILED reports."""
        return list(await asyncio.gather(*(self._run_guarded(intent) for intent in intents)))

    async def _run_guarded(self, intent: Intent) -> SettlementReport:
        try:
            return await self.run(intent)
        except (ParseError, IntentValidationError) as e:
            report = SettlementReport(intent_id=intent.intent_id, domain_mode=intent.domain_mode)
            return self._fail(report, str(e))

    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def _fail(report: SettlementReport, message: str) -> SettlementReport:
        report.failed_stage = report.stage
        report.stage = SettlementStage.FAILED
        report.error = message
        Logger.error(f"[SOLVER] intent {report.intent_id}: {message}")
        return report

    @staticmethod
    def _warn(report: SettlementReport, message: str) -> None:
        report.warnings.append(message)
        Logger.warning(f"[SOLVER] intent {report.intent_id}: {message}")
