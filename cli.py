"""
Intent Solver CLI
=================
Command-line entrypoint using Typer + Rich.

Commands:
    python cli.py settle intents.json
    python cli.py addresses intents.json
    python cli.py quote <MINT_IN> <MINT_OUT> <AMOUNT> [--exact-out]
    python cli.py simulate <MINT_IN> <MINT_OUT> <AMOUNT_IN> [--user PUBKEY]
    python cli.py balance [MINT]

Reads SOLANA_KEYPAIR, SOLANA_RPC and BRIDGE_ESCROW_PROGRAM_ID from the
environment (.env supported).
"""

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from solders.pubkey import Pubkey

from config.settings import Settings
from src.settlement import AddressBook, ConfigurationError, Intent, SolverError
from src.settlement.orchestrator import SettlementOrchestrator, SettlementReport, SettlementStage
from src.shared.execution.jupiter_router import SwapMode
from src.shared.system.logging import Logger

app = typer.Typer(
    name="solver",
    help="Intent Solver - settles won cross-chain intents on Solana",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _load_config() -> tuple:
    try:
        settings = Settings.from_env()
        book = AddressBook.from_env(settings.solver_pubkey)
    except ConfigurationError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        raise typer.Exit(2)
    Logger.configure(settings.log_dir, silent=settings.silent_mode)
    return settings, book


def _require_address(value: str, label: str) -> str:
    try:
        Pubkey.from_string(value)
    except ValueError:
        console.print(f"[bold red]❌ Invalid {label}: {value!r}[/bold red]")
        raise typer.Exit(1)
    return value


def _load_intents(path: Path) -> List[Intent]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[bold red]❌ Could not read {path}: {e}[/bold red]")
        raise typer.Exit(1)

    items = payload if isinstance(payload, list) else [payload]
    try:
        return [Intent.from_payload(item) for item in items]
    except SolverError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(1)


def _report_table(reports: List[SettlementReport]) -> Table:
    table = Table(title="Settlement Reports", show_lines=True)
    table.add_column("Intent", style="cyan")
    table.add_column("Mode")
    table.add_column("Stage")
    table.add_column("Settlement Tx", overflow="fold")
    table.add_column("PnL", justify="right")
    table.add_column("Notes", overflow="fold")

    for r in reports:
        stage_style = "green" if r.stage == SettlementStage.RECONCILED else "red"
        if r.pnl is None:
            pnl = "-"
        else:
            pnl = f"[green]+{r.pnl}[/green]" if r.won else f"[red]{r.pnl}[/red]"
        notes = r.error or "; ".join(r.warnings)
        table.add_row(
            r.intent_id,
            r.domain_mode.value,
            f"[{stage_style}]{r.stage.value}[/{stage_style}]",
            r.settlement_tx or "-",
            pnl,
            notes,
        )
    return table


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: SETTLE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def settle(
    intents_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Intent JSON (object or list)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """
    Settle one or more won intents.

    \b
    Examples:
        python cli.py settle intent.json
        python cli.py settle batch.json --yes
    """
    intents = _load_intents(intents_file)
    settings, book = _load_config()

    console.print(Panel.fit(
        f"[bold cyan]🔐 Settling {len(intents)} intent(s)[/bold cyan]\n"
        f"Solver: {settings.solver_pubkey}\nRPC: {settings.rpc_url}",
        border_style="cyan",
    ))

    if not yes and not typer.confirm("⚠️  This sends real transactions. Continue?", default=False):
        console.print("[yellow]Aborted.[/yellow]")
        raise typer.Exit(0)

    async def run_all() -> List[SettlementReport]:
        async with SettlementOrchestrator.from_settings(settings, book) as orchestrator:
            return await orchestrator.run_many(intents)

    reports = asyncio.run(run_all())
    console.print(_report_table(reports))

    if any(r.stage == SettlementStage.FAILED for r in reports):
        raise typer.Exit(1)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: ADDRESSES (dry run)
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def addresses(
    intents_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Intent JSON (object or list)"),
):
    """Print the derived settlement account set for each intent without sending anything."""
    intents = _load_intents(intents_file)
    settings, book = _load_config()

    orchestrator = SettlementOrchestrator.from_settings(settings, book)
    try:
        for intent in intents:
            address_set = orchestrator.coordinator.derive_addresses(
                intent.intent_id,
                book.escrow_program,
                intent.token_in,
                intent.token_out,
                intent.user,
                intent.domain_mode,
            )
            table = Table(title=f"Intent {intent.intent_id} ({intent.domain_mode.value})")
            table.add_column("Account", style="cyan")
            table.add_column("Address", overflow="fold")
            for name in address_set.populated():
                table.add_row(name, str(getattr(address_set, name)))
            console.print(table)
    except SolverError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(1)
    finally:
        asyncio.run(orchestrator.close())


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: QUOTE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def quote(
    mint_in: str = typer.Argument(..., help="Input mint"),
    mint_out: str = typer.Argument(..., help="Output mint"),
    amount: int = typer.Argument(..., min=1, help="Raw amount (input for exact-in, output for exact-out)"),
    exact_out: bool = typer.Option(False, "--exact-out", help="Pin the output amount instead of the input"),
):
    """Fetch a Jupiter quote for a conversion leg."""
    settings, book = _load_config()
    _require_address(mint_in, "input mint")
    _require_address(mint_out, "output mint")
    mode = SwapMode.EXACT_OUT if exact_out else SwapMode.EXACT_IN

    async def run_quote():
        async with SettlementOrchestrator.from_settings(settings, book) as orchestrator:
            return await orchestrator.planner.quote(mint_in, mint_out, amount, mode)

    try:
        q = asyncio.run(run_quote())
    except SolverError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold]{mode.value}[/bold]\n"
        f"In:  {q.in_amount} {mint_in}\n"
        f"Out: {q.out_amount} {mint_out}\n"
        f"Impact: {q.price_impact_pct}%",
        border_style="green",
    ))


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: SIMULATE (bidding)
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def simulate(
    mint_in: str = typer.Argument(..., help="Input mint"),
    mint_out: str = typer.Argument(..., help="Output mint"),
    amount_in: int = typer.Argument(..., min=1, help="Raw input amount"),
    user: Optional[str] = typer.Option(None, "--user", help="Swapping account (defaults to the solver)"),
):
    """Print the exact-in output a bid could promise. Prints 0 when no route exists."""
    settings, book = _load_config()
    _require_address(mint_in, "input mint")
    _require_address(mint_out, "output mint")
    user = _require_address(user or settings.solver_pubkey, "user")

    async def run_simulation() -> str:
        async with SettlementOrchestrator.from_settings(settings, book) as orchestrator:
            return await orchestrator.planner.simulate_output(user, mint_in, mint_out, amount_in)

    out_amount = asyncio.run(run_simulation())
    console.print(f"🪐 {amount_in} {mint_in} -> [bold]{out_amount}[/bold] {mint_out}")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: BALANCE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def balance(
    mint: Optional[str] = typer.Argument(None, help="Mint (defaults to the reference asset)"),
):
    """Show the solver's balance for a mint."""
    settings, book = _load_config()
    mint = _require_address(mint or book.reference_mint, "mint")

    async def run_balance():
        async with SettlementOrchestrator.from_settings(settings, book) as orchestrator:
            amount = await orchestrator.oracle.get_balance(settings.solver_pubkey, mint)
            decimals = await orchestrator.oracle.get_token_decimals(mint)
            return amount, decimals

    try:
        amount, decimals = asyncio.run(run_balance())
    except SolverError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        raise typer.Exit(1)

    console.print(f"💵 {settings.solver_pubkey}: [bold]{amount}[/bold] ({mint}, {decimals} decimals)")


if __name__ == "__main__":
    app()
