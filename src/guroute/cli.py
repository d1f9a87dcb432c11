"""Command-line interface for the Guroute ledger."""

from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from guroute.auth.tokens import SERVICE_ROLE, USER_ROLE, create_access_token
from guroute.credits.exceptions import LedgerError
from guroute.credits.service import LedgerService
from guroute.logging_config import configure_logging, get_logger
from guroute.storage.db import db

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="guroute",
    help="Guroute - trip credit ledger operations",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


def _ledger() -> LedgerService:
    return LedgerService(db)


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("serve")
def serve() -> None:
    """Run the HTTP API."""
    from guroute.api.main import run

    run()


@app.command("token")
def issue_token(
    user_id: Annotated[str, typer.Argument(help="User ID (token subject)")],
    role: Annotated[
        str, typer.Option("--role", help=f"Token role: {USER_ROLE} or {SERVICE_ROLE}")
    ] = USER_ROLE,
) -> None:
    """Issue an access token, e.g. for local testing."""
    if role not in (USER_ROLE, SERVICE_ROLE):
        raise typer.BadParameter(f"must be {USER_ROLE} or {SERVICE_ROLE}", param_hint="--role")

    token = create_access_token(user_id, role=role)
    console.print(token, soft_wrap=True)


@app.command("balance")
def show_balance(
    user_id: Annotated[str, typer.Argument(help="User ID")],
) -> None:
    """Show a user's ledger."""
    credits = _ledger().get_credits(user_id)

    if credits is None:
        console.print(f"[yellow]No ledger for user {user_id}[/yellow]")
        raise typer.Exit(1)

    console.print(f"[bold]User:[/bold] {credits.user_id}")
    console.print(f"  Balance: [bold green]{credits.balance}[/bold green]")
    console.print(f"  Lifetime earned: {credits.lifetime_earned}")
    console.print(f"  Lifetime spent: {credits.lifetime_spent}")
    last = credits.last_free_credit_at
    console.print(f"  Last monthly credit: {last.strftime('%Y-%m-%d %H:%M') if last else 'never'}")


@app.command("history")
def show_history(
    user_id: Annotated[str, typer.Argument(help="User ID")],
    limit: Annotated[int, typer.Option("--limit", "-l", help="Max transactions")] = 50,
) -> None:
    """List a user's credit transactions, newest first."""
    transactions = _ledger().get_transactions(user_id, limit=limit)

    if not transactions:
        console.print("[yellow]No transactions found[/yellow]")
        return

    table = Table(title=f"Transactions for {user_id}")
    table.add_column("ID", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Amount", justify="right")
    table.add_column("Balance after", justify="right")
    table.add_column("Reference")
    table.add_column("Created At")

    for tx in transactions:
        table.add_row(
            str(tx.id),
            tx.type,
            f"{tx.amount:+d}",
            str(tx.balance_after),
            tx.reference_id or "",
            tx.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command("grant")
def grant_credits(
    user_id: Annotated[str, typer.Argument(help="User ID")],
    amount: Annotated[int, typer.Argument(help="Credits to grant")],
    reason: Annotated[str, typer.Option("--reason", "-r", help="Shown in the user's history")] = "Granted by support",
) -> None:
    """Grant credits to a user."""
    try:
        balance = _ledger().grant_admin_credits(user_id, amount, reason)
    except LedgerError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓[/bold green] Granted {amount} credits, new balance: [bold]{balance}[/bold]")


@app.command("grant-monthly")
def grant_monthly(
    user_id: Annotated[str, typer.Argument(help="User ID")],
) -> None:
    """Grant the monthly free credit if it is due."""
    result = _ledger().grant_monthly_credit(user_id)

    if result.granted:
        console.print(f"[bold green]✓[/bold green] Monthly credit granted, new balance: [bold]{result.new_balance}[/bold]")
    else:
        when = f" (next: {result.next_eligible_at:%Y-%m-%d})" if result.next_eligible_at else ""
        console.print(f"[yellow]Not granted: {result.reason}{when}[/yellow]")


@app.command("reconcile")
def reconcile(
    user_id: Annotated[Optional[str], typer.Argument(help="User ID (all ledgers if omitted)")] = None,
) -> None:
    """Check that balances match the transaction log."""
    ledger = _ledger()

    try:
        reports = [ledger.reconcile(user_id)] if user_id else ledger.reconcile_all()
    except LedgerError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(title="Ledger reconciliation")
    table.add_column("User", style="cyan")
    table.add_column("Balance", justify="right")
    table.add_column("Log total", justify="right")
    table.add_column("Earned", justify="right")
    table.add_column("Spent", justify="right")
    table.add_column("Status")

    for report in reports:
        table.add_row(
            report.user_id,
            str(report.balance),
            str(report.log_total),
            f"{report.lifetime_earned}/{report.log_earned}",
            f"{report.lifetime_spent}/{report.log_spent}",
            "[green]OK[/green]" if report.consistent else "[bold red]MISMATCH[/bold red]",
        )

    console.print(table)

    if any(not r.consistent for r in reports):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
