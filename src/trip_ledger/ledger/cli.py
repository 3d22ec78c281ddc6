"""CLI commands for managing trips, members, expenses and settle-up."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table

from ..config import load_settings
from ..db import Database
from ..exceptions import TripLedgerError
from ..models import DEFAULT_CATEGORIES, Expense, ExpenseSplit, SplitMode
from .money import ZERO
from .service import LedgerService
from .splitter import split_residue
from .ui import (
    display_activity,
    display_report,
    display_splits,
    format_money,
    select_member_interactive,
    short_id,
)

app = typer.Typer(
    name="trip",
    help="Record shared trip expenses and work out who owes whom",
)

console = Console()
CATEGORY_HELP = f"Category, e.g. {', '.join(DEFAULT_CATEGORIES)}"


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool = False) -> Iterator[LedgerService]:
    """Open the database, yield a service and report errors the CLI way."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield LedgerService(settings, db)
    except (TripLedgerError, ValueError) as e:
        # Validation and lookup failures: nothing was written
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        sys.exit(1)
    except typer.Abort:
        # Ctrl-C or end of input at a confirmation prompt
        console.print("\n[yellow]Cancelled.[/yellow]")
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def _parse_shares(
    service: LedgerService, trip_id: str, raw_shares: list[str]
) -> dict[str, str]:
    """Turn repeated ``MEMBER=AMOUNT`` options into member id -> amount."""
    shares: dict[str, str] = {}
    for raw in raw_shares:
        member_ref, sep, amount = raw.rpartition("=")
        if not sep or not member_ref:
            raise ValueError(f"Expected MEMBER=AMOUNT, got '{raw}'")
        member = service.resolve_member(trip_id, member_ref)
        shares[member.id] = amount
    return shares


def _show_saved(
    service: LedgerService, verb: str, expense: Expense, splits: list[ExpenseSplit]
):
    console.print(
        f"\n[bold green]✓ {verb} '{expense.name}'[/bold green] "
        f"{format_money(expense.amount, expense.currency)} "
        f"[dim]({short_id(expense.id)})[/dim]"
    )
    display_splits(
        splits, service.list_members(expense.trip_id), expense.currency, console
    )

    residue = split_residue(expense.amount, (s.share_amount for s in splits))
    if residue != ZERO:
        console.print(
            f"[yellow]Shares add up to {expense.amount - residue:.2f}; "
            f"{residue:.2f} {expense.currency} is not assigned to anyone[/yellow]"
        )


# ============================================================================
# Trips
# ============================================================================


@app.command()
def create(
    name: str = typer.Argument(..., help="Trip name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a trip."""
    with open_service(verbose) as service:
        trip = service.create_trip(name)
        console.print(
            f"[bold green]✓ Created trip '{trip.name}'[/bold green] "
            f"[dim]({short_id(trip.id)})[/dim]"
        )


@app.command("list")
def list_trips(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List trips, newest first."""
    with open_service(verbose) as service:
        trips = service.list_trips()
        if not trips:
            console.print("[yellow]No trips yet.[/yellow]")
            return

        table = Table(title="Trips", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=8)
        table.add_column("Name", style="cyan")
        table.add_column("Created")
        for trip in trips:
            table.add_row(
                short_id(trip.id), trip.name, trip.created_at.strftime("%Y-%m-%d")
            )
        console.print(table)


@app.command()
def delete(
    trip_ref: str = typer.Argument(..., help="Trip id, id prefix or name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete a trip with all of its members and expenses."""
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        if not yes and not typer.confirm(
            f"Delete '{trip.name}' and everything in it?", default=False
        ):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.delete_trip(trip.id)
        console.print(f"[green]✓ Deleted trip '{trip.name}'[/green]")


# ============================================================================
# Members
# ============================================================================


@app.command("add-member")
def add_member(
    trip_ref: str = typer.Argument(..., help="Trip id, id prefix or name"),
    name: str = typer.Argument(..., help="Member name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a member to a trip."""
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        member = service.add_member(trip.id, name)
        console.print(
            f"[green]✓ Added {member.name} to '{trip.name}'[/green] "
            f"[dim]({short_id(member.id)})[/dim]"
        )


@app.command("remove-member")
def remove_member(
    trip_ref: str = typer.Argument(..., help="Trip id, id prefix or name"),
    member_ref: str = typer.Argument(..., help="Member id, id prefix or name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Remove a member, the expenses they paid and their shares of others."""
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        member = service.resolve_member(trip.id, member_ref)
        if not yes and not typer.confirm(
            f"Remove {member.name}? This deletes all expenses paid by or "
            f"split with them.",
            default=False,
        ):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.remove_member(trip.id, member.id)
        console.print(f"[green]✓ Removed {member.name}[/green]")


@app.command()
def members(
    trip_ref: str = typer.Argument(..., help="Trip id, id prefix or name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List a trip's members."""
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        trip_members = service.list_members(trip.id)
        if not trip_members:
            console.print(f"[yellow]'{trip.name}' has no members yet.[/yellow]")
            return
        for member in trip_members:
            console.print(f"  {member.name} [dim]({short_id(member.id)})[/dim]")


# ============================================================================
# Expenses
# ============================================================================


@app.command("add-expense")
def add_expense(
    trip_ref: str = typer.Argument(..., help="Trip id, id prefix or name"),
    name: str = typer.Argument(..., help="What the expense was for"),
    amount: str = typer.Argument(..., help="Total amount, e.g. 1250.50"),
    currency: str | None = typer.Option(
        None, "--currency", help="Currency code (defaults to DEFAULT_CURRENCY)"
    ),
    paid_by: str | None = typer.Option(
        None, "--paid-by", "-p", help="Member who paid (prompted if omitted)"
    ),
    split_with: list[str] | None = typer.Option(
        None, "--split-with", "-s", help="Member sharing the expense (repeatable)"
    ),
    share: list[str] | None = typer.Option(
        None, "--share", help="Custom share as MEMBER=AMOUNT (repeatable)"
    ),
    expense_date: datetime | None = typer.Option(
        None, "--date", formats=["%Y-%m-%d"], help="Expense date (default: today)"
    ),
    category: str | None = typer.Option(None, "--category", "-c", help=CATEGORY_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record an expense.

    Without --share the amount is split equally between the --split-with
    members (everyone on the trip if none are given). With --share each
    member's part is given explicitly and must add up to the amount.
    """
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        trip_members = service.list_members(trip.id)

        payer_id: str | None
        if paid_by:
            payer_id = service.resolve_member(trip.id, paid_by).id
        elif sys.stdin.isatty():
            payer_id = select_member_interactive(trip_members, "Paid by")
        else:
            payer_id = None
        if payer_id is None:
            raise ValueError("Who paid? Pass --paid-by MEMBER")

        mode: SplitMode = "custom" if share else "equal"
        custom_shares = _parse_shares(service, trip.id, share) if share else None

        if split_with:
            participants = [service.resolve_member(trip.id, m).id for m in split_with]
        elif custom_shares:
            participants = list(custom_shares)
        else:
            participants = [member.id for member in trip_members]

        expense, splits = service.record_expense(
            trip_id=trip.id,
            name=name,
            amount=amount,
            paid_by_member_id=payer_id,
            participants=participants,
            mode=mode,
            custom_shares=custom_shares,
            currency=currency,
            expense_date=expense_date.date() if expense_date else None,
            category=category,
        )
        _show_saved(service, "Recorded", expense, splits)


@app.command("edit-expense")
def edit_expense(
    expense_ref: str = typer.Argument(..., help="Expense id or id prefix"),
    name: str | None = typer.Option(None, "--name", help="New name"),
    amount: str | None = typer.Option(None, "--amount", help="New total amount"),
    currency: str | None = typer.Option(None, "--currency", help="New currency"),
    paid_by: str | None = typer.Option(None, "--paid-by", "-p", help="New payer"),
    split_with: list[str] | None = typer.Option(
        None, "--split-with", "-s", help="Replace who shares the expense"
    ),
    share: list[str] | None = typer.Option(
        None, "--share", help="Custom share as MEMBER=AMOUNT (repeatable)"
    ),
    equal: bool = typer.Option(False, "--equal", help="Switch to an equal split"),
    expense_date: datetime | None = typer.Option(
        None, "--date", formats=["%Y-%m-%d"], help="New expense date"
    ),
    category: str | None = typer.Option(None, "--category", "-c", help="New category"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Edit an expense; its shares are recomputed and replaced."""
    with open_service(verbose) as service:
        existing = service.resolve_expense(expense_ref)
        trip_id = existing.trip_id

        mode: SplitMode | None = None
        custom_shares = None
        if share:
            mode = "custom"
            custom_shares = _parse_shares(service, trip_id, share)
        elif equal:
            mode = "equal"

        participants = None
        if split_with:
            participants = [service.resolve_member(trip_id, m).id for m in split_with]
        elif custom_shares:
            participants = list(custom_shares)

        expense, splits = service.update_expense(
            existing.id,
            name=name,
            amount=amount,
            paid_by_member_id=(
                service.resolve_member(trip_id, paid_by).id if paid_by else None
            ),
            participants=participants,
            mode=mode,
            custom_shares=custom_shares,
            currency=currency,
            expense_date=expense_date.date() if expense_date else None,
            category=category,
        )
        _show_saved(service, "Updated", expense, splits)


@app.command("remove-expense")
def remove_expense(
    expense_ref: str = typer.Argument(..., help="Expense id or id prefix"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete an expense and its shares."""
    with open_service(verbose) as service:
        expense = service.resolve_expense(expense_ref)
        if not yes and not typer.confirm(f"Delete '{expense.name}'?", default=False):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.delete_expense(expense.id)
        console.print(f"[green]✓ Deleted '{expense.name}'[/green]")


@app.command()
def expenses(
    trip_ref: str = typer.Argument(..., help="Trip id, id prefix or name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a trip's expenses, most recent first."""
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        display_activity(service.list_activity(trip.id), console)


# ============================================================================
# Settle up
# ============================================================================


@app.command()
def settle(
    trip_ref: str = typer.Argument(..., help="Trip id, id prefix or name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show each member's balance and the payments that settle the trip."""
    with open_service(verbose) as service:
        trip = service.resolve_trip(trip_ref)
        display_report(service.build_report(trip.id), console)
