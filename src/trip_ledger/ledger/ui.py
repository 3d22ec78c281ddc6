"""Terminal rendering and interactive member selection."""

import logging
from decimal import Decimal
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document
from rich.console import Console
from rich.table import Table

from ..models import ExpenseActivity, ExpenseSplit, Member, TripReport
from .money import TOLERANCE

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "VND": "₫",
    "AUD": "$",
}


def currency_symbol(currency: str) -> str:
    """Symbol for a currency, or the code followed by a space."""
    return CURRENCY_SYMBOLS.get(currency, f"{currency} ")


def format_money(amount: Decimal, currency: str) -> str:
    return f"{currency_symbol(currency)}{amount:,.2f}"


def format_balance(balance: Decimal, use_color: bool = True) -> str:
    """
    Format a member balance.

    Owed money shows as +12.50 (green), owing as -12.50 (red), and anything
    within a cent of zero as a plain 0.00.
    """
    if balance > TOLERANCE:
        text = f"+{balance:.2f}"
        return f"[green]{text}[/green]" if use_color else text
    if balance < -TOLERANCE:
        text = f"{balance:.2f}"
        return f"[red]{text}[/red]" if use_color else text
    return "0.00"


def short_id(record_id: str) -> str:
    return record_id[:8]


# ============================================================================
# Rendering
# ============================================================================


def display_report(report: TripReport, console: Console):
    """Display balances and settle-up payments for every currency of a trip."""
    console.print(f"\n[bold]{report.trip.name}[/bold]")

    if not report.has_expenses:
        console.print("[dim]No expenses to settle yet.[/dim]")
        return

    for currency, ledger in report.ledgers.items():
        table = Table(
            title=f"{currency} balances", show_header=True, header_style="bold magenta"
        )
        table.add_column("Member", style="cyan")
        table.add_column("Balance", justify="right")

        for member_id, balance in ledger.balances.items():
            table.add_row(report.member_name(member_id), format_balance(balance))

        console.print()
        console.print(table)

        if ledger.is_settled:
            console.print("[green]✓ All settled up![/green]")
            continue

        console.print("[bold]Settlements:[/bold]")
        for settlement in ledger.settlements:
            console.print(
                f"  [bold]{settlement.from_name}[/bold] owes "
                f"[bold]{settlement.to_name}[/bold] "
                f"[red]{currency} {settlement.amount:.2f}[/red]"
            )

    console.print(
        "\n[dim]Note: making the payments above settles every balance "
        "in each currency.[/dim]"
    )


def display_activity(activity: list[ExpenseActivity], console: Console):
    """Display a trip's expenses, most recent first."""
    if not activity:
        console.print("[dim]No expenses yet. Add an expense to get started![/dim]")
        return

    table = Table(title="Expenses", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", width=8)
    table.add_column("Date", no_wrap=True)
    table.add_column("Name", style="cyan")
    table.add_column("Category", style="yellow")
    table.add_column("Amount", justify="right", no_wrap=True)
    table.add_column("Paid by")
    table.add_column("Split with")
    table.add_column("Each", justify="right", style="dim")

    for row in activity:
        expense = row.expense
        table.add_row(
            short_id(expense.id),
            expense.date.isoformat(),
            expense.name,
            expense.category,
            format_money(expense.amount, expense.currency),
            row.payer_name,
            ", ".join(row.split_with),
            format_money(row.per_head, expense.currency),
        )

    console.print(table)


def display_splits(
    splits: list[ExpenseSplit], members: list[Member], currency: str, console: Console
):
    """Display the stored shares of one expense."""
    names = {member.id: member.name for member in members}
    for split in splits:
        console.print(
            f"  {names.get(split.member_id, 'Unknown')}: "
            f"{format_money(split.share_amount, currency)}"
        )


# ============================================================================
# Interactive selection
# ============================================================================


class MemberCompleter(Completer):
    """Fuzzy search completer for trip members."""

    def __init__(self, members: list[Member]):
        """Initialize the completer with the trip's members."""
        self.members = members
        self.name_to_id = {member.name: member.id for member in members}

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for member in self.members:
            if not query or self._fuzzy_match(query, member.name.lower()):
                yield Completion(
                    text=member.name,
                    start_position=-len(document.text),
                    display=member.name,
                )

    def _fuzzy_match(self, query: str, text: str) -> bool:
        """
        Fuzzy match: all characters in query must appear in order in text.

        Example:
            query="aa" matches "Alana"
        """
        query_idx = 0
        for char in text:
            if query_idx < len(query) and char == query[query_idx]:
                query_idx += 1
        return query_idx == len(query)


def select_member_interactive(members: list[Member], label: str) -> str | None:
    """
    Pick a member with fuzzy search.

    Args:
        members: The trip's members
        label: What the member is being picked for (e.g. "Paid by")

    Returns:
        Selected member id, or None if the user skipped
    """
    if not members:
        return None

    completer = MemberCompleter(members)
    session: PromptSession[str] = PromptSession(completer=completer)

    try:
        while True:
            result = session.prompt(f"{label}: ", complete_while_typing=True)
            if not result:
                return None

            member_id = completer.name_to_id.get(result)
            if member_id:
                logger.debug(f"User selected member: {result}")
                return member_id

            print("Unknown member. Press Tab to see the trip's members.")

    except (KeyboardInterrupt, EOFError):
        return None
