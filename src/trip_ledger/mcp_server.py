"""MCP server for TripLedger: exposes trip expenses and settle-up as tools."""

import logging
from dataclasses import dataclass
from datetime import date

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .db import Database
from .exceptions import TripLedgerError
from .ledger.service import LedgerService
from .ledger.ui import format_balance, format_money, short_id
from .models import DEFAULT_CATEGORIES, SplitMode

logger = logging.getLogger(__name__)

mcp_app = FastMCP("trip-ledger")

WORKFLOW_INSTRUCTIONS = f"""\
You are helping a group settle shared trip expenses. Follow this workflow:

1. DISCOVER: Call list_trips and confirm with the user which trip to use.

2. MEMBERS: Call list_members. If someone is missing, add them with
   add_member before recording expenses they took part in.

3. RECORD: For each expense the user mentions, call add_expense.
   - Split equally unless the user gives explicit amounts per person.
   - Custom shares must add up to the total (within one cent).
   - Pick a category from: {', '.join(DEFAULT_CATEGORIES)}.

4. REVIEW: Call list_expenses and show the user what was recorded.

5. SETTLE: Call show_settlement and present each currency separately.
   Never convert between currencies.

Positive balance = the member is owed money, negative = the member owes.\
"""


@dataclass
class SessionState:
    """Holds state between MCP tool calls within a single conversation."""

    service: LedgerService | None = None
    db: Database | None = None


_state = SessionState()


def _ensure_service() -> LedgerService:
    """Lazily initialize the LedgerService (loads .env config)."""
    if _state.service is None:
        settings = load_settings()
        _state.db = Database(settings.database_path)
        _state.service = LedgerService(settings, _state.db)
    return _state.service


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def list_trips() -> str:
    """List all trips, newest first."""
    try:
        trips = _ensure_service().list_trips()
        if not trips:
            return "No trips yet."

        lines = ["Trips:"]
        for trip in trips:
            lines.append(f"- {trip.name} (id: {short_id(trip.id)})")
        return "\n".join(lines)
    except TripLedgerError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list trips: {e}"


@mcp_app.tool()
def list_members(trip: str) -> str:
    """List the members of a trip.

    Args:
        trip: Trip name, id or id prefix.
    """
    try:
        service = _ensure_service()
        resolved = service.resolve_trip(trip)
        members = service.list_members(resolved.id)
        if not members:
            return f"'{resolved.name}' has no members yet."

        lines = [f"Members of '{resolved.name}':"]
        for member in members:
            lines.append(f"- {member.name} (id: {short_id(member.id)})")
        return "\n".join(lines)
    except (TripLedgerError, ValueError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list members: {e}"


@mcp_app.tool()
def add_member(trip: str, name: str) -> str:
    """Add a member to a trip.

    Args:
        trip: Trip name, id or id prefix.
        name: The new member's display name.
    """
    try:
        service = _ensure_service()
        resolved = service.resolve_trip(trip)
        member = service.add_member(resolved.id, name)
        return f"Added {member.name} to '{resolved.name}' (id: {short_id(member.id)})"
    except (TripLedgerError, ValueError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to add member: {e}"


@mcp_app.tool()
def add_expense(
    trip: str,
    name: str,
    amount: str,
    paid_by: str,
    split_with: list[str] | None = None,
    shares: dict[str, str] | None = None,
    currency: str | None = None,
    category: str | None = None,
    expense_date: str | None = None,
) -> str:
    """Record an expense.

    Args:
        trip: Trip name, id or id prefix.
        name: What the expense was for.
        amount: Total amount as a decimal string, e.g. "1250.50".
        paid_by: Name or id of the member who paid.
        split_with: Members sharing the expense equally. Defaults to everyone.
        shares: Member name -> amount for a custom split. Must add up to amount.
        currency: Currency code. Defaults to the configured currency.
        category: Expense category; see the settle_up_workflow prompt.
        expense_date: ISO date (YYYY-MM-DD). Defaults to today.
    """
    try:
        service = _ensure_service()
        resolved = service.resolve_trip(trip)
        payer = service.resolve_member(resolved.id, paid_by)

        mode: SplitMode = "custom" if shares else "equal"
        custom_shares = None
        if shares:
            custom_shares = {
                service.resolve_member(resolved.id, ref).id: value
                for ref, value in shares.items()
            }

        if split_with:
            participants = [
                service.resolve_member(resolved.id, ref).id for ref in split_with
            ]
        elif custom_shares:
            participants = list(custom_shares)
        else:
            participants = [m.id for m in service.list_members(resolved.id)]

        expense, splits = service.record_expense(
            trip_id=resolved.id,
            name=name,
            amount=amount,
            paid_by_member_id=payer.id,
            participants=participants,
            mode=mode,
            custom_shares=custom_shares,
            currency=currency,
            expense_date=date.fromisoformat(expense_date) if expense_date else None,
            category=category,
        )

        names = {m.id: m.name for m in service.list_members(resolved.id)}
        lines = [
            f"Recorded '{expense.name}' "
            f"{format_money(expense.amount, expense.currency)} paid by {payer.name} "
            f"(id: {short_id(expense.id)})"
        ]
        for split in splits:
            lines.append(
                f"- {names.get(split.member_id, 'Unknown')}: "
                f"{format_money(split.share_amount, expense.currency)}"
            )
        return "\n".join(lines)
    except (TripLedgerError, ValueError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to add expense: {e}"


@mcp_app.tool()
def list_expenses(trip: str) -> str:
    """List a trip's expenses, most recent first.

    Args:
        trip: Trip name, id or id prefix.
    """
    try:
        service = _ensure_service()
        resolved = service.resolve_trip(trip)
        activity = service.list_activity(resolved.id)
        if not activity:
            return f"'{resolved.name}' has no expenses yet."

        lines = [f"Expenses for '{resolved.name}':"]
        for row in activity:
            expense = row.expense
            lines.append(
                f"- {expense.date} | {expense.name} | {expense.category} | "
                f"{format_money(expense.amount, expense.currency)} | "
                f"paid by {row.payer_name} | split with {', '.join(row.split_with)}"
            )
        return "\n".join(lines)
    except (TripLedgerError, ValueError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list expenses: {e}"


@mcp_app.tool()
def show_settlement(trip: str) -> str:
    """Show balances and the payments that settle a trip, per currency.

    Args:
        trip: Trip name, id or id prefix.
    """
    try:
        service = _ensure_service()
        report = service.build_report(service.resolve_trip(trip).id)
        if not report.has_expenses:
            return f"'{report.trip.name}': no expenses to settle yet."

        lines = [f"Settle-up for '{report.trip.name}':"]
        for currency, ledger in report.ledgers.items():
            lines.append(f"\n{currency}")
            lines.append("  Balances:")
            for member_id, balance in ledger.balances.items():
                lines.append(
                    f"  - {report.member_name(member_id)}: "
                    f"{format_balance(balance, use_color=False)}"
                )
            if ledger.is_settled:
                lines.append("  All settled up!")
                continue
            lines.append("  Payments:")
            for settlement in ledger.settlements:
                lines.append(
                    f"  - {settlement.from_name} pays {settlement.to_name} "
                    f"{currency} {settlement.amount:.2f}"
                )
        return "\n".join(lines)
    except (TripLedgerError, ValueError) as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to compute settlement: {e}"


# ---------------------------------------------------------------------------
# MCP Prompt
# ---------------------------------------------------------------------------


@mcp_app.prompt()
def settle_up_workflow() -> str:
    """Orchestration instructions for recording expenses and settling up."""
    return WORKFLOW_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")
