"""CLI for TripLedger."""

import typer

from .ledger.cli import app as trip_app
from .mcp_server import run_server

app = typer.Typer(
    name="trip-ledger",
    help="Shared trip expenses and who owes whom",
)

app.add_typer(trip_app, name="trip", help="Trips, members, expenses and settle-up")


@app.command()
def mcp():
    """Start the MCP server for assistant integration."""
    run_server()


if __name__ == "__main__":
    app()
