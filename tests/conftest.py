"""Shared fixtures for TripLedger tests."""

import pytest

from trip_ledger.config import Settings
from trip_ledger.db import Database
from trip_ledger.ledger.service import LedgerService


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary database."""
    return Settings(database_path=tmp_path / "test.db", default_currency="INR")


@pytest.fixture
def db(settings):
    """Create a temporary database."""
    database = Database(settings.database_path)
    yield database
    database.close()


@pytest.fixture
def service(settings, db):
    """Create a LedgerService instance."""
    return LedgerService(settings, db)


@pytest.fixture
def trip(service):
    return service.create_trip("Goa")


@pytest.fixture
def crew(service, trip):
    """Three members: Asha, Ben and Chen."""
    return [service.add_member(trip.id, name) for name in ("Asha", "Ben", "Chen")]
