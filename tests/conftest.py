"""Shared fixtures: an in-memory database, services and API clients."""

import pytest
from fastapi.testclient import TestClient

from guroute.accounts.service import ProfileService
from guroute.api.main import create_app
from guroute.auth.tokens import SERVICE_ROLE, create_access_token
from guroute.credits.service import LedgerService
from guroute.referral.service import ReferralService
from guroute.storage.db import Database
from guroute.store.service import StoreService


@pytest.fixture
def database():
    """Fresh in-memory SQLite database with all tables."""
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.drop_tables()
    database.dispose()


@pytest.fixture
def ledger(database):
    return LedgerService(database)


@pytest.fixture
def referrals(database):
    return ReferralService(database)


@pytest.fixture
def profiles(database):
    return ProfileService(database)


@pytest.fixture
def store(database):
    return StoreService(database)


@pytest.fixture
def referrer(ledger, referrals):
    """User with an initialized ledger and a referral code."""
    user_id = "000304.referrer"
    ledger.initialize_user_credits(user_id)
    return referrals.get_code(user_id)


# ============================================================================
# API
# ============================================================================

@pytest.fixture
def app(database):
    return create_app(database)


@pytest.fixture
def api_client(app):
    return TestClient(app)


def auth_headers(user_id: str, role: str = "authenticated") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}


@pytest.fixture
def user_headers():
    return auth_headers("000304.alice")


@pytest.fixture
def service_headers():
    return auth_headers("ops", role=SERVICE_ROLE)


@pytest.fixture
def make_headers():
    """Factory for bearer headers of arbitrary users."""
    return auth_headers
