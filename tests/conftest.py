"""
Shared fixtures.

Everything runs against the in-memory store; Supabase is only ever
mocked. Factories are plain fixtures returning coroutine functions so
they work with pytest-asyncio in strict mode.
"""

from decimal import Decimal

import pytest

from household_budget.activity import ActivityLogger
from household_budget.config import AppSettings
from household_budget.models.entities import Collection, TransactionType
from household_budget.services.storage import EntityStoreClient, InMemoryEntityStore


@pytest.fixture
def user_id():
    return "user-1"


@pytest.fixture
def backend():
    return InMemoryEntityStore()


@pytest.fixture
def store(backend):
    return EntityStoreClient(backend)


@pytest.fixture
def activity():
    return ActivityLogger()


@pytest.fixture
def app_settings():
    return AppSettings(_env_file=None)


@pytest.fixture
def make_member(store, user_id):
    async def _make(name="Dana", owner=None):
        return await store.insert(
            Collection.FAMILY_MEMBERS,
            {"user_id": owner or user_id, "name": name},
        )
    return _make


@pytest.fixture
def make_account(store, user_id):
    async def _make(family_member_id, name="Bank Account", balance="0", owner=None):
        return await store.insert(Collection.ACCOUNTS, {
            "user_id": owner or user_id,
            "family_member_id": family_member_id,
            "name": name,
            "balance": Decimal(balance),
        })
    return _make


@pytest.fixture
def make_category(store, user_id):
    async def _make(name, type=TransactionType.EXPENSE, sort_order=0):
        return await store.insert(Collection.CATEGORIES, {
            "user_id": user_id,
            "name": name,
            "type": type,
            "sort_order": sort_order,
        })
    return _make
