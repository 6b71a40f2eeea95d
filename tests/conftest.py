"""
Shared pytest fixtures for parcel-spine tests.

Provides:
- A FixedClock so cache TTLs, throttle windows and overdue checks never
  depend on wall time
- An in-memory document store and a container wired to both
- A daily timeline (5 periods, holiday 3, total amount 8) and seeded users

Usage:
    @pytest.mark.asyncio
    async def test_something(container, active_timeline):
        result = await container.materializer.get_history("u1")
"""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from parcelspine.container import ParcelContainer
from parcelspine.core.clock import FixedClock
from parcelspine.core.logging import clear_context
from parcelspine.core.settings import ParcelSettings, clear_settings_cache
from parcelspine.requests import CreateTimelineRequest
from parcelspine.store.base import user_path
from parcelspine.store.memory import InMemoryDocumentStore

START = "2024-01-01T00:00:00+00:00"
TIMELINE_ID = "tl_test"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Each test sees settings built from its own environment."""
    clear_settings_cache()
    yield
    clear_settings_cache()
    clear_context()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def settings() -> ParcelSettings:
    return ParcelSettings(_env_file=None)


@pytest.fixture
def container(settings, store, clock) -> ParcelContainer:
    return ParcelContainer(settings, store=store, clock=clock).build()


def daily_request(**overrides) -> CreateTimelineRequest:
    """Daily, 5 periods from 2024-01-01, period 3 a holiday, total amount 8."""
    fields = {
        "cadence": "daily",
        "duration": 5,
        "start_date": START,
        "holidays": (3,),
        "total_amount": 8,
        "id": TIMELINE_ID,
        "name": "Test timeline",
    }
    fields.update(overrides)
    return CreateTimelineRequest(**fields)


@pytest_asyncio.fixture
async def active_timeline(container):
    result = await container.timelines.create_active_timeline(daily_request())
    assert result.success, result.error
    return result.data


@pytest_asyncio.fixture
async def manual_timeline(container):
    """Same shape, manual mode, simulated now 2024-01-05."""
    result = await container.timelines.create_active_timeline(
        daily_request(mode="manual", simulation_date="2024-01-05T00:00:00Z")
    )
    assert result.success, result.error
    return result.data


async def add_user(store, user_id: str, *, role: str = "user", priority: str | None = None) -> None:
    doc = {"id": user_id, "name": user_id.upper(), "role": role}
    if priority is not None:
        doc["priority"] = priority
    await store.create(user_path(user_id), doc)


@pytest_asyncio.fixture
async def users(store):
    """Two end users and one admin (admins never receive packages)."""
    await add_user(store, "u1")
    await add_user(store, "u2", priority="high")
    await add_user(store, "admin", role="admin")
    return ["u1", "u2"]


class SnapshotGatedStore(InMemoryDocumentStore):
    """Package reads take their snapshot, then park on ``gate`` while ``blocking`` is set.

    Reads issued after ``blocking`` is cleared pass straight through, so a
    writer can run while earlier readers hold pre-write documents.
    """

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.blocking = False
        self.parked = 0

    async def get(self, path):
        doc = await super().get(path)
        if self.blocking and "/user_packages/" in path:
            self.parked += 1
            await self.gate.wait()
        return doc


async def until_parked(store: SnapshotGatedStore, count: int) -> None:
    for _ in range(100):
        if store.parked >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"only {store.parked} of {count} reads parked")
