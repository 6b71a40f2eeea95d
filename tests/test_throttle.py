"""Tests for parcelspine.packages.throttle."""

import asyncio

import pytest

from parcelspine.core.clock import FixedClock
from parcelspine.core.errors import RefreshInProgressError
from parcelspine.core.settings import ParcelSettings
from parcelspine.packages.throttle import ThrottleGovernor, ThrottleWindows


@pytest.fixture
def clock():
    return FixedClock("2024-01-01T00:00:00Z")


@pytest.fixture
def governor(clock):
    return ThrottleGovernor(clock=clock)


class TestWindows:
    def test_defaults(self):
        windows = ThrottleWindows()
        assert (windows.per_page, windows.per_user, windows.background_resume) == (120, 300, 1800)

    def test_from_settings(self):
        settings = ParcelSettings(
            _env_file=None,
            throttle_per_page_seconds=10,
            throttle_per_user_seconds=20,
            throttle_background_resume_seconds=30,
        )
        assert ThrottleWindows.from_settings(settings) == ThrottleWindows(10, 20, 30)

    @pytest.mark.parametrize(
        "source,expected",
        [
            ("page_navigation", 120),
            ("app_resume", 1800),
            ("login", 300),
            ("per_user", 300),
            ("manual", 300),
            ("something_else", 300),
        ],
    )
    def test_window_for(self, governor, source, expected):
        assert governor.window_for(source) == expected


class TestShouldSkip:
    def test_never_refreshed(self, governor):
        assert not governor.should_skip("user_packages", "u1", 300)

    def test_inside_and_outside_window(self, governor, clock):
        governor.mark("user_packages", "u1")
        clock.advance(seconds=299)
        assert governor.should_skip("user_packages", "u1", 300)
        clock.advance(seconds=1)
        assert not governor.should_skip("user_packages", "u1", 300)

    def test_zero_window_never_skips(self, governor):
        governor.mark("user_packages", "u1")
        assert not governor.should_skip("user_packages", "u1", 0)

    def test_marks_are_per_user_and_operation(self, governor):
        governor.mark("user_packages", "u1")
        assert not governor.should_skip("user_packages", "u2", 300)
        assert not governor.should_skip("other", "u1", 300)

    def test_forget(self, governor):
        governor.mark("user_packages", "u1")
        governor.mark("other", "u1")
        governor.mark("user_packages", "u2")
        governor.forget("u1", "other")
        assert governor.last_refresh("other", "u1") is None
        assert governor.last_refresh("user_packages", "u1") is not None
        governor.forget("u1")
        assert governor.last_refresh("user_packages", "u1") is None
        assert governor.last_refresh("user_packages", "u2") is not None

    def test_snapshot(self, governor):
        governor.mark("user_packages", "u1")
        snap = governor.snapshot()
        assert snap["windows"]["per_page"] == 120
        assert snap["last_refresh"] == {"user_packages:u1": "2024-01-01T00:00:00+00:00"}
        assert snap["in_flight"] == []


class TestRunExclusive:
    @pytest.mark.asyncio
    async def test_returns_result_and_clears_key(self, governor):
        async def work():
            return 42

        assert await governor.run_exclusive("k", work) == 42
        assert not governor.is_in_flight("k")

    @pytest.mark.asyncio
    async def test_concurrent_run_is_rejected(self, governor):
        gate = asyncio.Event()

        async def slow():
            await gate.wait()
            return "done"

        owner = asyncio.create_task(governor.run_exclusive("k", slow))
        await asyncio.sleep(0)
        assert governor.in_flight_keys() == ["k"]

        with pytest.raises(RefreshInProgressError) as exc_info:
            await governor.run_exclusive("k", slow)
        assert exc_info.value.code == "REFRESH_IN_PROGRESS"

        gate.set()
        assert await owner == "done"

    @pytest.mark.asyncio
    async def test_join_shares_the_owner_result(self, governor):
        gate = asyncio.Event()
        calls = []

        async def slow():
            calls.append(1)
            await gate.wait()
            return "shared"

        owner = asyncio.create_task(governor.run_exclusive("k", slow))
        await asyncio.sleep(0)
        joiner = asyncio.create_task(governor.run_exclusive("k", slow, join=True))
        await asyncio.sleep(0)
        gate.set()

        assert await owner == "shared"
        assert await joiner == "shared"
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_failure_propagates_and_clears_key(self, governor):
        async def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await governor.run_exclusive("k", broken)
        assert not governor.is_in_flight("k")

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self, governor):
        gate = asyncio.Event()

        async def slow():
            await gate.wait()
            return True

        first = asyncio.create_task(governor.run_exclusive("a", slow))
        second = asyncio.create_task(governor.run_exclusive("b", slow))
        await asyncio.sleep(0)
        assert governor.in_flight_keys() == ["a", "b"]
        gate.set()
        assert await first and await second
