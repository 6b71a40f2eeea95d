"""Tests for parcelspine.timeline.service - the active timeline lifecycle."""

from datetime import UTC, datetime

import pytest

from conftest import TIMELINE_ID, add_user, daily_request
from parcelspine.core.errors import ValidationError
from parcelspine.models import PackageStatus, TimelineMode
from parcelspine.requests import CreateTemplateRequest
from parcelspine.store.base import ACTIVE_TIMELINE_PATH, package_path, user_path
from parcelspine.timeline.service import TimelineService

START_SIM = "2024-01-05T00:00:00Z"


class TestCreateTimeline:
    @pytest.mark.asyncio
    async def test_creates_and_stores(self, container, store):
        result = await container.timelines.create_active_timeline(daily_request())

        assert result.success
        timeline = result.data
        assert timeline.id == TIMELINE_ID
        assert list(timeline.periods) == [f"period_{i}" for i in range(1, 6)]
        assert [p.amount for p in timeline.periods.values()] == [2, 2, 0, 2, 2]
        assert timeline.active_count == 4
        assert timeline.periods["period_1"].due_date == datetime(2024, 1, 2, tzinfo=UTC)

        doc = await store.get(ACTIVE_TIMELINE_PATH)
        assert doc["id"] == TIMELINE_ID
        assert doc["holidays"] == [3]

    @pytest.mark.asyncio
    async def test_generated_id_when_omitted(self, container):
        result = await container.timelines.create_active_timeline(daily_request(id="", name=""))
        assert result.data.id == f"timeline_{int(datetime(2024, 1, 1, tzinfo=UTC).timestamp() * 1000)}"
        assert result.data.name == result.data.id

    @pytest.mark.asyncio
    async def test_replaces_previous_timeline(self, container):
        await container.timelines.create_active_timeline(daily_request())
        await container.timelines.create_active_timeline(daily_request(id="tl_two", duration=2, holidays=()))

        result = await container.timelines.get_active_timeline()
        assert result.data.id == "tl_two"
        assert result.data.duration == 2

    @pytest.mark.parametrize(
        "overrides",
        [
            {"cadence": "fortnightly"},
            {"duration": -1},
            {"start_date": None},
            {"start_date": "not a date"},
            {"holidays": (6,)},
            {"holidays": (0,)},
            {"holidays": ("2", 9)},
            {"mode": "manual"},
            {"mode": "sometimes"},
            {"total_amount": -5},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_requests_raise_before_io(self, container, store, overrides):
        with pytest.raises(ValidationError):
            await container.timelines.create_active_timeline(daily_request(**overrides))
        assert store.paths() == []

    @pytest.mark.asyncio
    async def test_zero_duration(self, container):
        result = await container.timelines.create_active_timeline(daily_request(duration=0, holidays=()))
        assert result.success
        assert result.data.periods == {}


class TestGetTimeline:
    @pytest.mark.asyncio
    async def test_not_found(self, container):
        result = await container.timelines.get_active_timeline()
        assert not result.success
        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_backend_unavailable(self, clock):
        service = TimelineService(None, clock=clock)
        result = await service.get_active_timeline()
        assert result.error_code == "BACKEND_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_cached_for_ttl(self, container, store, clock, active_timeline):
        await container.timelines.get_active_timeline()
        reads = store.reads
        await container.timelines.get_active_timeline()
        assert store.reads == reads

        clock.advance(seconds=30)
        await container.timelines.get_active_timeline()
        assert store.reads == reads + 1

    @pytest.mark.asyncio
    async def test_bypass_cache(self, container, store, active_timeline):
        reads = store.reads
        await container.timelines.get_active_timeline(use_cache=False)
        assert store.reads == reads + 1


class TestSimulationDate:
    @pytest.mark.asyncio
    async def test_manual_mode(self, container, manual_timeline):
        result = await container.timelines.set_simulation_date("2024-01-10T00:00:00Z")
        assert result.success
        assert result.data.simulation_date == datetime(2024, 1, 10, tzinfo=UTC)

        reread = await container.timelines.get_active_timeline()
        assert reread.data.mode is TimelineMode.MANUAL
        assert reread.data.simulation_date == datetime(2024, 1, 10, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_auto_mode_is_rejected(self, container, active_timeline):
        result = await container.timelines.set_simulation_date("2024-01-10T00:00:00Z")
        assert not result.success
        assert result.error_code == "VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_invalid_instant(self, container, manual_timeline):
        with pytest.raises(ValidationError):
            await container.timelines.set_simulation_date("soon")

    @pytest.mark.asyncio
    async def test_no_timeline(self, container):
        result = await container.timelines.set_simulation_date("2024-01-10T00:00:00Z")
        assert result.error_code == "NOT_FOUND"


class TestInvalidationHooks:
    @pytest.mark.asyncio
    async def test_timeline_writes_notify_all_users(self, store, clock):
        service = TimelineService(store, clock=clock)
        calls = []
        service.add_invalidation_hook(calls.append)

        await service.create_active_timeline(daily_request(mode="manual", simulation_date=START_SIM))
        await service.set_simulation_date("2024-01-03T00:00:00Z")
        await service.delete_active_timeline()
        assert calls == [None, None, None]


class TestGeneratePackages:
    @pytest.mark.asyncio
    async def test_one_pending_package_per_user_and_active_period(self, container, store, users, active_timeline):
        result = await container.timelines.generate_packages_for_timeline(TIMELINE_ID)

        assert result.success
        assert result.data == 8
        doc = await store.get(package_path(TIMELINE_ID, "period_1", "u1"))
        assert doc["status"] == "pending"
        assert doc["package_id"].startswith("PKG")
        assert await store.get(package_path(TIMELINE_ID, "period_3", "u1")) is None
        assert await store.get(package_path(TIMELINE_ID, "period_1", "admin")) is None

    @pytest.mark.asyncio
    async def test_idempotent(self, container, users, active_timeline):
        await container.timelines.generate_packages_for_timeline(TIMELINE_ID)
        again = await container.timelines.generate_packages_for_timeline(TIMELINE_ID)
        assert again.data == 0

    @pytest.mark.asyncio
    async def test_keeps_existing_records(self, container, store, users, active_timeline):
        await container.materializer.upsert_status(TIMELINE_ID, "period_2", "u1", {"status": "delivered"})
        result = await container.timelines.generate_packages_for_timeline(TIMELINE_ID)
        assert result.data == 7
        assert (await store.get(package_path(TIMELINE_ID, "period_2", "u1")))["status"] == "delivered"

    @pytest.mark.asyncio
    async def test_wrong_timeline(self, container, users, active_timeline):
        result = await container.timelines.generate_packages_for_timeline("tl_other")
        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_requires_timeline_id(self, container):
        with pytest.raises(ValidationError):
            await container.timelines.generate_packages_for_timeline("")


class TestResetAndDelete:
    @pytest.mark.asyncio
    async def test_reset_keeps_timeline(self, container, store, users, active_timeline):
        await container.timelines.generate_packages_for_timeline(TIMELINE_ID)
        result = await container.timelines.reset_timeline_packages(TIMELINE_ID)

        assert result.data == 8
        assert await store.get(package_path(TIMELINE_ID, "period_1", "u1")) is None
        assert (await container.timelines.get_active_timeline()).success

    @pytest.mark.asyncio
    async def test_delete_without_purge_keeps_packages(self, container, store, users, active_timeline):
        await container.timelines.generate_packages_for_timeline(TIMELINE_ID)
        result = await container.timelines.delete_active_timeline()

        assert result.data == {
            "timeline_id": TIMELINE_ID,
            "purged": False,
            "packages_deleted": 0,
            "users_reset": 0,
        }
        assert await store.get(ACTIVE_TIMELINE_PATH) is None
        assert await store.get(package_path(TIMELINE_ID, "period_1", "u1")) is not None

    @pytest.mark.asyncio
    async def test_delete_with_purge(self, container, store, users, active_timeline):
        await add_user(store, "u3", priority="normal")
        await container.timelines.generate_packages_for_timeline(TIMELINE_ID)
        result = await container.timelines.delete_active_timeline(purge_packages=True)

        assert result.data["packages_deleted"] == 12
        assert result.data["users_reset"] == 1
        assert not [p for p in store.paths() if p.startswith("packages/")]
        assert (await store.get(user_path("u2")))["priority"] == "normal"
        assert (await container.timelines.get_active_timeline()).error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_delete_without_timeline(self, container):
        result = await container.timelines.delete_active_timeline()
        assert result.error_code == "NOT_FOUND"


class TestPackagesByPeriod:
    @pytest.mark.asyncio
    async def test_sorted_with_display_status(self, container, users, manual_timeline):
        await container.timelines.generate_packages_for_timeline(TIMELINE_ID)
        await container.materializer.upsert_status(TIMELINE_ID, "period_1", "u2", {"status": "delivered"})

        result = await container.timelines.get_packages_by_period(TIMELINE_ID, "period_1")
        assert [r.user_id for r in result.data] == ["u1", "u2"]
        # Simulated now is 2024-01-05; period 1 was due 2024-01-02.
        assert [r.status for r in result.data] == [PackageStatus.OVERDUE, PackageStatus.DELIVERED]
        assert result.data[0].stored_status is PackageStatus.PENDING

    @pytest.mark.asyncio
    async def test_inactive_timeline_keeps_stored_status(self, container, users, manual_timeline):
        await container.timelines.generate_packages_for_timeline(TIMELINE_ID)
        await container.timelines.create_active_timeline(daily_request(id="tl_next"))

        result = await container.timelines.get_packages_by_period(TIMELINE_ID, "period_1")
        assert [r.status for r in result.data] == [PackageStatus.PENDING, PackageStatus.PENDING]

    @pytest.mark.asyncio
    async def test_empty_period(self, container, active_timeline):
        result = await container.timelines.get_packages_by_period(TIMELINE_ID, "period_2")
        assert result.success
        assert result.data == []


class TestTemplates:
    @pytest.mark.asyncio
    async def test_create_and_list(self, container, clock):
        first = await container.timelines.create_template(
            CreateTemplateRequest(name="Weekly box", cadence="weekly", duration=12, base_weight=1.5)
        )
        clock.advance(seconds=1)
        await container.timelines.create_template(
            CreateTemplateRequest(name="Monthly box", cadence="monthly", duration=6, delivery_days=[1, 15])
        )

        assert first.success
        assert first.data.id.startswith("template_")
        listed = await container.timelines.list_templates()
        assert [t.name for t in listed.data] == ["Weekly box", "Monthly box"]
        assert listed.data[1].delivery_days == [1, 15]

    @pytest.mark.parametrize(
        "request_",
        [
            CreateTemplateRequest(name="", cadence="weekly", duration=1),
            CreateTemplateRequest(name="x", cadence="sometimes", duration=1),
            CreateTemplateRequest(name="x", cadence="weekly", duration=-1),
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid(self, container, request_):
        with pytest.raises(ValidationError):
            await container.timelines.create_template(request_)
