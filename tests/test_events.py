"""Tests for parcelspine.core.events - Notifier fan-out and isolation."""

import pytest

from parcelspine.core.events import EventType, Notifier


class TestNotifier:
    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self):
        notifier = Notifier()
        seen = []

        def sync_listener(event_type, payload):
            seen.append(("sync", event_type, payload["user_id"]))

        async def async_listener(event_type, payload):
            seen.append(("async", event_type, payload["user_id"]))

        notifier.subscribe(sync_listener)
        notifier.subscribe(async_listener)
        delivered = await notifier.notify(EventType.USER_PACKAGE_UPDATED, {"user_id": "u1"})

        assert delivered == 2
        assert seen == [
            ("sync", "user_package_updated", "u1"),
            ("async", "user_package_updated", "u1"),
        ]

    @pytest.mark.asyncio
    async def test_failing_listener_is_isolated(self):
        notifier = Notifier()
        seen = []

        def broken(event_type, payload):
            raise RuntimeError("boom")

        notifier.subscribe(broken)
        notifier.subscribe(lambda t, p: seen.append(t))

        delivered = await notifier.notify("packages_overdue", {"count": 1})
        assert delivered == 1
        assert seen == ["packages_overdue"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        notifier = Notifier()
        seen = []
        unsubscribe = notifier.subscribe(lambda t, p: seen.append(t))
        unsubscribe()
        unsubscribe()  # idempotent

        assert await notifier.notify("packages_upcoming", {}) == 0
        assert seen == []
        assert notifier.listener_count == 0

    @pytest.mark.asyncio
    async def test_listener_may_unsubscribe_during_notify(self):
        notifier = Notifier()
        seen = []
        handles = {}

        def once(event_type, payload):
            seen.append("once")
            handles["once"]()

        handles["once"] = notifier.subscribe(once)
        notifier.subscribe(lambda t, p: seen.append("always"))

        await notifier.notify("user_package_updated", {})
        await notifier.notify("user_package_updated", {})
        assert seen == ["once", "always", "always"]

    def test_subscribe_requires_callable(self):
        with pytest.raises(TypeError):
            Notifier().subscribe("not callable")

    def test_clear(self):
        notifier = Notifier()
        notifier.subscribe(lambda t, p: None)
        notifier.clear()
        assert notifier.listener_count == 0
