"""
Unit tests for the event bus.
"""

import pytest

from meshlink.core.event_bus import Event, EventBus, EventType, make_event


class TestEventBus:
    """Tests for EventBus."""

    @pytest.mark.asyncio
    async def test_async_and_sync_handlers(self) -> None:
        """Test publish reaches both kinds of handler."""
        bus = EventBus()
        seen: list[str] = []

        async def on_async(event: Event[dict[str, str]]) -> None:
            seen.append(f"async:{event.payload['active']}")

        bus.subscribe(EventType.ACTIVE_ENDPOINT_CHANGED, on_async)
        bus.subscribe_sync(
            EventType.ACTIVE_ENDPOINT_CHANGED,
            lambda event: seen.append(f"sync:{event.payload['active']}"),
        )

        await bus.publish(make_event(EventType.ACTIVE_ENDPOINT_CHANGED, {"active": "b"}))

        assert seen == ["sync:b", "async:b"]

    def test_publish_sync_skips_async_handlers(self) -> None:
        """Test synchronous publish only reaches sync handlers."""
        bus = EventBus()
        seen: list[EventType] = []

        async def on_async(event: Event[None]) -> None:
            seen.append(event.type)

        bus.subscribe(EventType.STARTED, on_async)
        bus.subscribe_sync(EventType.STARTED, lambda event: seen.append(event.type))

        bus.publish_sync(make_event(EventType.STARTED, None))

        assert seen == [EventType.STARTED]

    def test_priority_order(self) -> None:
        """Test higher priority handlers run first."""
        bus = EventBus()
        order: list[str] = []

        bus.subscribe_sync(EventType.STOPPED, lambda e: order.append("low"), priority=0)
        bus.subscribe_sync(EventType.STOPPED, lambda e: order.append("high"), priority=10)

        bus.publish_sync(make_event(EventType.STOPPED, None))

        assert order == ["high", "low"]

    @pytest.mark.asyncio
    async def test_handler_error_isolated(self) -> None:
        """Test a failing handler does not stop the others."""
        bus = EventBus()
        seen: list[int] = []

        async def broken(event: Event[int]) -> None:
            raise RuntimeError("boom")

        async def working(event: Event[int]) -> None:
            seen.append(event.payload)

        bus.subscribe(EventType.SWEEP_COMPLETE, broken, priority=1)
        bus.subscribe(EventType.SWEEP_COMPLETE, working)

        await bus.publish(make_event(EventType.SWEEP_COMPLETE, 3))

        assert seen == [3]

    def test_unsubscribe_and_clear(self) -> None:
        """Test handler removal."""
        bus = EventBus()

        def handler(event: Event[None]) -> None:
            pass

        bus.subscribe_sync(EventType.PREFERENCE_CHANGED, handler)
        assert bus.handler_count(EventType.PREFERENCE_CHANGED) == 1

        assert bus.unsubscribe(EventType.PREFERENCE_CHANGED, handler) is True
        assert bus.unsubscribe(EventType.PREFERENCE_CHANGED, handler) is False

        bus.subscribe_sync(EventType.PREFERENCE_CHANGED, handler)
        bus.clear()
        assert bus.handler_count(EventType.PREFERENCE_CHANGED) == 0

    def test_make_event_timestamp(self) -> None:
        """Test events are stamped at creation."""
        event = make_event(EventType.DISCOVERY_FAILED, None, source="manager")

        assert event.timestamp_ms > 0
        assert event.source == "manager"
