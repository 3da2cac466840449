"""Tests for the provisioning event bus."""

from __future__ import annotations

import pytest

from tatame.events import Event, EventBus, EventType


@pytest.mark.asyncio
async def test_typed_and_wildcard_handlers_receive_events() -> None:
    bus = EventBus()
    typed: list[Event] = []
    everything: list[Event] = []

    async def on_created(event: Event) -> None:
        typed.append(event)

    async def on_any(event: Event) -> None:
        everything.append(event)

    bus.subscribe(EventType.SITE_CREATED, on_created)
    bus.subscribe("*", on_any)
    await bus.start()

    await bus.publish(Event(type=EventType.SITE_CREATED, payload={"domain": "a.com"}))
    await bus.publish(Event(type=EventType.OUTPUT, payload={"text": "hi"}))
    await bus.wait_until_idle()
    await bus.stop()

    assert [e.payload["domain"] for e in typed] == ["a.com"]
    assert [e.type for e in everything] == ["site.created", "provision.output"]


@pytest.mark.asyncio
async def test_handler_errors_are_counted_not_raised() -> None:
    bus = EventBus()
    seen: list[str] = []

    async def broken(event: Event) -> None:
        raise RuntimeError("boom")

    async def healthy(event: Event) -> None:
        seen.append(event.type)

    bus.subscribe("*", broken)
    bus.subscribe("*", healthy)
    await bus.start()
    bus.publish_nowait(Event(type=EventType.PROGRESS))
    await bus.wait_until_idle()
    stats = bus.get_stats()
    await bus.stop()

    assert seen == ["provision.progress"]
    assert stats["error_count"] == 1
    assert stats["event_count"] == 1


@pytest.mark.asyncio
async def test_emitter_binds_source_and_correlation_id() -> None:
    bus = EventBus()
    received: list[Event] = []

    async def on_any(event: Event) -> None:
        received.append(event)

    bus.subscribe("*", on_any)
    await bus.start()
    emit = bus.emitter("tatame.provisioning", correlation_id="job_1")
    emit(EventType.STEP_START, {"step": "download", "progress": 10})
    await bus.wait_until_idle()
    await bus.stop()

    assert len(received) == 1
    assert received[0].source == "tatame.provisioning"
    assert received[0].correlation_id == "job_1"
    assert received[0].to_dict()["type"] == "provision.step_start"


@pytest.mark.asyncio
async def test_events_dropped_when_not_running() -> None:
    bus = EventBus()
    bus.publish_nowait(Event(type=EventType.OUTPUT))
    await bus.publish(Event(type=EventType.OUTPUT))
    assert bus.get_stats()["queue_size"] == 0
    assert bus.is_running is False


@pytest.mark.asyncio
async def test_unsubscribe() -> None:
    bus = EventBus()

    async def handler(event: Event) -> None:
        pass

    bus.subscribe(EventType.BLOG_CREATED, handler)
    assert bus.get_subscriber_count(EventType.BLOG_CREATED) == 1
    bus.unsubscribe(EventType.BLOG_CREATED, handler)
    assert bus.get_subscriber_count() == 0
