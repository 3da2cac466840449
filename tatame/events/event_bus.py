"""
Event Bus - Central event dispatcher with pub/sub pattern.

Provides asynchronous event distribution to registered handlers.
Uses asyncio.Queue for non-blocking event processing. The provisioning
services publish through an ``emit`` callable obtained from ``emitter()``,
so they never hold a reference to the bus itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from .event_types import Event, EventType

logger = logging.getLogger("tatame.events.bus")


EventHandler = Callable[[Event], Awaitable[None]]
"""Type alias for async event handler functions."""

Emit = Callable[[EventType, dict[str, Any]], None]
"""Type alias for the fire-and-forget callable handed to services."""


class EventBus:
    """
    Central event dispatcher using pub/sub pattern.

    Features:
    - Asynchronous event processing (non-blocking publish)
    - Multiple subscribers per event type
    - Wildcard subscription ("*" for all events)
    - Background processing loop
    - Graceful startup/shutdown

    Usage:
        bus = EventBus()
        await bus.start()

        async def on_site_created(event: Event):
            logger.info(f"Site {event.payload['domain']} created")

        bus.subscribe(EventType.SITE_CREATED, on_site_created)

        emit = bus.emitter(source="site_creation", correlation_id=job_id)
        emit(EventType.STEP_START, {"step": "download", "progress": 10})

        await bus.stop()
    """

    def __init__(self, max_queue_size: int = 1000):
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._event_queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max_queue_size)
        self._running = False
        self._task: asyncio.Task | None = None
        self._event_count = 0
        self._error_count = 0

        logger.info("EventBus initialized")

    # ========================================================================
    # Subscription Management
    # ========================================================================

    def subscribe(self, event_type: str | EventType, handler: EventHandler) -> None:
        """Subscribe to an event type (or "*" for all events)."""
        if isinstance(event_type, EventType):
            event_type = event_type.value

        self._subscribers[event_type].append(handler)
        logger.info(
            f"Subscribed handler to '{event_type}' "
            f"({len(self._subscribers[event_type])} handlers)"
        )

    def unsubscribe(self, event_type: str | EventType, handler: EventHandler) -> None:
        if isinstance(event_type, EventType):
            event_type = event_type.value

        if event_type in self._subscribers:
            try:
                self._subscribers[event_type].remove(handler)
                logger.info(f"Unsubscribed handler from '{event_type}'")
            except ValueError:
                logger.warning(f"Handler not found for '{event_type}'")

    def get_subscriber_count(self, event_type: str | EventType | None = None) -> int:
        if event_type is None:
            return sum(len(handlers) for handlers in self._subscribers.values())
        if isinstance(event_type, EventType):
            event_type = event_type.value
        return len(self._subscribers.get(event_type, []))

    # ========================================================================
    # Event Publishing
    # ========================================================================

    async def publish(self, event: Event) -> None:
        """Queue an event for the background loop."""
        if not self._running:
            logger.warning(f"EventBus not running, dropping event: {event.type}")
            return

        try:
            await self._event_queue.put(event)
            logger.debug(f"Published event: {event.type} from {event.source}")
        except asyncio.QueueFull:
            logger.error(f"Event queue full! Dropping event: {event.type}")
            self._error_count += 1

    def publish_nowait(self, event: Event) -> None:
        """
        Publish event without waiting (synchronous version).

        A full queue drops the event and counts an error.
        """
        if not self._running:
            logger.warning(f"EventBus not running, dropping event: {event.type}")
            return

        try:
            self._event_queue.put_nowait(event)
            logger.debug(f"Published event (nowait): {event.type}")
        except asyncio.QueueFull:
            logger.error(f"Event queue full! Dropping event: {event.type}")
            self._error_count += 1

    def emitter(self, source: str, correlation_id: str = "") -> Emit:
        """Return a synchronous emit(type, payload) bound to this bus."""

        def emit(event_type: EventType, payload: dict[str, Any]) -> None:
            self.publish_nowait(
                Event(
                    type=event_type,
                    payload=payload,
                    source=source,
                    correlation_id=correlation_id,
                )
            )

        return emit

    # ========================================================================
    # Background Processing
    # ========================================================================

    async def _process_events(self) -> None:
        logger.info("EventBus processing loop started")

        while self._running:
            try:
                # Timeout keeps the shutdown check responsive
                try:
                    event = await asyncio.wait_for(self._event_queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue

                try:
                    await self._dispatch_event(event)
                    self._event_count += 1
                finally:
                    self._event_queue.task_done()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in event processing loop: {e}")
                self._error_count += 1

        logger.info("EventBus processing loop stopped")

    async def _dispatch_event(self, event: Event) -> None:
        event_type = event.type
        all_handlers = self._subscribers.get(event_type, []) + self._subscribers.get("*", [])

        if not all_handlers:
            logger.debug(f"No handlers for event: {event_type}")
            return

        for handler in all_handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.exception(f"Error in event handler for '{event_type}': {e}")
                self._error_count += 1

    async def wait_until_idle(self, timeout: float = 5.0) -> None:
        """Block until every queued event has been dispatched."""
        await asyncio.wait_for(self._event_queue.join(), timeout=timeout)

    # ========================================================================
    # Lifecycle Management
    # ========================================================================

    async def start(self) -> None:
        if self._running:
            logger.warning("EventBus already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._process_events())
        logger.info("EventBus started")

    async def stop(self) -> None:
        """Stop the processing loop after the current event finishes."""
        if not self._running:
            logger.warning("EventBus not running")
            return

        logger.info("Stopping EventBus...")
        self._running = False

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=5.0)
            except asyncio.CancelledError:
                pass
            except asyncio.TimeoutError:
                logger.warning("EventBus shutdown timeout, cancelling task")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

        logger.info(
            f"EventBus stopped (processed {self._event_count} events, "
            f"{self._error_count} errors)"
        )

    @property
    def is_running(self) -> bool:
        return self._running

    def get_stats(self) -> dict[str, int]:
        return {
            "event_count": self._event_count,
            "error_count": self._error_count,
            "queue_size": self._event_queue.qsize(),
            "total_subscribers": self.get_subscriber_count(),
            "running": self._running,
        }

    def __repr__(self) -> str:
        return (
            f"EventBus(running={self._running}, "
            f"subscribers={self.get_subscriber_count()}, "
            f"events_processed={self._event_count})"
        )
