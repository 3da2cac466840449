"""
TATAME Event System.

Provisioning runs report their progress as events:
- Session and step events (connected, step start/complete, output, progress)
- Outcome events (site created, VPS setup complete, blog created, errors)
- Platform events (feature flag changes)

Usage:
    from tatame.events import EventBus, Event, EventType

    bus = EventBus()
    await bus.start()
    bus.subscribe(EventType.SITE_CREATED, on_site_created)
    emit = bus.emitter(source="site_creation", correlation_id=job_id)
"""

from .event_types import Event, EventType
from .event_bus import Emit, EventBus

__all__ = [
    "Emit",
    "Event",
    "EventType",
    "EventBus",
]
