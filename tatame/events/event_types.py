"""
Event Types - Event data structures and type definitions.

Defines the events emitted by the provisioning services and the feature
registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4


class EventType(Enum):
    """
    All event types in TATAME.

    Categories:
    - Provisioning: SSH session, step and output events of a remote run
    - Outcomes: terminal success/failure of site, VPS and blog runs
    - Platform: feature flag changes
    """

    # ========================================================================
    # Provisioning Events
    # ========================================================================

    VPS_CONNECTED = "vps.connected"
    """SSH session established."""

    STEP_START = "provision.step_start"
    """A named step began (payload: step, name, progress)."""

    STEP_COMPLETE = "provision.step_complete"
    """A named step finished (payload: step, name, progress)."""

    OUTPUT = "provision.output"
    """A chunk of remote stdout/stderr."""

    PROGRESS = "provision.progress"
    """Coarse progress update (payload: step, progress, message)."""

    # ========================================================================
    # Outcome Events
    # ========================================================================

    SITE_CREATED = "site.created"
    SITE_ERROR = "site.error"

    VPS_SETUP_COMPLETE = "vps.setup_complete"
    VPS_SETUP_ERROR = "vps.setup_error"

    BLOG_CREATED = "blog.created"
    BLOG_ERROR = "blog.error"

    # ========================================================================
    # Platform Events
    # ========================================================================

    FEATURE_CHANGED = "feature.changed"
    """Feature flag status or configuration changed."""


@dataclass
class Event:
    """
    A single event flowing through the EventBus.

    ``correlation_id`` ties provisioning events to the job that started
    the run; it is empty for events with no owning job.
    """

    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    source: str = "tatame"
    correlation_id: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: uuid4().hex[:12])

    def __post_init__(self) -> None:
        if isinstance(self.type, EventType):
            self.type = self.type.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "source": self.source,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
        }
