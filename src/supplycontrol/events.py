"""
Audit notifications for registry changes.

Each event carries enough old/new values for an external audit trail
to reconstruct the policy history of every controller.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    return value


@dataclass
class RegistryEvent:
    """Base class for audit events."""

    name: ClassVar[str] = "registry_event"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        emitted_at = data.pop("emitted_at", None)
        return {
            "event": self.name,
            "emitted_at": emitted_at.isoformat() if emitted_at else None,
            "data": _encode(data),
        }


@dataclass
class ControllerAdded(RegistryEvent):
    name: ClassVar[str] = "controller_added"

    identity: str
    capacity: int
    refill_rate: int
    whitelist: list[str]
    allow_any_destination: bool
    emitted_at: datetime = field(default_factory=_utcnow)


@dataclass
class ControllerRemoved(RegistryEvent):
    name: ClassVar[str] = "controller_removed"

    identity: str
    emitted_at: datetime = field(default_factory=_utcnow)


@dataclass
class LimitConfigUpdated(RegistryEvent):
    name: ClassVar[str] = "limit_config_updated"

    identity: str
    new_capacity: int
    new_refill_rate: int
    old_capacity: int
    old_refill_rate: int
    emitted_at: datetime = field(default_factory=_utcnow)


@dataclass
class DestinationPolicyUpdated(RegistryEvent):
    name: ClassVar[str] = "destination_policy_updated"

    identity: str
    new_allow_any: bool
    old_allow_any: bool
    emitted_at: datetime = field(default_factory=_utcnow)


@dataclass
class WhitelistEntryAdded(RegistryEvent):
    name: ClassVar[str] = "whitelist_entry_added"

    identity: str
    account: str
    emitted_at: datetime = field(default_factory=_utcnow)


@dataclass
class WhitelistEntryRemoved(RegistryEvent):
    name: ClassVar[str] = "whitelist_entry_removed"

    identity: str
    account: str
    emitted_at: datetime = field(default_factory=_utcnow)


@dataclass
class RoleGranted(RegistryEvent):
    name: ClassVar[str] = "role_granted"

    identity: str
    role: str
    sender: str
    emitted_at: datetime = field(default_factory=_utcnow)


@dataclass
class RoleRevoked(RegistryEvent):
    name: ClassVar[str] = "role_revoked"

    identity: str
    role: str
    sender: str
    emitted_at: datetime = field(default_factory=_utcnow)


Subscriber = Callable[[RegistryEvent], None]


class EventLog:
    """
    In-memory event log with subscriber fan-out.

    Keeps the most recent ``max_events`` events. Subscribers are called
    synchronously, in registration order, after the change is committed.
    A failing subscriber is logged and does not stop the others; the
    change it reports has already been applied and persisted.
    """

    def __init__(self, max_events: int = 1000) -> None:
        self._events: deque[RegistryEvent] = deque(maxlen=max_events)
        self._subscribers: list[Subscriber] = []
        self._total = 0

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def emit(self, event: RegistryEvent) -> None:
        self._events.append(event)
        self._total += 1
        logger.info(f"Event {event.name}: {event.to_dict()['data']}")
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.error(f"Error in event subscriber for {event.name}: {e}")

    @property
    def total(self) -> int:
        """Number of events emitted since creation."""
        return self._total

    def recent(self, limit: int = 100) -> list[RegistryEvent]:
        """Most recent events, oldest first."""
        if limit <= 0:
            return []
        return list(self._events)[-limit:]

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        # An empty log is still a log
        return True
