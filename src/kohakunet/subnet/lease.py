"""
Lease data model.

Entities exchanged between allocator agents and lease registries:

- LeaseAttrs: what an owner publishes for others (public IP, backend data)
- Lease: one host's time-bounded claim on a subnet
- Event: ADDED/REMOVED change notification for a lease
- LeaseWatchResult: either a batch of events or a full snapshot, plus the
  cursor to resume from
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from kohakunet.ip.address import IPAddress, IPNetwork
from kohakunet.models.enums import EventType
from kohakunet.subnet.key import make_subnet_key


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class LeaseAttrs:
    """Routing and reachability info published by a lease owner."""

    public_ip: IPAddress
    backend_type: str = ""
    # Raw JSON bytes owned by the data-plane backend, passed through untouched
    backend_data: bytes | None = None


@dataclass
class Lease:
    """
    A host's claim on one subnet.

    Attributes:
        subnet: Subnet of the network range, with the config's SubnetLen.
        attrs: Attributes published by the owner.
        expiration: Absolute (UTC) time after which the lease is gone
            unless renewed.
        asof: Backend revision of the lease's last write. Only compared for
            equality (ownership checks), never interpreted.
    """

    subnet: IPNetwork
    attrs: LeaseAttrs
    expiration: datetime
    asof: int = 0

    @property
    def key(self) -> str:
        """Registry key of this lease's subnet."""
        return make_subnet_key(self.subnet)

    def remaining(self, now: datetime | None = None) -> timedelta:
        return self.expiration - (now or utcnow())

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expiration <= (now or utcnow())


@dataclass(frozen=True)
class Event:
    """A change to one lease."""

    type: EventType
    lease: Lease


@dataclass
class LeaseWatchResult:
    """
    Result of one watch call.

    Either events is non-empty (incremental delivery since the caller's
    cursor), or events is empty and snapshot holds every current lease
    (possibly none) because the cursor was stale or out of range.
    """

    events: list[Event] = field(default_factory=list)
    snapshot: list[Lease] = field(default_factory=list)
    cursor: Any = None

    @property
    def is_snapshot(self) -> bool:
        return not self.events

    @classmethod
    def from_events(cls, events: list[Event], cursor: Any) -> LeaseWatchResult:
        if not events:
            raise ValueError("an event result needs at least one event")
        return cls(events=list(events), snapshot=[], cursor=cursor)

    @classmethod
    def from_snapshot(cls, leases: list[Lease], cursor: Any) -> LeaseWatchResult:
        return cls(events=[], snapshot=list(leases), cursor=cursor)
