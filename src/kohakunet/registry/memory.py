"""
In-process lease registry.

Keeps leases and the bounded event history in memory, guarded by one
asyncio.Condition. Suitable for a single process hosting several agents
(and for tests); state does not survive a restart.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from kohakunet.config import config
from kohakunet.ip.address import IPNetwork
from kohakunet.models.enums import EventType
from kohakunet.registry.base import LeaseRegistry, cursor_in_window
from kohakunet.subnet.config import NetworkConfig
from kohakunet.subnet.errors import ConfigError, KeyExistsError, LeaseOwnershipError
from kohakunet.subnet.key import make_subnet_key
from kohakunet.subnet.lease import Event, Lease, LeaseAttrs, LeaseWatchResult, utcnow
from kohakunet.utils.logger import get_logger

logger = get_logger(__name__)


def copy_lease(lease: Lease) -> Lease:
    """Copy a lease so callers never share state with the registry."""
    return replace(lease, attrs=replace(lease.attrs))


class MemoryRegistry(LeaseRegistry):
    """
    Lease registry held in process memory.

    State:
    - _leases: subnet key -> live lease
    - _history: (revision, event) pairs, oldest first, bounded
    - _revision: registry-wide write counter
    """

    def __init__(
        self,
        network_config: NetworkConfig | None = None,
        history_size: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize an empty registry.

        Args:
            network_config: Network config to serve (can be set later).
            history_size: Events retained for incremental watches.
            clock: Time source, injectable for tests.
        """
        self._network_config = network_config
        self._history_size = history_size or config.WATCH_HISTORY_SIZE
        self._clock = clock

        self._leases: dict[str, Lease] = {}
        self._history: deque[tuple[int, Event]] = deque(maxlen=self._history_size)
        self._revision = 0
        self._cond = asyncio.Condition()

    # =========================================================================
    # Internal helpers (caller holds _cond)
    # =========================================================================

    def _append_event_locked(self, event_type: EventType, lease: Lease) -> None:
        self._history.append((lease.asof, Event(event_type, copy_lease(lease))))
        self._cond.notify_all()

    def _expire_locked(self) -> int:
        now = self._clock()
        expired = [key for key, lease in self._leases.items() if lease.is_expired(now)]
        for key in expired:
            lease = self._leases.pop(key)
            self._revision += 1
            lease.asof = self._revision
            self._append_event_locked(EventType.REMOVED, lease)
            logger.info(f"Lease expired: {lease.subnet} ({lease.attrs.public_ip})")
        return len(expired)

    def _next_expiry_delay(self) -> float | None:
        if not self._leases:
            return None
        soonest = min(lease.expiration for lease in self._leases.values())
        return max((soonest - self._clock()).total_seconds(), 0.0)

    def _owned_lease_locked(self, key: str, asof: int) -> Lease:
        lease = self._leases.get(key)
        if lease is None:
            raise LeaseOwnershipError(key, "lease does not exist (expired or released)")
        if lease.asof != asof:
            raise LeaseOwnershipError(
                key, f"lease was rewritten (asof {lease.asof}, expected {asof})"
            )
        return lease

    # =========================================================================
    # LeaseRegistry
    # =========================================================================

    async def get_network_config(self) -> NetworkConfig:
        if self._network_config is None:
            raise ConfigError("network config not found in registry")
        return self._network_config

    async def set_network_config(self, network_config: NetworkConfig) -> None:
        self._network_config = network_config

    async def get_leases(self) -> tuple[list[Lease], int]:
        async with self._cond:
            self._expire_locked()
            leases = [copy_lease(lease) for lease in self._leases.values()]
            return leases, self._revision

    async def get_lease(self, key: str) -> Lease | None:
        async with self._cond:
            self._expire_locked()
            lease = self._leases.get(key)
            return copy_lease(lease) if lease is not None else None

    async def create_lease(
        self, subnet: IPNetwork, attrs: LeaseAttrs, ttl: float
    ) -> Lease:
        key = make_subnet_key(subnet)
        async with self._cond:
            self._expire_locked()
            if key in self._leases:
                raise KeyExistsError(key)

            self._revision += 1
            lease = Lease(
                subnet=subnet,
                attrs=replace(attrs),
                expiration=self._clock() + timedelta(seconds=ttl),
                asof=self._revision,
            )
            self._leases[key] = lease
            self._append_event_locked(EventType.ADDED, lease)
            return copy_lease(lease)

    async def update_lease(
        self, key: str, attrs: LeaseAttrs, ttl: float, asof: int
    ) -> Lease:
        async with self._cond:
            self._expire_locked()
            lease = self._owned_lease_locked(key, asof)

            self._revision += 1
            lease.attrs = replace(attrs)
            lease.expiration = self._clock() + timedelta(seconds=ttl)
            lease.asof = self._revision
            self._append_event_locked(EventType.ADDED, lease)
            return copy_lease(lease)

    async def delete_lease(self, key: str, asof: int) -> None:
        async with self._cond:
            self._expire_locked()
            lease = self._owned_lease_locked(key, asof)

            del self._leases[key]
            self._revision += 1
            lease.asof = self._revision
            self._append_event_locked(EventType.REMOVED, lease)

    async def watch(self, cursor: Any) -> LeaseWatchResult:
        async with self._cond:
            while True:
                self._expire_locked()

                oldest = self._history[0][0] if self._history else None
                if not cursor_in_window(cursor, oldest, self._revision):
                    leases = [copy_lease(lease) for lease in self._leases.values()]
                    return LeaseWatchResult.from_snapshot(leases, self._revision)

                events = [
                    Event(event.type, copy_lease(event.lease))
                    for rev, event in self._history
                    if rev > cursor
                ]
                if events:
                    return LeaseWatchResult.from_events(events, self._revision)

                # Wake up on writes, or when the next lease is due to expire
                try:
                    await asyncio.wait_for(self._cond.wait(), self._next_expiry_delay())
                except asyncio.TimeoutError:
                    pass

    async def expire_leases(self) -> int:
        async with self._cond:
            return self._expire_locked()
