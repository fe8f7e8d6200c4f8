"""
Agent-side watch and renew loops.

An allocator agent runs these next to its data-plane backend:

    lease = await manager.acquire_lease(attrs)
    renew_task = asyncio.create_task(renew_loop(manager, lease))
    async for batch in watch_leases(manager, own_lease=lease):
        program_routes(batch)

Watch results come either as incremental events or, when the cursor went
stale, as a full snapshot. LeaseWatcher turns both into the same stream of
ADDED/REMOVED events relative to what the agent already knows, so the
consumer never has to special-case snapshots.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import timedelta

from kohakunet.config import config
from kohakunet.ip.address import IPNetwork
from kohakunet.models.enums import EventType
from kohakunet.subnet.errors import BackendError, LeaseOwnershipError
from kohakunet.subnet.key import make_subnet_key
from kohakunet.subnet.lease import Event, Lease, utcnow
from kohakunet.subnet.manager import SubnetManager
from kohakunet.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


# =============================================================================
# Lease Watcher
# =============================================================================


class LeaseWatcher:
    """
    Tracks the leases an agent knows about.

    The agent's own lease (if given) is never reported: it needs no route
    to itself.
    """

    def __init__(self, own_lease: Lease | None = None):
        self.own_lease = own_lease
        self.leases: dict[str, Lease] = {}

    def _is_own(self, lease: Lease) -> bool:
        return self.own_lease is not None and lease.subnet == self.own_lease.subnet

    def reset(self, snapshot: list[Lease]) -> list[Event]:
        """
        Replace the known set with a snapshot.

        Returns:
            ADDED for leases that are new or whose attributes changed,
            REMOVED for known leases missing from the snapshot.
        """
        batch: list[Event] = []
        fresh = {lease.key: lease for lease in snapshot if not self._is_own(lease)}

        for key, lease in fresh.items():
            known = self.leases.get(key)
            if known is None or known.attrs != lease.attrs:
                batch.append(Event(EventType.ADDED, lease))

        for key, lease in self.leases.items():
            if key not in fresh:
                batch.append(Event(EventType.REMOVED, lease))

        self.leases = fresh
        return batch

    def update(self, events: list[Event]) -> list[Event]:
        """Apply incremental events; returns the ones relevant to this agent."""
        batch: list[Event] = []
        for event in events:
            lease = event.lease
            if self._is_own(lease):
                continue
            if event.type == EventType.ADDED:
                self.leases[lease.key] = lease
            else:
                self.leases.pop(lease.key, None)
            batch.append(event)
        return batch


# =============================================================================
# Watch Loops
# =============================================================================


async def watch_leases(
    manager: SubnetManager, own_lease: Lease | None = None
) -> AsyncIterator[list[Event]]:
    """
    Yield batches of lease changes until cancelled.

    The first batch describes every existing lease (as ADDED). Backend
    errors are logged and the watch is re-issued after WATCH_RETRY_SECONDS.
    """
    watcher = LeaseWatcher(own_lease)
    cursor = None

    while True:
        try:
            result = await manager.watch_leases(cursor)
        except BackendError as e:
            logger.warning(f"Watch of subnet leases failed: {e}, retrying")
            await asyncio.sleep(config.WATCH_RETRY_SECONDS)
            continue

        cursor = result.cursor
        if result.is_snapshot:
            batch = watcher.reset(result.snapshot)
        else:
            batch = watcher.update(result.events)

        if batch:
            yield batch


async def watch_lease(
    manager: SubnetManager, subnet: IPNetwork
) -> AsyncIterator[list[Event]]:
    """Yield batches of changes to one subnet's lease until cancelled."""
    key = make_subnet_key(subnet)
    watcher = LeaseWatcher()
    cursor = None

    while True:
        try:
            result = await manager.watch_lease(subnet, cursor)
        except BackendError as e:
            logger.warning(f"Watch of subnet {key} failed: {e}, retrying")
            await asyncio.sleep(config.WATCH_RETRY_SECONDS)
            continue

        cursor = result.cursor
        if result.is_snapshot:
            batch = watcher.reset(result.snapshot)
        else:
            batch = watcher.update(result.events)

        if batch:
            yield batch


# =============================================================================
# Renew Loop
# =============================================================================


async def renew_loop(
    manager: SubnetManager,
    lease: Lease,
    margin: timedelta | None = None,
) -> None:
    """
    Keep a lease alive until cancelled.

    Renews margin before expiration (RENEW_MARGIN_SECONDS by default).
    Returns normally never; a LeaseOwnershipError is re-raised since the
    lease is lost for good and the agent has to acquire a new one.
    """
    if margin is None:
        margin = timedelta(seconds=config.RENEW_MARGIN_SECONDS)

    while True:
        remaining = lease.remaining(utcnow())
        delay = (remaining - margin).total_seconds()
        if delay <= 0:
            # Margin larger than the TTL: renew at half the remaining time
            delay = max(remaining.total_seconds() / 2, 0)
        await asyncio.sleep(delay)

        try:
            await manager.renew_lease(lease)
        except LeaseOwnershipError as e:
            logger.error(f"Lease {lease.subnet} lost, must re-acquire: {e}")
            raise
        except BackendError as e:
            logger.warning(f"Failed to renew lease {lease.subnet}: {e}")
            logger.debug(f"Traceback:\n{format_traceback(e)}")
            await asyncio.sleep(config.RENEW_RETRY_SECONDS)
            continue

        logger.info(
            f"Renewed lease {lease.subnet}, new expiration: "
            f"{lease.expiration.isoformat()}"
        )
