"""
Subnet lease manager.

SubnetManager is the protocol surface allocator agents program against:

    config = await manager.get_network_config()
    lease = await manager.acquire_lease(LeaseAttrs(public_ip=my_ip))
    await manager.renew_lease(lease)                  # periodically
    result = await manager.watch_leases(cursor)       # long-poll loop

Operations are coroutines. Cancelling the calling task aborts the call
(asyncio.CancelledError); deadlines are set by the caller with
asyncio.timeout() / asyncio.wait_for().

LocalManager implements the protocol on top of a LeaseRegistry. Exclusive
ownership of a subnet comes from the registry's atomic create-if-absent and
compare-and-swap primitives; the manager only adds bounded retries when
another agent wins the race for a candidate subnet.

Lease lifecycle (one agent's view):
    Unacquired -> Held (acquire_lease)
    Held -> Held (renew_lease extends expiration)
    Held -> Expired (expiration passes without renew, or lease released)
Expired is terminal for that lease; renewing it raises LeaseOwnershipError
and the agent must acquire again.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import Any

from kohakunet.config import config
from kohakunet.ip.address import IPNetwork
from kohakunet.registry.base import LeaseRegistry
from kohakunet.subnet.config import NetworkConfig
from kohakunet.subnet.errors import (
    ConfigError,
    KeyExistsError,
    LeaseOwnershipError,
    LeaseTakenError,
    NoMoreTriesError,
)
from kohakunet.subnet.key import make_subnet_key
from kohakunet.subnet.lease import Lease, LeaseAttrs, LeaseWatchResult
from kohakunet.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Manager Protocol
# =============================================================================


class SubnetManager(ABC):
    """Lease manager protocol implemented by coordination adapters."""

    name: str = "abstract"

    @abstractmethod
    async def get_network_config(self) -> NetworkConfig:
        """Get the active validated network config."""

    @abstractmethod
    async def acquire_lease(
        self, attrs: LeaseAttrs, subnet: IPNetwork | None = None
    ) -> Lease:
        """
        Obtain a lease on a free subnet (or on a specific subnet).

        Raises:
            LeaseTakenError: The requested subnet is held by someone else.
            NoMoreTriesError: No subnet could be reserved within the budget.
        """

    @abstractmethod
    async def renew_lease(self, lease: Lease) -> None:
        """
        Extend a held lease; updates lease.expiration and lease.asof.

        Raises:
            LeaseOwnershipError: The lease is no longer ours.
        """

    @abstractmethod
    async def release_lease(self, lease: Lease) -> None:
        """Give a held lease up before it expires."""

    @abstractmethod
    async def watch_lease(self, subnet: IPNetwork, cursor: Any = None) -> LeaseWatchResult:
        """Wait for a change to one subnet's lease after cursor."""

    @abstractmethod
    async def watch_leases(self, cursor: Any = None) -> LeaseWatchResult:
        """Wait for a change to any lease after cursor."""


# =============================================================================
# Registry-backed Manager
# =============================================================================


class LocalManager(SubnetManager):
    """
    Lease manager running the allocation logic locally against a registry.

    Acquisition strategy:
    - A live lease that already carries our public IP is reused, so a
      restarted agent keeps its subnet (and its containers' addresses).
      A lease outside the current network config's range is released
      instead.
    - Otherwise a random subnet among the first ACQUIRE_CANDIDATE_WINDOW free
      ones is created; losing the race to another agent is retried with a
      fresh view, up to ACQUIRE_MAX_TRIES times.
    """

    name = "local"

    def __init__(
        self,
        registry: LeaseRegistry,
        lease_ttl: float | None = None,
        max_tries: int | None = None,
        candidate_window: int | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the manager.

        Args:
            registry: Coordination backend holding the leases.
            lease_ttl: Seconds a lease lives after acquire/renew.
            max_tries: Attempts before giving up with NoMoreTriesError.
            candidate_window: Free subnets to choose randomly among.
            rng: Random source, injectable for tests.
        """
        self.registry = registry
        self.lease_ttl = lease_ttl if lease_ttl is not None else config.LEASE_TTL_SECONDS
        self.max_tries = max_tries or config.ACQUIRE_MAX_TRIES
        self.candidate_window = candidate_window or config.ACQUIRE_CANDIDATE_WINDOW
        self._rng = rng or random.Random()

    async def get_network_config(self) -> NetworkConfig:
        return await self.registry.get_network_config()

    # =========================================================================
    # Acquire
    # =========================================================================

    async def acquire_lease(
        self, attrs: LeaseAttrs, subnet: IPNetwork | None = None
    ) -> Lease:
        network_config = await self.get_network_config()

        if subnet is not None:
            return await self._acquire_specific(network_config, attrs, subnet)

        for attempt in range(1, self.max_tries + 1):
            leases, _ = await self.registry.get_leases()

            existing = next(
                (lease for lease in leases if lease.attrs.public_ip == attrs.public_ip),
                None,
            )
            if existing is not None and not network_config.contains_subnet(existing.subnet):
                # Left over from a previous network config; give it up
                try:
                    await self.registry.delete_lease(existing.key, existing.asof)
                except LeaseOwnershipError as e:
                    logger.debug(f"Stale lease changed under us, retrying: {e}")
                    continue
                logger.info(
                    f"Released lease {existing.subnet} of {attrs.public_ip}: "
                    f"outside of {network_config.network}"
                )
                existing = None

            if existing is not None:
                try:
                    lease = await self.registry.update_lease(
                        existing.key, attrs, self.lease_ttl, existing.asof
                    )
                except LeaseOwnershipError as e:
                    logger.debug(f"Existing lease changed under us, retrying: {e}")
                    continue
                logger.info(
                    f"Reusing existing lease for {attrs.public_ip}: {lease.subnet}"
                )
                return lease

            candidate = self._pick_free_subnet(network_config, leases)
            if candidate is None:
                raise NoMoreTriesError(
                    attempt, f"out of subnets in {network_config.network}"
                )

            try:
                lease = await self.registry.create_lease(candidate, attrs, self.lease_ttl)
            except KeyExistsError:
                logger.debug(
                    f"Subnet {candidate} taken concurrently, retrying "
                    f"({attempt}/{self.max_tries})"
                )
                continue

            logger.info(
                f"Acquired lease for {attrs.public_ip}: subnet={lease.subnet}, "
                f"expires={lease.expiration.isoformat()}"
            )
            return lease

        raise NoMoreTriesError(self.max_tries, "persistent contention")

    async def _acquire_specific(
        self, network_config: NetworkConfig, attrs: LeaseAttrs, subnet: IPNetwork
    ) -> Lease:
        """Acquire one requested subnet, or fail with LeaseTakenError."""
        if not network_config.contains_subnet(subnet):
            raise ConfigError(
                f"Requested subnet {subnet} is not an allocatable /"
                f"{network_config.subnet_len} of {network_config.network} "
                f"({network_config.subnet_min} - {network_config.subnet_max})"
            )

        key = make_subnet_key(subnet)
        for attempt in range(1, self.max_tries + 1):
            existing = await self.registry.get_lease(key)

            if existing is None:
                try:
                    lease = await self.registry.create_lease(subnet, attrs, self.lease_ttl)
                except KeyExistsError:
                    # Someone created it first; the next round finds out who
                    continue
                logger.info(f"Acquired requested lease for {attrs.public_ip}: {subnet}")
                return lease

            if existing.attrs.public_ip != attrs.public_ip:
                raise LeaseTakenError(subnet)

            try:
                lease = await self.registry.update_lease(
                    key, attrs, self.lease_ttl, existing.asof
                )
            except LeaseOwnershipError:
                continue
            logger.info(f"Reusing requested lease for {attrs.public_ip}: {subnet}")
            return lease

        raise NoMoreTriesError(self.max_tries, f"contention on {subnet}")

    def _pick_free_subnet(
        self, network_config: NetworkConfig, leases: list[Lease]
    ) -> IPNetwork | None:
        taken = {lease.subnet for lease in leases}
        free: list[IPNetwork] = []
        for candidate in network_config.iter_subnets():
            if candidate in taken:
                continue
            free.append(candidate)
            if len(free) >= self.candidate_window:
                break
        if not free:
            return None
        return self._rng.choice(free)

    # =========================================================================
    # Renew / Release
    # =========================================================================

    async def renew_lease(self, lease: Lease) -> None:
        renewed = await self.registry.update_lease(
            lease.key, lease.attrs, self.lease_ttl, lease.asof
        )
        lease.expiration = renewed.expiration
        lease.asof = renewed.asof
        logger.debug(f"Renewed lease {lease.subnet} until {lease.expiration.isoformat()}")

    async def release_lease(self, lease: Lease) -> None:
        await self.registry.delete_lease(lease.key, lease.asof)
        logger.info(f"Released lease {lease.subnet}")

    # =========================================================================
    # Watch
    # =========================================================================

    async def watch_lease(self, subnet: IPNetwork, cursor: Any = None) -> LeaseWatchResult:
        key = make_subnet_key(subnet)
        while True:
            result = await self.registry.watch(cursor)

            if result.is_snapshot:
                leases = [lease for lease in result.snapshot if lease.key == key]
                return LeaseWatchResult.from_snapshot(leases, result.cursor)

            events = [event for event in result.events if event.lease.key == key]
            if events:
                return LeaseWatchResult.from_events(events, result.cursor)

            # Changes to other subnets only; keep waiting from the new position
            cursor = result.cursor

    async def watch_leases(self, cursor: Any = None) -> LeaseWatchResult:
        return await self.registry.watch(cursor)
