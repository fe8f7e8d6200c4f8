"""
Lease registry contract.

A LeaseRegistry is the coordination backend the LocalManager runs on. It
owns the set of live leases and provides the atomic primitives that make
subnet ownership exclusive across independent agents:

- create_lease: create-if-absent, KeyExistsError when the key is taken
- update_lease / delete_lease: compare-and-swap on the lease's asof
- watch: blocking change feed with a resumable cursor

Revisions:
    Every write bumps a registry-wide revision by one, stamps it on the
    written lease as asof, and appends one event to a bounded history.
    Cursors are revisions: "the last revision the caller has seen".
    A cursor can be served incrementally only while every event after it
    is still in the history; otherwise the caller gets a snapshot.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from kohakunet.ip.address import IPNetwork
from kohakunet.subnet.config import NetworkConfig
from kohakunet.subnet.lease import Lease, LeaseAttrs, LeaseWatchResult


def cursor_in_window(cursor: Any, oldest_revision: int | None, revision: int) -> bool:
    """
    Whether a cursor can be answered with events.

    Args:
        cursor: Caller's cursor (last revision seen), or None.
        oldest_revision: Revision of the oldest retained event, None if the
            history is empty.
        revision: Current registry revision.
    """
    if cursor is None or isinstance(cursor, bool) or not isinstance(cursor, int):
        return False
    if cursor < 0 or cursor > revision:
        return False
    if cursor == revision:
        return True
    return oldest_revision is not None and oldest_revision <= cursor + 1


class LeaseRegistry(ABC):
    """Abstract coordination backend for subnet leases."""

    @abstractmethod
    async def get_network_config(self) -> NetworkConfig:
        """
        Get the stored network config.

        Raises:
            ConfigError: If no network config has been stored.
        """

    @abstractmethod
    async def set_network_config(self, network_config: NetworkConfig) -> None:
        """Store the network config shared by all agents."""

    @abstractmethod
    async def get_leases(self) -> tuple[list[Lease], int]:
        """Get all live leases and the revision they were read at."""

    @abstractmethod
    async def get_lease(self, key: str) -> Lease | None:
        """Get one live lease by subnet key."""

    @abstractmethod
    async def create_lease(
        self, subnet: IPNetwork, attrs: LeaseAttrs, ttl: float
    ) -> Lease:
        """
        Create a lease if the subnet has none.

        Raises:
            KeyExistsError: If a live lease already holds the subnet.
        """

    @abstractmethod
    async def update_lease(
        self, key: str, attrs: LeaseAttrs, ttl: float, asof: int
    ) -> Lease:
        """
        Replace attrs and extend expiration of a lease still at revision asof.

        Raises:
            LeaseOwnershipError: If the lease is gone or was rewritten since.
        """

    @abstractmethod
    async def delete_lease(self, key: str, asof: int) -> None:
        """
        Remove a lease still at revision asof.

        Raises:
            LeaseOwnershipError: If the lease is gone or was rewritten since.
        """

    @abstractmethod
    async def watch(self, cursor: Any) -> LeaseWatchResult:
        """
        Wait for changes after cursor.

        Returns a snapshot right away when the cursor is None, stale or
        ahead of the registry; otherwise blocks until at least one event
        after the cursor exists. Cancellation propagates as
        asyncio.CancelledError.
        """

    async def expire_leases(self) -> int:
        """Remove leases whose expiration has passed. Returns the count."""
        return 0

    async def close(self) -> None:
        """Release backend resources."""
