"""
Durable lease registry on SQLite.

Several agent processes on one machine (or sharing one database file) can
coordinate through this registry:

- create_lease relies on the primary key of the leases table, inside an
  IMMEDIATE transaction, for create-if-absent
- update_lease / delete_lease only touch the row if its asof still matches
- every write bumps the revision kept in registry_meta and appends one row
  to lease_events; the history is pruned to WATCH_HISTORY_SIZE entries

Blocking database calls run in worker threads (asyncio.to_thread), each
opening its own connection for the duration of one operation.

Watchers poll at WATCH_POLL_INTERVAL_SECONDS to see writes made by other
processes; writes made through this registry object wake them immediately.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

import peewee

from kohakunet.config import config
from kohakunet.db.base import initialize_database
from kohakunet.db.lease import LEASE_MODELS, LeaseRecord
from kohakunet.ip.address import IPNetwork
from kohakunet.models.enums import EventType
from kohakunet.models.wire import encode_event, encode_lease
from kohakunet.registry.base import LeaseRegistry, cursor_in_window
from kohakunet.subnet.config import NetworkConfig, validate_config
from kohakunet.subnet.errors import (
    BackendError,
    ConfigError,
    KeyExistsError,
    LeaseOwnershipError,
)
from kohakunet.subnet.key import make_subnet_key
from kohakunet.subnet.lease import Event, Lease, LeaseAttrs, LeaseWatchResult, utcnow
from kohakunet.utils.logger import get_logger

logger = get_logger(__name__)

META_REVISION = "revision"
META_NETWORK_CONFIG = "network_config"


class SqliteRegistry(LeaseRegistry):
    """Lease registry persisted in a SQLite database through peewee."""

    def __init__(
        self,
        db_path: str | None = None,
        history_size: int | None = None,
        poll_interval: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Open (and create if needed) the registry database.

        Args:
            db_path: SQLite file (default: config.DB_FILE).
            history_size: Events retained for incremental watches.
            poll_interval: Seconds between checks for foreign writes.
            clock: Time source, injectable for tests.

        Raises:
            BackendError: If the database file cannot be opened or created.
        """
        self.db_path = db_path or config.DB_FILE
        self._history_size = history_size or config.WATCH_HISTORY_SIZE
        self._poll_interval = (
            config.WATCH_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        )
        self._clock = clock
        self._changed = asyncio.Event()

        try:
            self.db, tables = initialize_database(self.db_path, LEASE_MODELS)
        except (OSError, peewee.DatabaseError) as e:
            raise BackendError(f"cannot open lease database '{self.db_path}': {e}") from e
        self._leases, self._events, self._meta = tables

    # =========================================================================
    # Internal helpers
    # =========================================================================

    async def _run(self, fn, *args):
        """Run a blocking operation in a worker thread with its own connection."""

        def call():
            with self.db.connection_context():
                return fn(*args)

        try:
            return await asyncio.to_thread(call)
        except peewee.OperationalError as e:
            raise BackendError(f"lease database error: {e}") from e

    def _notify(self) -> None:
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    def _revision_sync(self) -> int:
        return int(self._meta.get_value(META_REVISION, "0"))

    def _bump_revision_sync(self) -> int:
        revision = self._revision_sync() + 1
        self._meta.set_value(META_REVISION, str(revision))
        return revision

    def _record_event_sync(self, event_type: EventType, lease: Lease) -> None:
        self._events.create(
            revision=lease.asof,
            key=lease.key,
            data=encode_event(Event(event_type, lease)),
        )
        cutoff = lease.asof - self._history_size
        if cutoff > 0:
            self._events.delete().where(self._events.revision <= cutoff).execute()

    def _expire_sync(self) -> int:
        now = self._clock().timestamp()
        expired = list(self._leases.select().where(self._leases.expiration <= now))
        for record in expired:
            lease = record.to_lease()
            record.delete_instance()
            lease.asof = self._bump_revision_sync()
            self._record_event_sync(EventType.REMOVED, lease)
            logger.info(f"Lease expired: {lease.subnet} ({lease.attrs.public_ip})")
        return len(expired)

    def _owned_record_sync(self, key: str, asof: int) -> LeaseRecord:
        record = self._leases.get_or_none(self._leases.key == key)
        if record is None:
            raise LeaseOwnershipError(key, "lease does not exist (expired or released)")
        if record.asof != asof:
            raise LeaseOwnershipError(
                key, f"lease was rewritten (asof {record.asof}, expected {asof})"
            )
        return record

    # =========================================================================
    # Synchronous operations (worker thread)
    # =========================================================================

    def _get_leases_sync(self) -> tuple[list[Lease], int]:
        with self.db.atomic("IMMEDIATE"):
            self._expire_sync()
            leases = [record.to_lease() for record in self._leases.select()]
            return leases, self._revision_sync()

    def _get_lease_sync(self, key: str) -> Lease | None:
        with self.db.atomic("IMMEDIATE"):
            self._expire_sync()
            record = self._leases.get_or_none(self._leases.key == key)
            return record.to_lease() if record is not None else None

    def _create_lease_sync(self, subnet: IPNetwork, attrs: LeaseAttrs, ttl: float) -> Lease:
        key = make_subnet_key(subnet)
        with self.db.atomic("IMMEDIATE"):
            self._expire_sync()
            if self._leases.get_or_none(self._leases.key == key) is not None:
                raise KeyExistsError(key)

            lease = Lease(
                subnet=subnet,
                attrs=replace(attrs),
                expiration=self._clock() + timedelta(seconds=ttl),
                asof=self._bump_revision_sync(),
            )
            self._leases.create(
                key=key,
                asof=lease.asof,
                expiration=lease.expiration.timestamp(),
                data=encode_lease(lease),
            )
            self._record_event_sync(EventType.ADDED, lease)
            return lease

    def _update_lease_sync(self, key: str, attrs: LeaseAttrs, ttl: float, asof: int) -> Lease:
        with self.db.atomic("IMMEDIATE"):
            self._expire_sync()
            record = self._owned_record_sync(key, asof)

            lease = record.to_lease()
            lease.attrs = replace(attrs)
            lease.expiration = self._clock() + timedelta(seconds=ttl)
            lease.asof = self._bump_revision_sync()
            (
                self._leases.update(
                    asof=lease.asof,
                    expiration=lease.expiration.timestamp(),
                    data=encode_lease(lease),
                )
                .where((self._leases.key == key) & (self._leases.asof == asof))
                .execute()
            )
            self._record_event_sync(EventType.ADDED, lease)
            return lease

    def _delete_lease_sync(self, key: str, asof: int) -> None:
        with self.db.atomic("IMMEDIATE"):
            self._expire_sync()
            record = self._owned_record_sync(key, asof)

            lease = record.to_lease()
            record.delete_instance()
            lease.asof = self._bump_revision_sync()
            self._record_event_sync(EventType.REMOVED, lease)

    def _poll_sync(self, cursor: Any) -> LeaseWatchResult | None:
        """One watch round: a result, or None when nothing is newer than cursor."""
        with self.db.atomic("IMMEDIATE"):
            self._expire_sync()
            revision = self._revision_sync()
            oldest = self._events.select(
                peewee.fn.MIN(self._events.revision)
            ).scalar()

            if not cursor_in_window(cursor, oldest, revision):
                leases = [record.to_lease() for record in self._leases.select()]
                return LeaseWatchResult.from_snapshot(leases, revision)

            records = (
                self._events.select()
                .where(self._events.revision > cursor)
                .order_by(self._events.revision)
            )
            events = [record.to_event() for record in records]
            if events:
                return LeaseWatchResult.from_events(events, revision)
            return None

    def _expire_leases_sync(self) -> int:
        with self.db.atomic("IMMEDIATE"):
            return self._expire_sync()

    # =========================================================================
    # LeaseRegistry
    # =========================================================================

    async def get_network_config(self) -> NetworkConfig:
        raw = await self._run(self._meta.get_value, META_NETWORK_CONFIG)
        if raw is None:
            raise ConfigError(f"network config not found in registry {self.db_path}")
        return validate_config(raw)

    async def set_network_config(self, network_config: NetworkConfig) -> None:
        document = json.dumps(network_config.to_document())
        await self._run(self._meta.set_value, META_NETWORK_CONFIG, document)
        logger.info(f"Stored network config: {network_config.network}")

    async def get_leases(self) -> tuple[list[Lease], int]:
        return await self._run(self._get_leases_sync)

    async def get_lease(self, key: str) -> Lease | None:
        return await self._run(self._get_lease_sync, key)

    async def create_lease(
        self, subnet: IPNetwork, attrs: LeaseAttrs, ttl: float
    ) -> Lease:
        lease = await self._run(self._create_lease_sync, subnet, attrs, ttl)
        self._notify()
        return lease

    async def update_lease(
        self, key: str, attrs: LeaseAttrs, ttl: float, asof: int
    ) -> Lease:
        lease = await self._run(self._update_lease_sync, key, attrs, ttl, asof)
        self._notify()
        return lease

    async def delete_lease(self, key: str, asof: int) -> None:
        await self._run(self._delete_lease_sync, key, asof)
        self._notify()

    async def watch(self, cursor: Any) -> LeaseWatchResult:
        while True:
            # Grab the wakeup event before polling so a write in between
            # still wakes us
            changed = self._changed
            result = await self._run(self._poll_sync, cursor)
            if result is not None:
                return result
            try:
                await asyncio.wait_for(changed.wait(), self._poll_interval)
            except asyncio.TimeoutError:
                pass

    async def expire_leases(self) -> int:
        count = await self._run(self._expire_leases_sync)
        if count:
            self._notify()
        return count

    async def close(self) -> None:
        # Worker threads close their own connections; only the calling
        # thread's one can still be open here
        if not self.db.is_closed():
            self.db.close()
