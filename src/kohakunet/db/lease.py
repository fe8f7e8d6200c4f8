"""
Lease database models for KohakuNet.

Tables:
    - leases: one row per live lease, keyed by subnet key
    - lease_events: bounded change history, keyed by revision
    - registry_meta: registry-wide values (revision counter, network config)

Lease and event bodies are stored in their JSON wire form, so the row
columns only carry what queries need.
"""

import peewee

from kohakunet.db.base import BaseModel
from kohakunet.models.wire import decode_event, decode_lease
from kohakunet.subnet.lease import Event, Lease


# =============================================================================
# Lease Model
# =============================================================================


class LeaseRecord(BaseModel):
    """
    A live lease.

    Attributes:
        key: Subnet key (primary key, uniqueness gives create-if-absent).
        asof: Revision of the last write, compared on update/delete.
        expiration: Expiration as a POSIX timestamp.
        data: Lease in wire JSON form.
    """

    key = peewee.CharField(primary_key=True)
    asof = peewee.BigIntegerField()
    expiration = peewee.DoubleField(index=True)
    data = peewee.TextField()

    class Meta:
        table_name = "leases"

    def to_lease(self) -> Lease:
        return decode_lease(self.data)


# =============================================================================
# Event Model
# =============================================================================


class LeaseEventRecord(BaseModel):
    """One entry of the change history."""

    revision = peewee.BigIntegerField(primary_key=True)
    key = peewee.CharField()
    data = peewee.TextField()  # Event in wire JSON form

    class Meta:
        table_name = "lease_events"

    def to_event(self) -> Event:
        return decode_event(self.data)


# =============================================================================
# Registry Metadata
# =============================================================================


class RegistryMeta(BaseModel):
    """Registry-wide key/value settings."""

    name = peewee.CharField(primary_key=True)
    value = peewee.TextField()

    class Meta:
        table_name = "registry_meta"

    @classmethod
    def get_value(cls, name: str, default: str | None = None) -> str | None:
        row = cls.get_or_none(cls.name == name)
        return row.value if row is not None else default

    @classmethod
    def set_value(cls, name: str, value: str) -> None:
        cls.insert(name=name, value=value).on_conflict_replace().execute()


# Tables of one lease registry, in the order SqliteRegistry unpacks them
LEASE_MODELS = [LeaseRecord, LeaseEventRecord, RegistryMeta]
