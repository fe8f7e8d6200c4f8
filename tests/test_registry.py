"""
Lease registry contract tests.

Every test runs against both MemoryRegistry and SqliteRegistry.
"""

import asyncio
import ipaddress
from datetime import timedelta

import pytest

from kohakunet.models.enums import EventType
from kohakunet.registry.base import cursor_in_window
from kohakunet.registry.memory import MemoryRegistry
from kohakunet.registry.sqlite import SqliteRegistry
from kohakunet.subnet.errors import (
    BackendError,
    ConfigError,
    KeyExistsError,
    LeaseOwnershipError,
)
from kohakunet.subnet.key import make_subnet_key

from conftest import make_attrs

HISTORY_SIZE = 4
TTL = 60

net = ipaddress.ip_network


def subnet(n: int):
    return net(f"10.5.{n}.0/24")


@pytest.fixture(params=["memory", "sqlite"])
def registry(request, tmp_path, clock):
    if request.param == "memory":
        yield MemoryRegistry(history_size=HISTORY_SIZE, clock=clock)
    else:
        yield SqliteRegistry(
            str(tmp_path / "leases.db"),
            history_size=HISTORY_SIZE,
            poll_interval=0.05,
            clock=clock,
        )


class TestCursorWindow:
    def test_no_cursor(self):
        assert not cursor_in_window(None, 1, 5)

    def test_current_cursor(self):
        assert cursor_in_window(5, 3, 5)
        assert cursor_in_window(0, None, 0)

    def test_cursor_inside_history(self):
        assert cursor_in_window(2, 3, 5)
        assert cursor_in_window(4, 3, 5)

    def test_stale_cursor(self):
        assert not cursor_in_window(1, 3, 5)
        assert not cursor_in_window(2, None, 5)

    def test_cursor_ahead_or_garbage(self):
        assert not cursor_in_window(6, 3, 5)
        assert not cursor_in_window(-1, 3, 5)
        assert not cursor_in_window("4", 3, 5)
        assert not cursor_in_window(True, 1, 5)


class TestNetworkConfig:
    @pytest.mark.asyncio
    async def test_missing_config(self, registry):
        with pytest.raises(ConfigError):
            await registry.get_network_config()

    @pytest.mark.asyncio
    async def test_set_and_get(self, registry, network_config):
        await registry.set_network_config(network_config)
        assert await registry.get_network_config() == network_config


class TestLeaseWrites:
    @pytest.mark.asyncio
    async def test_create_and_get(self, registry, clock):
        lease = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)

        assert lease.subnet == subnet(1)
        assert lease.asof == 1
        assert lease.expiration == clock() + timedelta(seconds=TTL)
        assert await registry.get_lease(make_subnet_key(subnet(1))) == lease

        leases, revision = await registry.get_leases()
        assert leases == [lease]
        assert revision == 1

    @pytest.mark.asyncio
    async def test_create_taken_subnet(self, registry):
        await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)
        with pytest.raises(KeyExistsError):
            await registry.create_lease(subnet(1), make_attrs("192.0.2.2"), TTL)

    @pytest.mark.asyncio
    async def test_every_write_bumps_revision(self, registry):
        first = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)
        second = await registry.create_lease(subnet(2), make_attrs("192.0.2.2"), TTL)
        updated = await registry.update_lease(first.key, first.attrs, TTL, first.asof)
        await registry.delete_lease(second.key, second.asof)

        assert (first.asof, second.asof, updated.asof) == (1, 2, 3)
        _, revision = await registry.get_leases()
        assert revision == 4

    @pytest.mark.asyncio
    async def test_update_extends_expiration(self, registry, clock):
        lease = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)
        clock.advance(30)

        attrs = make_attrs("192.0.2.1", backend_type="udp")
        updated = await registry.update_lease(lease.key, attrs, TTL, lease.asof)

        assert updated.expiration == clock() + timedelta(seconds=TTL)
        assert updated.attrs.backend_type == "udp"
        assert updated.asof > lease.asof

    @pytest.mark.asyncio
    async def test_update_with_stale_asof(self, registry):
        lease = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)
        await registry.update_lease(lease.key, lease.attrs, TTL, lease.asof)

        with pytest.raises(LeaseOwnershipError):
            await registry.update_lease(lease.key, lease.attrs, TTL, lease.asof)
        with pytest.raises(LeaseOwnershipError):
            await registry.delete_lease(lease.key, lease.asof)

    @pytest.mark.asyncio
    async def test_update_missing_lease(self, registry):
        with pytest.raises(LeaseOwnershipError):
            await registry.update_lease(
                make_subnet_key(subnet(1)), make_attrs("192.0.2.1"), TTL, 1
            )
        with pytest.raises(LeaseOwnershipError):
            await registry.delete_lease(make_subnet_key(subnet(1)), 1)

    @pytest.mark.asyncio
    async def test_returned_leases_are_copies(self, registry):
        lease = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)
        lease.attrs.backend_type = "changed"
        lease.asof = 99

        stored = await registry.get_lease(lease.key)
        assert stored.attrs.backend_type == "vxlan"
        assert stored.asof == 1

    @pytest.mark.asyncio
    async def test_expired_lease_is_gone(self, registry, clock):
        lease = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), 10)
        clock.advance(10)

        assert await registry.get_lease(lease.key) is None
        with pytest.raises(LeaseOwnershipError):
            await registry.update_lease(lease.key, lease.attrs, TTL, lease.asof)

        # The subnet is free again for anyone
        taken = await registry.create_lease(subnet(1), make_attrs("192.0.2.2"), TTL)
        assert str(taken.attrs.public_ip) == "192.0.2.2"


class TestWatch:
    @pytest.mark.asyncio
    async def test_no_cursor_gives_snapshot(self, registry):
        lease = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)

        result = await registry.watch(None)

        assert result.is_snapshot
        assert result.snapshot == [lease]
        assert result.cursor == 1

    @pytest.mark.asyncio
    async def test_events_after_cursor(self, registry):
        first = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)
        second = await registry.create_lease(subnet(2), make_attrs("192.0.2.2"), TTL)
        await registry.delete_lease(first.key, first.asof)

        result = await registry.watch(0)

        assert [event.type for event in result.events] == [
            EventType.ADDED,
            EventType.ADDED,
            EventType.REMOVED,
        ]
        assert [event.lease.subnet for event in result.events] == [
            subnet(1),
            subnet(2),
            subnet(1),
        ]
        assert result.cursor == 3

        result = await registry.watch(1)
        assert [event.lease.subnet for event in result.events] == [subnet(2), subnet(1)]
        assert result.events[0].lease == second

    @pytest.mark.asyncio
    async def test_renewal_is_added_event(self, registry):
        lease = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)
        await registry.update_lease(lease.key, lease.attrs, TTL, lease.asof)

        result = await registry.watch(lease.asof)

        assert len(result.events) == 1
        assert result.events[0].type == EventType.ADDED
        assert result.events[0].lease.asof == 2

    @pytest.mark.asyncio
    async def test_stale_cursor_gives_snapshot(self, registry):
        for n in range(1, 7):
            await registry.create_lease(subnet(n), make_attrs(f"192.0.2.{n}"), TTL)

        stale = await registry.watch(1)
        assert stale.is_snapshot
        assert len(stale.snapshot) == 6
        assert stale.cursor == 6

        fresh = await registry.watch(2)
        assert not fresh.is_snapshot
        assert [event.lease.subnet for event in fresh.events] == [
            subnet(3),
            subnet(4),
            subnet(5),
            subnet(6),
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cursor", [100, -3, "garbage"])
    async def test_invalid_cursor_gives_snapshot(self, registry, cursor):
        await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)

        result = await registry.watch(cursor)

        assert result.is_snapshot
        assert result.cursor == 1

    @pytest.mark.asyncio
    async def test_watch_blocks_until_write(self, registry):
        _, revision = await registry.get_leases()
        task = asyncio.create_task(registry.watch(revision))

        await asyncio.sleep(0.1)
        assert not task.done()

        await registry.create_lease(subnet(9), make_attrs("192.0.2.9"), TTL)
        result = await asyncio.wait_for(task, 2)

        assert len(result.events) == 1
        assert result.events[0].lease.subnet == subnet(9)

    @pytest.mark.asyncio
    async def test_watch_cancellation(self, registry):
        task = asyncio.create_task(registry.watch(0))
        await asyncio.sleep(0.1)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_caller_deadline(self, registry):
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(registry.watch(0), 0.1)

    @pytest.mark.asyncio
    async def test_expiry_is_removed_event(self, registry, clock):
        lease = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), 10)
        clock.advance(11)

        assert await registry.expire_leases() == 1
        result = await registry.watch(lease.asof)

        assert len(result.events) == 1
        assert result.events[0].type == EventType.REMOVED
        assert result.events[0].lease.subnet == subnet(1)
        assert result.cursor == 2


@pytest.mark.asyncio
async def test_memory_watch_wakes_on_expiry(network_config):
    registry = MemoryRegistry(network_config)
    lease = await registry.create_lease(subnet(1), make_attrs("192.0.2.1"), 0.1)

    result = await asyncio.wait_for(registry.watch(lease.asof), 2)

    assert result.events[0].type == EventType.REMOVED


@pytest.mark.asyncio
async def test_sqlite_registry_persists(tmp_path, network_config):
    path = str(tmp_path / "leases.db")
    first = SqliteRegistry(path)
    await first.set_network_config(network_config)
    lease = await first.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)

    second = SqliteRegistry(path)
    assert await second.get_network_config() == network_config
    assert await second.get_lease(lease.key) == lease
    with pytest.raises(KeyExistsError):
        await second.create_lease(subnet(1), make_attrs("192.0.2.2"), TTL)

    await first.close()
    await second.close()


@pytest.mark.asyncio
async def test_sqlite_registries_are_independent(tmp_path, network_config):
    site_a = SqliteRegistry(str(tmp_path / "a" / "leases.db"))
    site_b = SqliteRegistry(str(tmp_path / "b" / "leases.db"))
    await site_a.set_network_config(network_config)

    lease = await site_a.create_lease(subnet(1), make_attrs("192.0.2.1"), TTL)

    assert await site_b.get_leases() == ([], 0)
    with pytest.raises(ConfigError):
        await site_b.get_network_config()

    # Same subnet in the other registry is still free
    other = await site_b.create_lease(subnet(1), make_attrs("192.0.2.2"), TTL)
    assert other.asof == 1
    assert await site_a.get_lease(lease.key) == lease

    await site_a.close()
    await site_b.close()


def test_sqlite_registry_unusable_path(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(BackendError, match="cannot open lease database"):
        SqliteRegistry(str(blocker / "leases.db"))
