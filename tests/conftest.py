"""Shared fixtures for KohakuNet tests."""

import ipaddress
from datetime import datetime, timedelta, timezone

import pytest

from kohakunet.registry.memory import MemoryRegistry
from kohakunet.subnet.config import validate_config
from kohakunet.subnet.lease import LeaseAttrs


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_attrs(public_ip: str, backend_type: str = "vxlan") -> LeaseAttrs:
    return LeaseAttrs(
        public_ip=ipaddress.ip_address(public_ip),
        backend_type=backend_type,
        backend_data=b'{"VtepMAC":"aa:bb:cc:dd:ee:ff"}',
    )


@pytest.fixture
def network_config():
    """10.5.0.0/16 split into /24s: 10.5.1.0 - 10.5.255.0."""
    return validate_config({"Network": "10.5.0.0/16", "Backend": {"Type": "vxlan"}})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_registry(network_config, clock):
    return MemoryRegistry(network_config, clock=clock)
