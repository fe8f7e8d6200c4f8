"""
KohakuNet: overlay network subnet lease allocator.

Splits one shared network range into per-host subnets and coordinates
exclusive, renewable leases on them between independent agents.

    from kohakunet import LeaseAttrs, LocalManager, MemoryRegistry, validate_config

    registry = MemoryRegistry(validate_config('{"Network": "10.5.0.0/16"}'))
    manager = LocalManager(registry)
    lease = await manager.acquire_lease(LeaseAttrs(public_ip=my_ip))
"""

from kohakunet.subnet.errors import (
    BackendError,
    BackendTimeoutError,
    ConfigError,
    KeyExistsError,
    LeaseOwnershipError,
    LeaseTakenError,
    NoMoreTriesError,
    SubnetError,
    WireDecodeError,
)
from kohakunet.subnet.key import make_subnet_key, parse_subnet_key
from kohakunet.subnet.lease import Event, Lease, LeaseAttrs, LeaseWatchResult
from kohakunet.subnet.config import (
    NetworkConfig,
    load_config_file,
    parse_config,
    validate_config,
)
from kohakunet.registry import LeaseRegistry, MemoryRegistry, SqliteRegistry
from kohakunet.subnet.manager import LocalManager, SubnetManager
from kohakunet.subnet.watch import LeaseWatcher, renew_loop, watch_lease, watch_leases
from kohakunet.models.enums import AddressFamily, EventType, LogLevel

__version__ = "0.1.0"

__all__ = [
    "AddressFamily",
    "BackendError",
    "BackendTimeoutError",
    "ConfigError",
    "Event",
    "EventType",
    "KeyExistsError",
    "Lease",
    "LeaseAttrs",
    "LeaseOwnershipError",
    "LeaseRegistry",
    "LeaseTakenError",
    "LeaseWatchResult",
    "LeaseWatcher",
    "LocalManager",
    "LogLevel",
    "MemoryRegistry",
    "NetworkConfig",
    "NoMoreTriesError",
    "SqliteRegistry",
    "SubnetError",
    "SubnetManager",
    "WireDecodeError",
    "load_config_file",
    "make_subnet_key",
    "parse_config",
    "parse_subnet_key",
    "renew_loop",
    "validate_config",
    "watch_lease",
    "watch_leases",
]
