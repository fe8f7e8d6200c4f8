"""
Address arithmetic over fixed-width IP addresses.

All math is done on Python ints, so the 128-bit IPv6 case needs no special
handling. Functions are pure and work for both address families:

- next_ip / next_n_ip / previous_n_ip: step an address by N
- last_ip: last address of a network
- expand_ip / expand_network: canonical fully expanded text form
  (e.g. "fd00:0000:0000:0000:0000:0000:0000:0001", never "fd00::1")
"""

from __future__ import annotations

import ipaddress

from kohakunet.models.enums import AddressFamily

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


# =============================================================================
# Family Helpers
# =============================================================================


def address_family(value: IPAddress | IPNetwork) -> AddressFamily:
    """Get the address family of an address or network."""
    if value.version == 4:
        return AddressFamily.IPV4
    return AddressFamily.IPV6


def address_bits(family: AddressFamily) -> int:
    """Width of an address in bits (32 for IPv4, 128 for IPv6)."""
    return 32 if family == AddressFamily.IPV4 else 128


def zero_address(family: AddressFamily) -> IPAddress:
    """The all-zero address of a family (0.0.0.0 or ::)."""
    if family == AddressFamily.IPV4:
        return ipaddress.IPv4Address(0)
    return ipaddress.IPv6Address(0)


def prefix_len(network: IPNetwork) -> int:
    return network.prefixlen


# =============================================================================
# Offsets
# =============================================================================


def next_n_ip(addr: IPAddress, n: int) -> IPAddress:
    """
    Offset an address by n (n may be negative).

    Raises:
        ValueError: If the result falls outside the family's address space.
    """
    value = int(addr) + n
    max_value = (1 << addr.max_prefixlen) - 1
    if value < 0 or value > max_value:
        raise ValueError(f"Offset {n} from {addr} leaves the IPv{addr.version} space")
    return type(addr)(value)


def previous_n_ip(addr: IPAddress, n: int) -> IPAddress:
    """Step an address back by n."""
    return next_n_ip(addr, -n)


def next_ip(addr: IPAddress) -> IPAddress:
    """Successor of an address."""
    return next_n_ip(addr, 1)


def last_ip(network: IPNetwork) -> IPAddress:
    """
    Last address of a network.

    For a full-width prefix (/32, /128) this is the network address itself.
    """
    host_bits = network.max_prefixlen - network.prefixlen
    first = int(network.network_address)
    return type(network.network_address)(first | ((1 << host_bits) - 1))


def is_aligned(addr: IPAddress, network: IPNetwork, subnet_len: int) -> bool:
    """Check that addr is inside network and on its subnet_len grid."""
    if addr.version != network.version or addr not in network:
        return False
    subnet_size = 1 << (network.max_prefixlen - subnet_len)
    return (int(addr) - int(network.network_address)) % subnet_size == 0


# =============================================================================
# Text Forms
# =============================================================================


def expand_ip(addr: IPAddress) -> str:
    """
    Canonical text of an address.

    IPv4 uses the dotted quad. IPv6 writes all eight groups as four lower-case
    hex digits each, colon separated, without "::" compression.
    """
    if addr.version == 4:
        return str(addr)
    return addr.exploded


def expand_network(network: IPNetwork) -> str:
    """Canonical "address/prefixlen" text of a network."""
    return f"{expand_ip(network.network_address)}/{network.prefixlen}"


def networks_equal(a: IPNetwork | None, b: IPNetwork | None) -> bool:
    if a is None or b is None:
        return a is b
    return a.version == b.version and a == b


def network_empty(network: IPNetwork | None) -> bool:
    """True for a missing network or the unset 0.0.0.0/0 placeholder."""
    if network is None:
        return True
    return int(network.network_address) == 0 and network.prefixlen == 0
