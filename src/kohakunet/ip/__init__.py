"""
IP address arithmetic for KohakuNet.

Re-exports the address helpers so callers can write:
    from kohakunet.ip import expand_network, last_ip
"""

from kohakunet.ip.address import (
    IPAddress,
    IPNetwork,
    address_bits,
    address_family,
    expand_ip,
    expand_network,
    is_aligned,
    last_ip,
    network_empty,
    networks_equal,
    next_ip,
    next_n_ip,
    prefix_len,
    previous_n_ip,
    zero_address,
)

__all__ = [
    "IPAddress",
    "IPNetwork",
    "address_bits",
    "address_family",
    "expand_ip",
    "expand_network",
    "is_aligned",
    "last_ip",
    "network_empty",
    "networks_equal",
    "next_ip",
    "next_n_ip",
    "prefix_len",
    "previous_n_ip",
    "zero_address",
]
