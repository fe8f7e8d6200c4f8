"""
Subnet key codec.

A subnet is stored in a lease registry under a key built from its fully
expanded network text with "/" replaced by "-", since registries treat "/"
as a path separator:

    10.16.0.0/16           -> "10.16.0.0-16"
    fd00::/120             -> "fd00:0000:0000:0000:0000:0000:0000:0000-120"

parse_subnet_key() is the inverse and never raises: anything that is not a
well-formed key gives None.
"""

from __future__ import annotations

import ipaddress
import re

from kohakunet.ip.address import IPNetwork, expand_network

V4_KEY_RE = re.compile(r"(\d+\.\d+\.\d+\.\d+)-(\d+)", re.ASCII)
V6_KEY_RE = re.compile(r"([0-9a-fA-F]{1,4}(?::[0-9a-fA-F]{1,4}){7})-(\d+)", re.ASCII)


def make_subnet_key(subnet: IPNetwork) -> str:
    """Encode a subnet as a registry key."""
    return expand_network(subnet).replace("/", "-")


def parse_subnet_key(key: str) -> IPNetwork | None:
    """
    Decode a registry key back into a subnet.

    Returns:
        The subnet, or None for keys that do not match either family's form,
        carry an unparsable address or prefix length, or have host bits set.
    """
    if not isinstance(key, str):
        return None

    match = V4_KEY_RE.fullmatch(key) or V6_KEY_RE.fullmatch(key)
    if match is None:
        return None

    addr_text, prefix_text = match.groups()
    try:
        addr = ipaddress.ip_address(addr_text)
    except ValueError:
        return None

    prefix = int(prefix_text)
    if prefix > addr.max_prefixlen:
        return None

    try:
        return ipaddress.ip_network(f"{addr}/{prefix}", strict=True)
    except ValueError:
        return None
