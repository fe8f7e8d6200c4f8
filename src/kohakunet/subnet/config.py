"""
Network config validation and partitioning.

Turns an operator's network config document into a NetworkConfig: the shared
network range, the per-host subnet length and the inclusive range
[SubnetMin, SubnetMax] of subnet base addresses that may be leased.

Partitioning rules (IPv4 numbers, IPv6 in parentheses):
- An explicit SubnetLen must be <= 30 (126), leaving room for the tunnel and
  bridge devices on each host, and at least Network prefix + 2 so the
  network holds four subnets. The first subnet is never handed out, so a
  network split in two would leave a single usable subnet.
- Without SubnetLen, networks smaller than /28 (/124) are rejected, networks
  of /22 (/118) or larger give every host a /24 (/120), and anything in
  between is split into four.
- SubnetMin defaults to the second subnet of the network (the first one
  collides with the network address), SubnetMax to the last subnet.

Example:
    Network 192.168.0.0/24, no SubnetLen:
    SubnetLen=26, SubnetMin=192.168.0.64, SubnetMax=192.168.0.192
"""

from __future__ import annotations

import ipaddress
import json
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from kohakunet.ip.address import (
    IPAddress,
    IPNetwork,
    address_family,
    is_aligned,
    last_ip,
    next_n_ip,
    zero_address,
)
from kohakunet.models.enums import AddressFamily
from kohakunet.models.wire import NetworkConfigDocument
from kohakunet.subnet.errors import ConfigError
from kohakunet.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BACKEND_TYPE = "udp"


# =============================================================================
# Family Rules
# =============================================================================


@dataclass(frozen=True)
class FamilyRules:
    """
    Partitioning constants of one address family.

    Attributes:
        addr_bits: Address width.
        max_subnet_len: Longest allowed SubnetLen.
        min_useful_prefix: Longest Network prefix that can still be split
            when SubnetLen is derived.
        default_subnet_len: SubnetLen given to large networks.
        default_prefix_threshold: Networks with a prefix up to this get
            default_subnet_len; longer prefixes get prefix + 2.
    """

    addr_bits: int
    max_subnet_len: int
    min_useful_prefix: int
    default_subnet_len: int
    default_prefix_threshold: int


FAMILY_RULES: dict[AddressFamily, FamilyRules] = {
    AddressFamily.IPV4: FamilyRules(
        addr_bits=32,
        max_subnet_len=30,
        min_useful_prefix=28,
        default_subnet_len=24,
        default_prefix_threshold=22,
    ),
    AddressFamily.IPV6: FamilyRules(
        addr_bits=128,
        max_subnet_len=126,
        min_useful_prefix=124,
        default_subnet_len=120,
        default_prefix_threshold=118,
    ),
}


# =============================================================================
# Network Config
# =============================================================================


@dataclass(frozen=True)
class NetworkConfig:
    """
    Validated network config.

    Only built by validate_config(), so an instance is always consistent:
    subnet_min and subnet_max are inside network, on the subnet_len grid,
    and subnet_min <= subnet_max.

    Attributes:
        network: Shared network range.
        subnet_len: Prefix length of every leased subnet.
        subnet_min: Base address of the first allocatable subnet.
        subnet_max: Base address of the last allocatable subnet.
        backend_type: Type discriminator of the backend payload.
        backend: Backend payload as compact JSON bytes, None when absent.
    """

    network: IPNetwork
    subnet_len: int
    subnet_min: IPAddress
    subnet_max: IPAddress
    backend_type: str = DEFAULT_BACKEND_TYPE
    backend: bytes | None = None

    @property
    def family(self) -> AddressFamily:
        return address_family(self.network)

    @property
    def subnet_size(self) -> int:
        """Number of addresses in one subnet."""
        return 1 << (self.network.max_prefixlen - self.subnet_len)

    @property
    def subnet_count(self) -> int:
        """Number of allocatable subnets in [subnet_min, subnet_max]."""
        return (int(self.subnet_max) - int(self.subnet_min)) // self.subnet_size + 1

    def contains_subnet(self, subnet: IPNetwork) -> bool:
        """Whether subnet is one of the allocatable subnets."""
        if subnet.version != self.network.version:
            return False
        if subnet.prefixlen != self.subnet_len:
            return False
        addr = subnet.network_address
        return self.subnet_min <= addr <= self.subnet_max and is_aligned(
            addr, self.network, self.subnet_len
        )

    def iter_subnets(self) -> Iterator[IPNetwork]:
        """Yield all allocatable subnets from subnet_min to subnet_max."""
        network_cls = type(self.network)
        start = int(self.subnet_min)
        for base in range(start, int(self.subnet_max) + 1, self.subnet_size):
            yield network_cls((base, self.subnet_len))

    def to_document(self) -> dict[str, Any]:
        """Config document form, as accepted by validate_config()."""
        return {
            "Network": str(self.network),
            "SubnetLen": self.subnet_len,
            "SubnetMin": str(self.subnet_min),
            "SubnetMax": str(self.subnet_max),
            "Backend": json.loads(self.backend) if self.backend else None,
        }


# =============================================================================
# Validation
# =============================================================================


def _load_document(document: str | bytes | dict) -> NetworkConfigDocument:
    try:
        if isinstance(document, (str, bytes)):
            return NetworkConfigDocument.model_validate_json(document)
        return NetworkConfigDocument.model_validate(document)
    except ValidationError as e:
        raise ConfigError(f"malformed network config: {e}") from e


def _parse_network(text: str) -> IPNetwork:
    try:
        return ipaddress.ip_network(text.strip(), strict=False)
    except ValueError as e:
        raise ConfigError(f"invalid Network '{text}': {e}") from e


def _resolve_subnet_len(network: IPNetwork, requested: int, rules: FamilyRules) -> int:
    network_prefix = network.prefixlen

    if requested > 0:
        if requested > rules.max_subnet_len:
            raise ConfigError(
                f"SubnetLen must be less than /{rules.max_subnet_len + 1}"
            )
        if requested < network_prefix + 2:
            raise ConfigError("Network must be able to accommodate at least four subnets")
        return requested

    if network_prefix > rules.min_useful_prefix:
        raise ConfigError(
            f"Network is too small. Minimum useful network prefix is "
            f"/{rules.min_useful_prefix}"
        )
    if network_prefix <= rules.default_prefix_threshold:
        return rules.default_subnet_len
    return network_prefix + 2


def _parse_bound(name: str, text: str | None, family: AddressFamily) -> IPAddress | None:
    """Parse an explicit SubnetMin/SubnetMax; None means "use the default"."""
    if text is None or not text.strip():
        return None
    try:
        addr = ipaddress.ip_address(text.strip())
    except ValueError as e:
        raise ConfigError(f"invalid {name} '{text}': {e}") from e
    if address_family(addr) == family and addr == zero_address(family):
        return None
    return addr


def _check_bound(name: str, addr: IPAddress, network: IPNetwork, subnet_len: int) -> None:
    if addr.version != network.version or addr not in network:
        raise ConfigError(f"{name} is not in the range of the Network")
    if not is_aligned(addr, network, subnet_len):
        raise ConfigError(f"{name} is not on a SubnetLen boundary: {addr}")


def parse_backend_type(backend: Any) -> str:
    """
    Extract the Type discriminator of a backend payload.

    An absent payload means the default "udp" backend. A payload without a
    Type field gives "".

    Raises:
        ConfigError: If the payload is not an object or Type is not a string.
    """
    if backend is None:
        return DEFAULT_BACKEND_TYPE
    if not isinstance(backend, dict):
        raise ConfigError(
            "error decoding Backend property of config: expected an object, "
            f"got {type(backend).__name__}"
        )
    backend_type = backend.get("Type", "")
    if not isinstance(backend_type, str):
        raise ConfigError(
            "error decoding Backend property of config: Type must be a string"
        )
    return backend_type


def validate_config(document: str | bytes | dict) -> NetworkConfig:
    """
    Validate a network config document and derive the allocation parameters.

    Args:
        document: JSON text or an already parsed mapping.

    Returns:
        NetworkConfig with SubnetLen, SubnetMin and SubnetMax resolved.

    Raises:
        ConfigError: On any malformed or inconsistent field.
    """
    doc = _load_document(document)

    network = _parse_network(doc.network)
    family = address_family(network)
    rules = FAMILY_RULES[family]

    subnet_len = _resolve_subnet_len(network, doc.subnet_len or 0, rules)
    subnet_size = 1 << (rules.addr_bits - subnet_len)

    subnet_min = _parse_bound("SubnetMin", doc.subnet_min, family)
    if subnet_min is None:
        # The first subnet would collide with the network address
        subnet_min = next_n_ip(network.network_address, subnet_size)
    subnet_max = _parse_bound("SubnetMax", doc.subnet_max, family)
    if subnet_max is None:
        subnet_max = next_n_ip(last_ip(network), 1 - subnet_size)

    # Defaults and explicit values both go through the same containment and
    # alignment check
    _check_bound("SubnetMin", subnet_min, network, subnet_len)
    _check_bound("SubnetMax", subnet_max, network, subnet_len)
    if subnet_min > subnet_max:
        raise ConfigError(f"SubnetMin {subnet_min} is greater than SubnetMax {subnet_max}")

    backend_type = parse_backend_type(doc.backend)
    backend = None
    if doc.backend is not None:
        backend = json.dumps(doc.backend, separators=(",", ":")).encode()

    cfg = NetworkConfig(
        network=network,
        subnet_len=subnet_len,
        subnet_min=subnet_min,
        subnet_max=subnet_max,
        backend_type=backend_type,
        backend=backend,
    )
    logger.debug(
        f"Validated network config: network={network}, subnet_len={subnet_len}, "
        f"range={subnet_min}-{subnet_max}, backend={backend_type}"
    )
    return cfg


def parse_config(text: str | bytes) -> NetworkConfig:
    """Parse and validate a JSON network config document."""
    return validate_config(text)


def load_config_file(path: str) -> NetworkConfig:
    """Read and validate a JSON network config document from disk."""
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise ConfigError(f"cannot read network config '{path}': {e}") from e
    return validate_config(data)
