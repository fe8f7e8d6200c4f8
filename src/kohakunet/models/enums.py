"""
Enumeration types for KohakuNet.

This module defines the enumeration types shared by the subnet allocator,
the lease registries and the CLI.
"""

from enum import Enum


# =============================================================================
# Network Enums
# =============================================================================


class AddressFamily(str, Enum):
    """IP address family of a network range."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"


# =============================================================================
# Lease Enums
# =============================================================================


class EventType(str, Enum):
    """
    Kind of change reported by a lease watch.

    Renewals of an existing lease are reported as ADDED, the same way a
    brand new lease is: watchers treat both as "this lease is current".
    """

    ADDED = "added"  # Lease created or renewed
    REMOVED = "removed"  # Lease expired or released


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels for KohakuNet components.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
