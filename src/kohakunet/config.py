"""
Allocator configuration for KohakuNet.

This module defines the configuration dataclass for subnet allocator agents
and lease registries, providing a centralized place for all tunables.

Configuration can be modified at runtime by importing the global config
instance and updating its attributes before creating managers:

    from kohakunet.config import config

    config.LEASE_TTL_SECONDS = 3600
    config.LOG_LEVEL = LogLevel.DEBUG

Every attribute can also be overridden from a KOHAKUNET_<NAME> environment
variable via load_env().
"""

import os
from dataclasses import dataclass, fields

from kohakunet.models.enums import LogLevel

ENV_PREFIX = "KOHAKUNET_"


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class AllocatorConfig:
    """
    Subnet allocator configuration.

    Attributes:
        LOG_LEVEL: Logging verbosity level.
        LOG_FILE: Optional log file path (empty = stderr only).
        DB_FILE: Path of the SQLite lease registry database.
        NETWORK_CONFIG_FILE: Path of the JSON network config document.
        LEASE_TTL_SECONDS: Lifetime of a freshly acquired or renewed lease.
    """

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FILE: str = ""

    # -------------------------------------------------------------------------
    # Path Configuration
    # -------------------------------------------------------------------------

    DB_FILE: str = "/var/lib/kohakunet/leases.db"
    NETWORK_CONFIG_FILE: str = "/etc/kohakunet/network.json"

    # -------------------------------------------------------------------------
    # Lease Timing
    # -------------------------------------------------------------------------

    LEASE_TTL_SECONDS: int = 24 * 60 * 60
    # Renew this long before the lease expires
    RENEW_MARGIN_SECONDS: int = 60 * 60
    # Wait between renew attempts after a transient backend failure
    RENEW_RETRY_SECONDS: float = 10.0

    # -------------------------------------------------------------------------
    # Acquisition
    # -------------------------------------------------------------------------

    # Bounded retries when another agent grabs our candidate subnet first
    ACQUIRE_MAX_TRIES: int = 30
    # Pick randomly among this many free subnets to spread contention
    ACQUIRE_CANDIDATE_WINDOW: int = 100

    # -------------------------------------------------------------------------
    # Watch Configuration
    # -------------------------------------------------------------------------

    # Events retained for incremental watches; older cursors get a snapshot
    WATCH_HISTORY_SIZE: int = 1000
    # How often the SQLite registry re-checks for writes from other processes
    WATCH_POLL_INTERVAL_SECONDS: float = 1.0
    # Wait before re-issuing a watch that failed with a backend error
    WATCH_RETRY_SECONDS: float = 1.0

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def load_env(self, environ: dict[str, str] | None = None) -> "AllocatorConfig":
        """
        Override attributes from KOHAKUNET_* environment variables.

        Values are converted to the type of the attribute's default.
        Returns self so it can be chained.
        """
        environ = os.environ if environ is None else environ
        for f in fields(self):
            raw = environ.get(f"{ENV_PREFIX}{f.name}")
            if raw is None:
                continue
            current = getattr(self, f.name)
            if isinstance(current, LogLevel):
                value = LogLevel(raw.lower())
            elif isinstance(current, bool):
                value = raw.lower() in ("1", "true", "yes", "on")
            elif isinstance(current, int):
                value = int(raw)
            elif isinstance(current, float):
                value = float(raw)
            else:
                value = raw
            setattr(self, f.name, value)
        return self


# =============================================================================
# Global Instance
# =============================================================================

# Global config instance - modify before creating managers
config = AllocatorConfig()
