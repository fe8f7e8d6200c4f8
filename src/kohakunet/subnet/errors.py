"""Subnet allocation exception classes."""


class SubnetError(Exception):
    """Base exception for subnet allocation."""

    pass


class ConfigError(SubnetError):
    """Network config is malformed or inconsistent. Fatal, never retried."""

    pass


class LeaseTakenError(SubnetError):
    """A specifically requested subnet is held by another live lease."""

    def __init__(self, subnet):
        self.subnet = subnet
        super().__init__(f"subnet: lease already taken: {subnet}")


class NoMoreTriesError(SubnetError):
    """No free subnet could be reserved within the retry budget."""

    def __init__(self, attempts: int, reason: str = ""):
        self.attempts = attempts
        self.reason = reason
        message = f"subnet: no more tries after {attempts} attempt(s)"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class LeaseOwnershipError(SubnetError):
    """The backend no longer attributes the lease to the caller."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"subnet: lease {key} not owned: {reason}")


class WireDecodeError(SubnetError):
    """Malformed lease, event or watch result wire data."""

    pass


class BackendError(SubnetError):
    """Failure reported by the coordination backend."""

    pass


class KeyExistsError(BackendError):
    """Create-if-absent lost the race: the key already exists."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"subnet key already exists: {key}")


class BackendTimeoutError(BackendError):
    """The backend did not answer in time (distinct from caller cancellation)."""

    pass
