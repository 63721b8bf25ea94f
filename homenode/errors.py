"""
Discovery Errors

Failures surfaced while a node moves from idle to broadcasting.

Rejected configuration changes are not errors at the node level: the
setters simply return False. Only the config layer raises
InvalidConfiguration, when a configured value cannot be applied.
"""

from typing import Optional


class DiscoveryError(Exception):
    """Base class for discovery startup failures."""


class BindError(DiscoveryError):
    """The broadcast port could not be bound (in use, permission denied)."""

    def __init__(self, port: int, cause: Optional[BaseException] = None):
        self.port = port
        self.cause = cause
        super().__init__(f"Cannot bind broadcast port {port}: {cause}")


class MulticastJoinError(DiscoveryError):
    """Enabling broadcast or joining the multicast group failed after bind."""

    def __init__(self, address: str, cause: Optional[BaseException] = None):
        self.address = address
        self.cause = cause
        super().__init__(f"Cannot join multicast group {address}: {cause}")


class DiscoveryTimeout(DiscoveryError):
    """The socket did not report listening in time."""

    def __init__(self, port: int, timeout: float):
        self.port = port
        self.timeout = timeout
        super().__init__(
            f"Broadcast socket on port {port} not listening after {timeout}s"
        )


class InvalidConfiguration(ValueError):
    """A configured value was rejected by the node."""
