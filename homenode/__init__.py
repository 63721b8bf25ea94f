"""
Home Node - Multicast Node Discovery

Home-automation nodes find each other by joining a UDP multicast group,
then hand over to a pluggable communications phase.
"""

from .node import (
    DiscoveryNode,
    NodeState,
    DEFAULT_MULTICAST_ADDRESS,
    DEFAULT_BROADCAST_PORT,
)
from .communications import Communicator
from .errors import (
    DiscoveryError,
    BindError,
    MulticastJoinError,
    DiscoveryTimeout,
    InvalidConfiguration,
)

__version__ = '0.1.0'

__all__ = [
    'DiscoveryNode',
    'NodeState',
    'DEFAULT_MULTICAST_ADDRESS',
    'DEFAULT_BROADCAST_PORT',
    'Communicator',
    'DiscoveryError',
    'BindError',
    'MulticastJoinError',
    'DiscoveryTimeout',
    'InvalidConfiguration',
]
