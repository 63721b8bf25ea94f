"""
Communications Handoff

The discovery layer does not define how nodes talk to each other once
they have found the group. Instead it hands control to a Communicator
after the node is broadcasting.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .node import DiscoveryNode


class Communicator(ABC):
    """Peer communications started by a node that has joined its group."""

    @abstractmethod
    def start(self, node: 'DiscoveryNode'):
        """
        Take over from discovery.

        Called at most once per broadcasting session, only after the
        node's multicast membership is in place. node.socket is live.
        """

    @abstractmethod
    def stop(self):
        """Release whatever start() acquired. Called by DiscoveryNode.stop()."""
