"""
Discovery Module - Multicast Transport

The UDP socket a home node uses to join its discovery group.
"""

from .multicast import MulticastSocket, ANY_INTERFACE

__all__ = [
    'MulticastSocket',
    'ANY_INTERFACE',
]
